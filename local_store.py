# local_store.py — JSON document store (local storage variant, no server)
#
# One JSON document:
#   {"challenges": [...challenge rows...], "betting_challenges": [...summary rows...]}
# path=None keeps the document in memory (tests, throwaway sessions).

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Optional
import copy
import json
import os
import uuid

from engine import Challenge, FinalResult, Step
from calculations import BettingChallenge, DailyStats, daily_stats
from storage import (
    CHALLENGES_TABLE,
    SUMMARIES_TABLE,
    ChallengeNotFound,
    StorageUnavailable,
    _iso,
    _now,
    _parse_ts,
    append_step_to_row,
    challenge_from_row,
    clean_summary_fields,
    summary_from_row,
    summary_to_row,
)


def _empty_doc() -> Dict[str, List[Dict[str, Any]]]:
    return {CHALLENGES_TABLE: [], SUMMARIES_TABLE: []}


def _newest_first(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # stable sort over reversed insertion order: equal timestamps keep newest first
    return sorted(reversed(rows), key=lambda r: _parse_ts(r.get("created_at")), reverse=True)


class LocalChallengeStore:
    """
    Challenge + summary persistence in a local JSON file.

    Every call re-reads the file and writes it back, so the file stays the
    single source of truth (same contract as the Supabase store).
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._mem: Dict[str, List[Dict[str, Any]]] = _empty_doc()

    # ---- document I/O ----
    def _load(self) -> Dict[str, List[Dict[str, Any]]]:
        if self.path is None:
            return copy.deepcopy(self._mem)

        if not os.path.exists(self.path):
            return _empty_doc()

        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            print(f"[local_store._load] error reading {self.path}: {e!r}")
            raise StorageUnavailable(f"cannot read {self.path}: {e}") from e

        if not isinstance(raw, dict):
            raise StorageUnavailable(f"{self.path} is not a challenge document")

        doc = _empty_doc()
        for key in doc:
            rows = raw.get(key) or []
            if isinstance(rows, list):
                doc[key] = [r for r in rows if isinstance(r, dict)]
        return doc

    def _save(self, doc: Dict[str, List[Dict[str, Any]]]) -> None:
        if self.path is None:
            self._mem = copy.deepcopy(doc)
            return

        tmp = f"{self.path}.tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as fh:
                json.dump(doc, fh, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            print(f"[local_store._save] error writing {self.path}: {e!r}")
            raise StorageUnavailable(f"cannot write {self.path}: {e}") from e

    @staticmethod
    def _find(rows: List[Dict[str, Any]], row_id: str) -> int:
        for i, r in enumerate(rows):
            if str(r.get("id")) == str(row_id):
                return i
        return -1

    # ---------- CHALLENGES ----------

    def create_challenge(self, date: str, starting_balance: float = 0.0) -> str:
        doc = self._load()
        now = _iso(_now())
        cid = str(uuid.uuid4())
        doc[CHALLENGES_TABLE].append({
            "id": cid,
            "date": date,
            "starting_balance": float(starting_balance),
            "steps": [],
            "total_profit": 0.0,
            "final_result": "in_progress",
            "created_at": now,
            "updated_at": now,
        })
        self._save(doc)
        return cid

    def append_step(self, challenge_id: str, step: Step, final_result: Optional[FinalResult] = None) -> None:
        doc = self._load()
        rows = doc[CHALLENGES_TABLE]
        idx = self._find(rows, challenge_id)
        if idx < 0:
            raise ChallengeNotFound(f"challenge {challenge_id} not found")

        rows[idx].update(append_step_to_row(rows[idx], step, final_result))
        self._save(doc)

    def set_final_result(self, challenge_id: str, final_result: FinalResult) -> None:
        doc = self._load()
        rows = doc[CHALLENGES_TABLE]
        idx = self._find(rows, challenge_id)
        if idx < 0:
            raise ChallengeNotFound(f"challenge {challenge_id} not found")
        rows[idx]["final_result"] = final_result
        rows[idx]["updated_at"] = _iso(_now())
        self._save(doc)

    def get_challenge(self, challenge_id: str) -> Challenge:
        rows = self._load()[CHALLENGES_TABLE]
        idx = self._find(rows, challenge_id)
        if idx < 0:
            raise ChallengeNotFound(f"challenge {challenge_id} not found")
        return challenge_from_row(rows[idx])

    def list_by_date(self, date: str) -> List[Challenge]:
        rows = [r for r in self._load()[CHALLENGES_TABLE] if r.get("date") == date]
        return [challenge_from_row(r) for r in _newest_first(rows)]

    def list_all(self) -> List[Challenge]:
        return [challenge_from_row(r) for r in _newest_first(self._load()[CHALLENGES_TABLE])]

    def get_daily_stats(self, date: str) -> DailyStats:
        return daily_stats(self.list_by_date(date), date)

    # ---------- SUMMARY RECORDS ----------

    def list_summaries(self) -> List[BettingChallenge]:
        return [summary_from_row(r) for r in self._load()[SUMMARIES_TABLE]]

    def add_summary(self, **fields: Any) -> BettingChallenge:
        summary = BettingChallenge(**clean_summary_fields(fields))
        doc = self._load()
        doc[SUMMARIES_TABLE].append(summary_to_row(summary))
        self._save(doc)
        return summary

    def update_summary(self, summary_id: str, **updates: Any) -> Optional[BettingChallenge]:
        doc = self._load()
        rows = doc[SUMMARIES_TABLE]
        idx = self._find(rows, summary_id)
        if idx < 0:
            return None

        updated = replace(summary_from_row(rows[idx]), **clean_summary_fields(updates, partial=True), updated_at=_now())
        rows[idx] = summary_to_row(updated)
        self._save(doc)
        return updated

    def delete_summary(self, summary_id: str) -> bool:
        doc = self._load()
        rows = doc[SUMMARIES_TABLE]
        kept = [r for r in rows if str(r.get("id")) != str(summary_id)]
        if len(kept) == len(rows):
            return False
        doc[SUMMARIES_TABLE] = kept
        self._save(doc)
        return True

    def clear_all(self) -> None:
        self._save(_empty_doc())
