# db.py — Supabase persistence for challenges + summary records

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Optional
import uuid

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from engine import Challenge, FinalResult, Step
from calculations import BettingChallenge, DailyStats, daily_stats
from storage import (
    CHALLENGES_TABLE,
    SUMMARIES_TABLE,
    ChallengeNotFound,
    StorageUnavailable,
    _iso,
    _now,
    append_step_to_row,
    challenge_from_row,
    clean_summary_fields,
    summary_from_row,
    summary_to_row,
)

# PostgREST refuses unfiltered deletes; this id never exists
_NIL_UUID = "00000000-0000-0000-0000-000000000000"


def _sid(x: Any) -> str:
    """Safe id normalize (uuid.UUID -> str, None -> '')."""
    if x is None:
        return ""
    return str(x)


def _execute(q, what: str):
    """
    Run a PostgREST query once. Transport and API errors surface as
    StorageUnavailable; the caller decides what to tell the user.
    """
    try:
        return q.execute()
    except (httpx.HTTPError, APIError) as e:
        print(f"[db.{what}] error: {e!r}")
        raise StorageUnavailable(f"{what} failed: {e}") from e


class SupabaseChallengeStore:
    """
    Tables:
      challenges(id, date, starting_balance, steps jsonb, total_profit, final_result, created_at, updated_at)
      betting_challenges(id, date, initial_investment, total_steps, max_amount_reached,
                         final_result, observations, created_at, updated_at)
    """

    def __init__(self, sb: Optional[Client] = None):
        self._sb = sb

    @property
    def sb(self) -> Client:
        if self._sb is None:
            from supabase_client import get_supabase
            self._sb = get_supabase()
        return self._sb

    def _row(self, challenge_id: str) -> Dict[str, Any]:
        cid = _sid(challenge_id)
        if not cid:
            raise ChallengeNotFound("missing challenge id")
        q = (
            self.sb.table(CHALLENGES_TABLE)
            .select("*")
            .eq("id", cid)
            .limit(1)
        )
        res = _execute(q, "get_challenge")
        rows = res.data or []
        if not rows:
            raise ChallengeNotFound(f"challenge {cid} not found")
        return rows[0]

    # ---------- CHALLENGES ----------

    def create_challenge(self, date: str, starting_balance: float = 0.0) -> str:
        now = _iso(_now())
        payload = {
            "id": str(uuid.uuid4()),
            "date": date,
            "starting_balance": float(starting_balance),
            "steps": [],
            "total_profit": 0.0,
            "final_result": "in_progress",
            "created_at": now,
            "updated_at": now,
        }
        res = _execute(self.sb.table(CHALLENGES_TABLE).insert(payload), "create_challenge")
        if not res.data:
            raise StorageUnavailable("Failed to insert challenge row in 'challenges' table.")
        return _sid(res.data[0].get("id") or payload["id"])

    def append_step(self, challenge_id: str, step: Step, final_result: Optional[FinalResult] = None) -> None:
        row = self._row(challenge_id)
        payload = append_step_to_row(row, step, final_result)
        q = self.sb.table(CHALLENGES_TABLE).update(payload).eq("id", _sid(challenge_id))
        _execute(q, "append_step")

    def set_final_result(self, challenge_id: str, final_result: FinalResult) -> None:
        self._row(challenge_id)
        q = (
            self.sb.table(CHALLENGES_TABLE)
            .update({"final_result": final_result, "updated_at": _iso(_now())})
            .eq("id", _sid(challenge_id))
        )
        _execute(q, "set_final_result")

    def get_challenge(self, challenge_id: str) -> Challenge:
        return challenge_from_row(self._row(challenge_id))

    def list_by_date(self, date: str) -> List[Challenge]:
        q = (
            self.sb.table(CHALLENGES_TABLE)
            .select("*")
            .eq("date", date)
            .order("created_at", desc=True)
        )
        res = _execute(q, "list_by_date")
        return [challenge_from_row(r) for r in (res.data or [])]

    def list_all(self) -> List[Challenge]:
        q = (
            self.sb.table(CHALLENGES_TABLE)
            .select("*")
            .order("created_at", desc=True)
        )
        res = _execute(q, "list_all")
        return [challenge_from_row(r) for r in (res.data or [])]

    def get_daily_stats(self, date: str) -> DailyStats:
        return daily_stats(self.list_by_date(date), date)

    # ---------- SUMMARY RECORDS ----------

    def list_summaries(self) -> List[BettingChallenge]:
        q = (
            self.sb.table(SUMMARIES_TABLE)
            .select("*")
            .order("created_at", desc=False)
        )
        res = _execute(q, "list_summaries")
        return [summary_from_row(r) for r in (res.data or [])]

    def add_summary(self, **fields: Any) -> BettingChallenge:
        summary = BettingChallenge(**clean_summary_fields(fields))
        res = _execute(self.sb.table(SUMMARIES_TABLE).insert(summary_to_row(summary)), "add_summary")
        if not res.data:
            raise StorageUnavailable("Failed to insert summary row in 'betting_challenges' table.")
        return summary_from_row(res.data[0])

    def update_summary(self, summary_id: str, **updates: Any) -> Optional[BettingChallenge]:
        sid = _sid(summary_id)
        q = self.sb.table(SUMMARIES_TABLE).select("*").eq("id", sid).limit(1)
        rows = _execute(q, "update_summary").data or []
        if not rows:
            return None

        updated = replace(summary_from_row(rows[0]), **clean_summary_fields(updates, partial=True), updated_at=_now())
        row = summary_to_row(updated)
        row.pop("id", None)
        row.pop("created_at", None)
        _execute(self.sb.table(SUMMARIES_TABLE).update(row).eq("id", sid), "update_summary")
        return updated

    def delete_summary(self, summary_id: str) -> bool:
        sid = _sid(summary_id)
        res = _execute(self.sb.table(SUMMARIES_TABLE).delete().eq("id", sid), "delete_summary")
        return bool(res.data)

    def clear_all(self) -> None:
        for table in (SUMMARIES_TABLE, CHALLENGES_TABLE):
            _execute(self.sb.table(table).delete().neq("id", _NIL_UUID), "clear_all")
