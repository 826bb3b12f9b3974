# storage.py — store contract, storage errors, row <-> model serialization
#
# Both backends (db.SupabaseChallengeStore, local_store.LocalChallengeStore)
# persist the same row shapes produced here. Timestamps are ISO-8601 strings
# in rows and timezone-aware datetimes in models.

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol
import json
import math

from engine import (
    Bet,
    Challenge,
    ChallengeTerminated,
    FinalResult,
    InvalidInput,
    Step,
    FAILED,
    IN_PROGRESS,
    _check_date,
)
from calculations import BettingChallenge, DailyStats
from result_labels import KNOWN_RESULTS, normalize_result

CHALLENGES_TABLE = "challenges"
SUMMARIES_TABLE = "betting_challenges"


class StorageError(RuntimeError):
    pass


class StorageUnavailable(StorageError):
    """Persistence call failed (network, database, file system, corrupt data)."""


class ChallengeNotFound(StorageError):
    pass


class ChallengeStore(Protocol):
    def create_challenge(self, date: str, starting_balance: float = 0.0) -> str: ...

    def append_step(self, challenge_id: str, step: Step, final_result: Optional[FinalResult] = None) -> None: ...

    def set_final_result(self, challenge_id: str, final_result: FinalResult) -> None: ...

    def get_challenge(self, challenge_id: str) -> Challenge: ...

    def list_by_date(self, date: str) -> List[Challenge]: ...

    def list_all(self) -> List[Challenge]: ...

    def get_daily_stats(self, date: str) -> DailyStats: ...

    def list_summaries(self) -> List[BettingChallenge]: ...

    def add_summary(self, **fields: Any) -> BettingChallenge: ...

    def update_summary(self, summary_id: str, **updates: Any) -> Optional[BettingChallenge]: ...

    def delete_summary(self, summary_id: str) -> bool: ...

    def clear_all(self) -> None: ...


# ============================================================
#  SMALL HELPERS
# ============================================================

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(ts: datetime) -> str:
    return ts.isoformat()


def _parse_ts(value: Any) -> datetime:
    """
    Robust parse for timestamps coming back from storage.
    Accepts datetime, ISO strings like '2025-12-02T15:30:12.345678+00:00' or '...Z',
    and epoch milliseconds. Naive values are taken as UTC. Unparseable -> now.
    """
    ts: Optional[datetime] = None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    elif isinstance(value, str) and value:
        s = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            ts = datetime.fromisoformat(s)
        except ValueError:
            ts = None

    if ts is None:
        print(f"[storage._parse_ts] unparseable timestamp {value!r}; using now")
        return _now()
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _pick(row: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key; lets rows written by older camelCase exports load."""
    for k in keys:
        if k in row and row[k] is not None:
            return row[k]
    return default


def _f(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _i(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _result(value: Any, default: str = IN_PROGRESS) -> str:
    r = normalize_result(value)
    return r if r in KNOWN_RESULTS else default


def _json_list(value: Any) -> List[Any]:
    # jsonb may come back as a string depending on the client
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise StorageUnavailable(f"corrupt steps column: {e}") from e
    return list(value or [])


# ============================================================
#  CHALLENGES
# ============================================================

def step_to_row(step: Step) -> Dict[str, Any]:
    return {
        "id": step.id,
        "step_number": step.step_number,
        "total_before": step.total_before,
        "total_after": step.total_after,
        "timestamp": _iso(step.timestamp),
        "bet": {
            "id": step.bet.id,
            "amount": step.bet.amount,
            "odds": step.bet.odds,
            "result": step.bet.result,
            "profit": step.bet.profit,
            "timestamp": _iso(step.bet.timestamp),
        },
    }


def step_from_row(row: Dict[str, Any]) -> Step:
    raw_bet = row.get("bet") or {}
    amount = _f(_pick(raw_bet, "amount"))
    result = str(_pick(raw_bet, "result", default="pending"))
    step_ts = _parse_ts(_pick(row, "timestamp"))

    profit = _pick(raw_bet, "profit")
    if profit is None:
        odds = _f(_pick(raw_bet, "odds"))
        profit = amount * odds - amount if result == "win" else (-amount if result == "loss" else 0.0)

    bet = Bet(
        amount=amount,
        odds=_f(_pick(raw_bet, "odds")),
        result=result,  # type: ignore[arg-type]
        profit=_f(profit),
        id=str(_pick(raw_bet, "id", default="") or ""),
        timestamp=_parse_ts(_pick(raw_bet, "timestamp", default=row.get("timestamp"))),
    )
    return Step(
        step_number=_i(_pick(row, "step_number", "stepNumber")),
        bet=bet,
        total_before=_f(_pick(row, "total_before", "totalBefore", "moneyBefore")),
        total_after=_f(_pick(row, "total_after", "totalAfter", "moneyAfter")),
        id=str(_pick(row, "id", default="") or ""),
        timestamp=step_ts,
    )


def challenge_to_row(ch: Challenge) -> Dict[str, Any]:
    return {
        "id": ch.id,
        "date": ch.date,
        "starting_balance": ch.starting_balance,
        "steps": [step_to_row(s) for s in ch.steps],
        "total_profit": ch.total_profit,
        "final_result": ch.final_result,
        "created_at": _iso(ch.created_at),
        "updated_at": _iso(ch.updated_at),
    }


def challenge_from_row(row: Dict[str, Any]) -> Challenge:
    steps = tuple(step_from_row(s) for s in _json_list(_pick(row, "steps", default=[])))
    created = _parse_ts(_pick(row, "created_at", "createdAt"))
    return Challenge(
        date=str(_pick(row, "date", "startDate", default="")),
        steps=steps,
        total_profit=_f(_pick(row, "total_profit", "totalProfit"), sum(s.profit for s in steps)),
        final_result=_result(_pick(row, "final_result", "finalResult", "status")),  # type: ignore[arg-type]
        starting_balance=_f(_pick(row, "starting_balance", "initialMoney")),
        id=str(_pick(row, "id", default="")),
        created_at=created,
        updated_at=_parse_ts(_pick(row, "updated_at", "updatedAt", default=created)),
    )


def step_final_result(step: Step) -> FinalResult:
    """State a step leaves the challenge in when the caller does not say."""
    if step.bet.result == "loss" or step.total_after <= 0:
        return FAILED
    return IN_PROGRESS


def append_step_to_row(row: Dict[str, Any], step: Step, final_result: Optional[FinalResult] = None) -> Dict[str, Any]:
    """
    Append one step to a stored challenge row and recompute its aggregates.

    Returns the changed columns (steps, total_profit, final_result, updated_at).
    Terminal rows accept no steps; the step must continue the numbering.
    """
    current = _result(_pick(row, "final_result", "finalResult", "status"))
    if current != IN_PROGRESS:
        raise ChallengeTerminated(f"challenge {row.get('id')} is {current}; no further steps allowed")

    steps = _json_list(_pick(row, "steps", default=[]))
    if step.step_number != len(steps) + 1:
        raise InvalidInput(f"step {step.step_number} does not follow {len(steps)} stored steps")

    steps.append(step_to_row(step))
    return {
        "steps": steps,
        "total_profit": sum(_f((s.get("bet") or {}).get("profit")) for s in steps),
        "final_result": final_result if final_result is not None else step_final_result(step),
        "updated_at": _iso(_now()),
    }


# ============================================================
#  SUMMARY RECORDS
# ============================================================

SUMMARY_FIELDS = (
    "date",
    "initial_investment",
    "total_steps",
    "max_amount_reached",
    "final_result",
    "observations",
)


def summary_to_row(s: BettingChallenge) -> Dict[str, Any]:
    return {
        "id": s.id,
        "date": s.date,
        "initial_investment": s.initial_investment,
        "total_steps": s.total_steps,
        "max_amount_reached": s.max_amount_reached,
        "final_result": s.final_result,
        "observations": s.observations,
        "created_at": _iso(s.created_at),
        "updated_at": _iso(s.updated_at),
    }


def summary_from_row(row: Dict[str, Any]) -> BettingChallenge:
    created = _parse_ts(_pick(row, "created_at", "createdAt"))
    obs = _pick(row, "observations")
    return BettingChallenge(
        date=str(_pick(row, "date", default="")),
        initial_investment=_f(_pick(row, "initial_investment", "initialInvestment")),
        total_steps=_i(_pick(row, "total_steps", "totalSteps")),
        max_amount_reached=_f(_pick(row, "max_amount_reached", "maxAmountReached")),
        final_result=_result(_pick(row, "final_result", "finalResult")),
        observations=str(obs) if obs else None,
        id=str(_pick(row, "id", default="")),
        created_at=created,
        updated_at=_parse_ts(_pick(row, "updated_at", "updatedAt", default=created)),
    )


REQUIRED_SUMMARY_FIELDS = ("date", "initial_investment", "total_steps", "max_amount_reached")


def _non_negative(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    if not math.isfinite(v) or v < 0:
        raise InvalidInput(f"{name} must be >= 0, got {value!r}")
    return v


def clean_summary_fields(fields: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate summary columns before they reach a store.
    partial=True is for updates, where any subset of columns may be given.
    Canonicalizes the result label.
    """
    unknown = set(fields) - set(SUMMARY_FIELDS)
    if unknown:
        raise InvalidInput(f"unknown summary fields: {sorted(unknown)}")
    if not partial:
        missing = [k for k in REQUIRED_SUMMARY_FIELDS if k not in fields]
        if missing:
            raise InvalidInput(f"missing summary fields: {missing}")

    out = dict(fields)
    if "date" in out:
        out["date"] = _check_date(out["date"])
    for k in ("initial_investment", "max_amount_reached"):
        if k in out:
            out[k] = _non_negative(k, out[k])
    if "total_steps" in out:
        steps = _non_negative("total_steps", out["total_steps"])
        if not steps.is_integer():
            raise InvalidInput(f"total_steps must be a whole number, got {out['total_steps']!r}")
        out["total_steps"] = int(steps)
    if "final_result" in out:
        out["final_result"] = _result(out["final_result"])
    if out.get("observations") is not None:
        out["observations"] = str(out["observations"]) or None
    return out


# ============================================================
#  FACTORY
# ============================================================

def get_store(backend: Optional[str] = None) -> ChallengeStore:
    """
    Build the configured store. Backends are imported lazily so the local
    store works without Supabase credentials.
    """
    from settings import local_store_path, storage_backend

    backend = (backend or storage_backend()).lower().strip()
    if backend == "supabase":
        from db import SupabaseChallengeStore
        return SupabaseChallengeStore()
    if backend == "local":
        from local_store import LocalChallengeStore
        return LocalChallengeStore(local_store_path())
    raise ValueError(f"unknown storage backend {backend!r}")
