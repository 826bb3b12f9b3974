# calculations.py — cross-challenge stats + analytics (pure, no I/O)

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Union
import uuid

import pandas as pd

from engine import Challenge, COMPLETED, FAILED, IN_PROGRESS
from result_labels import ALL, normalize_result

ABANDONED = "abandoned"

DEFAULT_STEP_THRESHOLD = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BettingChallenge:
    """Flattened summary of one challenge (entered by hand or derived from a ledger)."""
    date: str
    initial_investment: float
    total_steps: int
    max_amount_reached: float
    final_result: str = IN_PROGRESS
    observations: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class ChallengeStats:
    total_challenges: int = 0
    average_steps: float = 0.0
    total_investment: float = 0.0
    total_max_gain: float = 0.0
    average_performance: float = 0.0
    completed_challenges: int = 0
    failed_challenges: int = 0
    abandoned_challenges: int = 0
    in_progress_challenges: int = 0


@dataclass
class AnalyticsData:
    best_performing_challenge: Optional[BettingChallenge] = None
    challenges_over_threshold: int = 0
    average_performance: float = 0.0
    total_net_gain: float = 0.0
    success_rate: float = 0.0


@dataclass
class DailyStats:
    date: str
    total_challenges: int = 0
    completed_challenges: int = 0
    failed_challenges: int = 0
    total_profit: float = 0.0


Record = Union[Challenge, BettingChallenge]


# ============================================================
#  HELPERS
# ============================================================

def round2(value: float) -> float:
    """Round to 2 decimals, halves away from zero (0.125 -> 0.13)."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def summarize_challenge(challenge: Challenge) -> BettingChallenge:
    """
    Flatten a ledger challenge into a summary record.

    Funded ledgers invest their starting balance. Unfunded ledgers (start at 0)
    invest the opening stake, and the amount held after each step is that stake
    plus the running total.
    """
    if challenge.starting_balance > 0:
        initial = challenge.starting_balance
    elif challenge.steps:
        initial = challenge.steps[0].bet.amount
    else:
        initial = 0.0

    offset = initial - challenge.starting_balance
    max_amount = initial
    for s in challenge.steps:
        max_amount = max(max_amount, offset + s.total_after)

    return BettingChallenge(
        date=challenge.date,
        initial_investment=initial,
        total_steps=challenge.step_count,
        max_amount_reached=max_amount,
        final_result=challenge.final_result,
        id=challenge.id,
        created_at=challenge.created_at,
        updated_at=challenge.updated_at,
    )


def _summaries(collection: Iterable[Record]) -> List[BettingChallenge]:
    out: List[BettingChallenge] = []
    for c in collection:
        out.append(summarize_challenge(c) if isinstance(c, Challenge) else c)
    return out


def _result_of(record: Record) -> str:
    return normalize_result(record.final_result)


# ============================================================
#  PERFORMANCE
# ============================================================

def calculate_performance(max_amount: float, initial_investment: float) -> float:
    if initial_investment <= 0:
        return 0.0
    return (max_amount / initial_investment) * 100 - 100


def calculate_net_gain(max_amount: float, initial_investment: float) -> float:
    return max_amount - initial_investment


def _performance(s: BettingChallenge) -> float:
    return calculate_performance(s.max_amount_reached, s.initial_investment)


# ============================================================
#  STATS + ANALYTICS
# ============================================================

def calculate_stats(collection: Iterable[Record]) -> ChallengeStats:
    rows = _summaries(collection)
    if not rows:
        return ChallengeStats()

    n = len(rows)
    results = [_result_of(r) for r in rows]

    return ChallengeStats(
        total_challenges=n,
        average_steps=round2(sum(r.total_steps for r in rows) / n),
        total_investment=sum(r.initial_investment for r in rows),
        total_max_gain=sum(r.max_amount_reached for r in rows),
        average_performance=round2(sum(_performance(r) for r in rows) / n),
        completed_challenges=results.count(COMPLETED),
        failed_challenges=results.count(FAILED),
        abandoned_challenges=results.count(ABANDONED),
        in_progress_challenges=results.count(IN_PROGRESS),
    )


def calculate_analytics(
    collection: Iterable[Record],
    step_threshold: int = DEFAULT_STEP_THRESHOLD,
) -> AnalyticsData:
    rows = _summaries(collection)
    if not rows:
        return AnalyticsData()

    n = len(rows)

    # First record wins ties
    best: Optional[BettingChallenge] = None
    best_perf = float("-inf")
    for r in rows:
        p = _performance(r)
        if p > best_perf:
            best, best_perf = r, p

    completed = sum(1 for r in rows if _result_of(r) == COMPLETED)

    return AnalyticsData(
        best_performing_challenge=best,
        challenges_over_threshold=sum(1 for r in rows if r.total_steps > step_threshold),
        average_performance=round2(sum(_performance(r) for r in rows) / n),
        total_net_gain=round2(
            sum(calculate_net_gain(r.max_amount_reached, r.initial_investment) for r in rows)
        ),
        success_rate=round2(completed / n * 100),
    )


def daily_stats(challenges: Iterable[Challenge], date: str) -> DailyStats:
    """Totals for one calendar day; challenges from other days are ignored."""
    todays = [c for c in challenges if c.date == date]
    return DailyStats(
        date=date,
        total_challenges=len(todays),
        completed_challenges=sum(1 for c in todays if c.final_result == COMPLETED),
        failed_challenges=sum(1 for c in todays if c.final_result == FAILED),
        total_profit=sum(c.total_profit for c in todays),
    )


# ============================================================
#  FILTERS
# ============================================================

def filter_by_date_range(collection: Iterable[Record], start: Optional[str], end: Optional[str]) -> List[Record]:
    """
    Inclusive range on ISO dates. Plain string comparison is enough because
    YYYY-MM-DD sorts lexicographically. A blank bound leaves that side open.
    """
    out: List[Record] = []
    for c in collection:
        if start and c.date < start:
            continue
        if end and c.date > end:
            continue
        out.append(c)
    return out


def filter_by_result(collection: Iterable[Record], result: Optional[str]) -> List[Record]:
    wanted = normalize_result(result)
    if wanted == ALL:
        return list(collection)
    return [c for c in collection if _result_of(c) == wanted]


def unique_dates(collection: Iterable[Record]) -> List[str]:
    """Distinct dates, newest first (for date pickers)."""
    return sorted({c.date for c in collection}, reverse=True)


# ============================================================
#  EXPORT
# ============================================================

def steps_to_dataframe(challenges: Iterable[Challenge]) -> pd.DataFrame:
    """One row per step, for history tables and CSV export."""
    columns = [
        "Challenge", "Date", "Step", "Amount", "Odds", "Result",
        "Profit", "Total Before", "Total After", "Final Result",
    ]
    data: List[Dict[str, Any]] = []
    for c in challenges:
        for s in c.steps:
            data.append({
                "Challenge": c.id,
                "Date": c.date,
                "Step": s.step_number,
                "Amount": s.bet.amount,
                "Odds": s.bet.odds,
                "Result": s.bet.result,
                "Profit": s.profit,
                "Total Before": s.total_before,
                "Total After": s.total_after,
                "Final Result": c.final_result,
            })
    return pd.DataFrame(data, columns=columns)


def summaries_to_dataframe(collection: Iterable[Record]) -> pd.DataFrame:
    """One row per challenge with its performance figures."""
    columns = [
        "Date", "Initial Investment", "Steps", "Max Amount",
        "Performance (%)", "Net Gain", "Result", "Observations",
    ]
    data: List[Dict[str, Any]] = []
    for r in _summaries(collection):
        data.append({
            "Date": r.date,
            "Initial Investment": r.initial_investment,
            "Steps": r.total_steps,
            "Max Amount": r.max_amount_reached,
            "Performance (%)": round2(_performance(r)),
            "Net Gain": round2(calculate_net_gain(r.max_amount_reached, r.initial_investment)),
            "Result": _result_of(r),
            "Observations": r.observations or "",
        })
    return pd.DataFrame(data, columns=columns)
