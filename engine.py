# engine.py — Step Ledger Engine
#
# Pure ledger logic for staking challenges. No Streamlit, no storage calls.
#
# STATE MACHINE:
# - in_progress (initial) -> completed | failed (terminal)
# - failed:    bet lost OR balance after the step <= 0
# - completed: step count reaches the policy threshold (or manual finish)
#
# PROFIT:
# - win:  amount * odds - amount
# - loss: -amount

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date as _date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple
import math
import uuid

BetResult = Literal["win", "loss", "pending"]
FinalResult = Literal["in_progress", "completed", "failed"]

IN_PROGRESS = "in_progress"
COMPLETED = "completed"
FAILED = "failed"


# ============================================================
# ERRORS
# ============================================================
class LedgerError(ValueError):
    pass


class InvalidInput(LedgerError):
    """Non-positive amount/odds, missing result selection, bad date."""


class ChallengeTerminated(LedgerError):
    """Mutation attempted on a completed or failed challenge."""


class InsufficientFunds(LedgerError):
    """Stake exceeds the balance available when the stake cap is enforced."""


# ============================================================
# POLICY
# ============================================================
@dataclass(frozen=True)
class LedgerPolicy:
    """
    Rules that differ between staking variants.

    completion_steps: auto-complete after this many steps (None = manual finish only)
    cap_stake:        stake may not exceed the running balance
    min_odds:         odds must be strictly greater than this
    """
    completion_steps: Optional[int] = 3
    cap_stake: bool = False
    min_odds: float = 1.0


DEFAULT_POLICY = LedgerPolicy()


# ============================================================
# DATA MODEL
# ============================================================
def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Bet:
    amount: float
    odds: float
    result: BetResult
    profit: float
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class Step:
    step_number: int
    bet: Bet
    total_before: float
    total_after: float
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_now)

    @property
    def profit(self) -> float:
        return self.bet.profit


@dataclass(frozen=True)
class Challenge:
    """One staking session. Steps are append-only; a new Challenge is returned on every change."""
    date: str
    steps: Tuple[Step, ...] = ()
    total_profit: float = 0.0
    final_result: FinalResult = IN_PROGRESS
    starting_balance: float = 0.0
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def current_total(self) -> float:
        if self.steps:
            return self.steps[-1].total_after
        return self.starting_balance

    @property
    def is_terminal(self) -> bool:
        return self.final_result != IN_PROGRESS

    @property
    def step_count(self) -> int:
        return len(self.steps)


# ============================================================
# VALIDATION
# ============================================================
def _positive(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    if not math.isfinite(v) or v <= 0:
        raise InvalidInput(f"{name} must be greater than 0, got {value!r}")
    return v


def _check_date(value: str) -> str:
    try:
        _date.fromisoformat(str(value))
    except ValueError:
        raise InvalidInput(f"date must be YYYY-MM-DD, got {value!r}")
    return str(value)


# ============================================================
# PROFIT
# ============================================================
def calculate_bet_profit(amount: float, odds: float, result: BetResult) -> float:
    if result == "win":
        return amount * odds - amount
    if result == "loss":
        return -amount
    return 0.0


def potential_win(amount: float, odds: float) -> float:
    """Profit if the bet wins; 0 while the form is incomplete."""
    try:
        a, o = float(amount), float(odds)
    except (TypeError, ValueError):
        return 0.0
    if a <= 0 or o <= 0:
        return 0.0
    return a * o - a


def preview_bet(challenge: Challenge, amount: float, odds: float) -> Dict[str, Any]:
    """Return preview of the next step for UI display."""
    win = potential_win(amount, odds)
    total = challenge.current_total
    try:
        stake = max(0.0, float(amount))
    except (TypeError, ValueError):
        stake = 0.0
    return {
        "step_number": challenge.step_count + 1,
        "potential_profit": win,
        "total_if_win": total + win,
        "total_if_loss": total - stake,
        "current_total": total,
    }


# ============================================================
# STATE MACHINE
# ============================================================
def start_challenge(
    date: str,
    starting_balance: float = 0.0,
    challenge_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Challenge:
    """Create an empty in-progress challenge for a calendar day."""
    day = _check_date(date)
    try:
        balance = float(starting_balance)
    except (TypeError, ValueError):
        raise InvalidInput(f"starting_balance must be a number, got {starting_balance!r}")
    if not math.isfinite(balance) or balance < 0:
        raise InvalidInput(f"starting_balance must be >= 0, got {starting_balance!r}")

    ts = now or _now()
    return Challenge(
        date=day,
        starting_balance=balance,
        id=challenge_id or _new_id(),
        created_at=ts,
        updated_at=ts,
    )


def _next_state(policy: LedgerPolicy, result: str, step_number: int, total_after: float) -> FinalResult:
    if result == "loss" or total_after <= 0:
        return FAILED
    if policy.completion_steps is not None and step_number >= policy.completion_steps:
        return COMPLETED
    return IN_PROGRESS


def apply_bet(
    challenge: Challenge,
    amount: float,
    odds: float,
    result: BetResult,
    policy: LedgerPolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
) -> Challenge:
    """
    Settle one bet and append it as the next step.

    Checks run in order: terminal state, amount, odds, result selection, stake cap.
    The stake cap is skipped for the opening stake of an unfunded ledger
    (starting_balance == 0 and no steps yet), since there is no balance to cap against.

    Returns the updated challenge; the input is left untouched.
    """
    if challenge.is_terminal:
        raise ChallengeTerminated(
            f"challenge {challenge.id} is {challenge.final_result}; no further steps allowed"
        )

    stake = _positive("amount", amount)
    price = _positive("odds", odds)
    if price <= policy.min_odds:
        raise InvalidInput(f"odds must be greater than {policy.min_odds:g}, got {odds!r}")

    if result not in ("win", "loss"):
        raise InvalidInput(f"select a result (win or loss), got {result!r}")

    total_before = challenge.current_total
    funded = bool(challenge.steps) or challenge.starting_balance > 0
    if policy.cap_stake and funded and stake > total_before:
        raise InsufficientFunds(
            f"stake {stake:g} exceeds available balance {total_before:g}"
        )

    ts = now or _now()
    profit = calculate_bet_profit(stake, price, result)
    total_after = total_before + profit
    step_number = challenge.step_count + 1

    step = Step(
        step_number=step_number,
        bet=Bet(amount=stake, odds=price, result=result, profit=profit, timestamp=ts),
        total_before=total_before,
        total_after=total_after,
        timestamp=ts,
    )

    return replace(
        challenge,
        steps=challenge.steps + (step,),
        total_profit=challenge.total_profit + profit,
        final_result=_next_state(policy, result, step_number, total_after),
        updated_at=ts,
    )


def finish_challenge(challenge: Challenge, now: Optional[datetime] = None) -> Challenge:
    """Manual finish: force completed regardless of balance."""
    if challenge.is_terminal:
        raise ChallengeTerminated(
            f"challenge {challenge.id} is already {challenge.final_result}"
        )
    return replace(challenge, final_result=COMPLETED, updated_at=now or _now())


# ============================================================
# INVARIANTS
# ============================================================
def verify_ledger(challenge: Challenge, tol: float = 1e-9) -> List[str]:
    """
    Return a list of broken ledger invariants (empty when the ledger is sound).

    Used when ledgers come back from storage, where rows may have been edited by hand.
    """
    problems: List[str] = []
    running = challenge.starting_balance
    profit_sum = 0.0

    for i, s in enumerate(challenge.steps):
        if s.step_number != i + 1:
            problems.append(f"step {i + 1} numbered {s.step_number}")
        if abs(s.total_before - running) > tol:
            problems.append(f"step {i + 1} total_before {s.total_before} != {running}")
        if abs(s.total_after - (s.total_before + s.profit)) > tol:
            problems.append(f"step {i + 1} total_after does not match profit")
        running = s.total_after
        profit_sum += s.profit

    if abs(challenge.total_profit - profit_sum) > tol:
        problems.append(f"total_profit {challenge.total_profit} != sum of steps {profit_sum}")

    if challenge.steps and any(s.bet.result == "pending" for s in challenge.steps):
        problems.append("pending bet committed to ledger")

    return problems
