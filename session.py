# session.py — one explicit challenge session: ledger + store, no globals
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from engine import (
    Challenge,
    ChallengeTerminated,
    InsufficientFunds,
    InvalidInput,
    LedgerPolicy,
    Step,
    apply_bet,
    finish_challenge,
    preview_bet,
    start_challenge,
    verify_ledger,
    IN_PROGRESS,
)
from storage import ChallengeNotFound, ChallengeStore, StorageUnavailable
from supabase_client import SupabaseConfigError


def _today_key() -> str:
    return datetime.now().strftime("%Y-%m-%d")


class ChallengeSession:
    """
    The active challenge for one user session, threaded explicitly through
    the pure ledger functions and persisted through a ChallengeStore.

    Write order: compute with the ledger, persist, then adopt the new state.
    A failed store call raises and leaves `current` at the last accepted state.
    The store is never rolled back; call reload() to reconcile after an error.
    """

    def __init__(
        self,
        store: ChallengeStore,
        policy: Optional[LedgerPolicy] = None,
        today: Optional[str] = None,
        on_change: Optional[Callable[[Challenge], None]] = None,
    ):
        self.store = store
        self.policy = policy or LedgerPolicy()
        self.today: str = today or _today_key()
        self.on_change = on_change
        self.current: Optional[Challenge] = None

    # ---- state ----
    @property
    def current_total(self) -> float:
        return self.current.current_total if self.current is not None else 0.0

    @property
    def has_active(self) -> bool:
        return self.current is not None and not self.current.is_terminal

    def _adopt(self, ch: Challenge) -> Challenge:
        self.current = ch
        if self.on_change is not None:
            self.on_change(ch)
        return ch

    def _require_current(self) -> Challenge:
        if self.current is None:
            raise InvalidInput("No active challenge. Start a new one first.")
        return self.current

    # ---- loading ----
    def load_today(self) -> List[Challenge]:
        """
        Load today's challenges and adopt the most recent in-progress one.
        Returns the full list (newest first) for display.
        """
        todays = self.store.list_by_date(self.today)
        active = next((c for c in todays if c.final_result == IN_PROGRESS), None)
        if active is not None:
            problems = verify_ledger(active)
            if problems:
                print(f"[session.load_today] ledger {active.id} failed checks: {problems}")
        self.current = active
        return todays

    def reload(self) -> Optional[Challenge]:
        """Re-read the current challenge from the store (after a failed write)."""
        if self.current is None:
            return None
        return self._adopt(self.store.get_challenge(self.current.id))

    # ---- operations ----
    def start(self, starting_balance: float = 0.0, date: Optional[str] = None) -> Challenge:
        if self.has_active:
            raise InvalidInput("Finish the active challenge before starting a new one.")

        day = date or self.today
        # validate before touching the store
        start_challenge(day, starting_balance)
        cid = self.store.create_challenge(day, starting_balance)
        return self._adopt(start_challenge(day, starting_balance, challenge_id=cid))

    def place_bet(self, amount: float, odds: float, result: str) -> Step:
        ch = self._require_current()
        updated = apply_bet(ch, amount, odds, result, self.policy)  # type: ignore[arg-type]
        step = updated.steps[-1]
        self.store.append_step(ch.id, step, final_result=updated.final_result)
        self._adopt(updated)
        return step

    def finish(self) -> Challenge:
        ch = self._require_current()
        done = finish_challenge(ch)
        self.store.set_final_result(ch.id, done.final_result)
        return self._adopt(done)

    def preview(self, amount: float, odds: float) -> Dict[str, Any]:
        if self.current is None:
            return preview_bet(start_challenge(self.today), amount, odds)
        return preview_bet(self.current, amount, odds)


# ============================================================
#  USER-FACING MESSAGES
# ============================================================

def describe_error(exc: BaseException) -> str:
    """Turn any ledger / storage error into a message for the page."""
    if isinstance(exc, ChallengeTerminated):
        return "This challenge is already finished. Start a new challenge to keep betting."
    if isinstance(exc, InsufficientFunds):
        return f"Stake exceeds the available balance. {exc}"
    if isinstance(exc, InvalidInput):
        return f"Please check your entry: {exc}"
    if isinstance(exc, ChallengeNotFound):
        return "This challenge no longer exists. Reload the page."
    if isinstance(exc, StorageUnavailable):
        return "Could not save or load challenges right now. Please try again."
    if isinstance(exc, SupabaseConfigError):
        return "Storage is not configured. Check the Supabase settings."
    return f"Unexpected error: {exc!r}"
