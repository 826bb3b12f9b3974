# cache.py — Session-scoped caching for challenge data
#
# Reduces store round-trips by caching challenge lists and summary records
# in st.session_state. Each cache is invalidated explicitly when data changes.

import streamlit as st
from typing import Any, Callable, List, Optional

from engine import Challenge, LedgerPolicy
from session import ChallengeSession
from storage import ChallengeStore

_ALL = "all"

_PREFIXES = (
    "_cache_challenges_",
    "_cache_summaries",
    "_cache_daily_stats_",
)


# ============================================================
#  CHALLENGE LIST CACHE (per date, or all)
# ============================================================

def get_cached_challenges(store: ChallengeStore, date: Optional[str] = None) -> List[Challenge]:
    """
    Cache the challenge list for one day (or all days). Only reload on explicit invalidation.

    Usage:
        from cache import get_cached_challenges
        todays = get_cached_challenges(store, "2025-06-01")
    """
    cache_key = f"_cache_challenges_{date or _ALL}"

    if cache_key not in st.session_state:
        loaded = store.list_by_date(date) if date else store.list_all()
        st.session_state[cache_key] = loaded

    return st.session_state[cache_key]


def invalidate_challenges_cache(date: Optional[str] = None) -> None:
    """
    Call after creating a challenge or appending a step.
    Drops the given day and the all-days list.
    """
    for key in {f"_cache_challenges_{date or _ALL}", f"_cache_challenges_{_ALL}", f"_cache_daily_stats_{date}"}:
        if key in st.session_state:
            del st.session_state[key]


def get_cached_daily_stats(store: ChallengeStore, date: str) -> Any:
    cache_key = f"_cache_daily_stats_{date}"
    if cache_key not in st.session_state:
        st.session_state[cache_key] = store.get_daily_stats(date)
    return st.session_state[cache_key]


# ============================================================
#  SUMMARY RECORDS CACHE
# ============================================================

def get_cached_summaries(store: ChallengeStore) -> List[Any]:
    if "_cache_summaries" not in st.session_state:
        st.session_state["_cache_summaries"] = store.list_summaries()
    return st.session_state["_cache_summaries"]


def invalidate_summaries_cache() -> None:
    """
    Call after adding, editing or deleting a summary record.
    """
    if "_cache_summaries" in st.session_state:
        del st.session_state["_cache_summaries"]


# ============================================================
#  ACTIVE SESSION (one ChallengeSession per browser session)
# ============================================================

def get_session(
    store: ChallengeStore,
    policy: Optional[LedgerPolicy] = None,
    factory: Callable[..., ChallengeSession] = ChallengeSession,
) -> ChallengeSession:
    """
    Return this browser session's ChallengeSession, creating and loading it once.
    Writes through the session invalidate the challenge caches.
    """
    sess = st.session_state.get("_challenge_session")
    if sess is not None:
        return sess

    def _on_change(ch: Challenge) -> None:
        invalidate_challenges_cache(ch.date)

    sess = factory(store, policy=policy, on_change=_on_change)
    sess.load_today()
    st.session_state["_challenge_session"] = sess
    return sess


def clear_all_caches() -> None:
    """
    Clear every cached list and the bound session.
    Call after switching storage backend or clearing data.
    """
    keys_to_delete = [k for k in list(st.session_state.keys()) if any(k.startswith(p) for p in _PREFIXES)]
    for k in keys_to_delete:
        del st.session_state[k]
    st.session_state.pop("_challenge_session", None)
