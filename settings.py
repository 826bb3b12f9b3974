# settings.py — env / Streamlit secrets configuration for the ledger + storage
from __future__ import annotations

import os
from typing import Any, Optional

import streamlit as st

from engine import LedgerPolicy

# ----------------------------- Defaults -----------------------------

DEFAULT_COMPLETION_STEPS = 3
DEFAULT_MIN_ODDS = 1.0
DEFAULT_STEP_THRESHOLD = 5
DEFAULT_STORE_PATH = "challenges.json"

STORAGE_BACKENDS = ("local", "supabase")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}
_MANUAL = {"0", "manual", "none", "off"}


def _get_secret(name: str, default: Any = None) -> Any:
    """Read from env var or Streamlit secrets."""
    v = os.getenv(name)
    if v:
        return v
    try:
        if name in st.secrets:
            v2 = st.secrets[name]
            if v2 is not None and v2 != "":
                return v2
    except Exception:
        # no secrets.toml outside `streamlit run`
        pass
    return default


def app_env() -> str:
    return str(_get_secret("APP_ENV", "prod") or "prod").lower().strip()


def _flag(name: str, default: bool) -> bool:
    raw = _get_secret(name)
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    s = str(raw).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    print(f"[settings] {name}={raw!r} is not a boolean; using {default}")
    return default


def _float(name: str, default: float) -> float:
    raw = _get_secret(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        print(f"[settings] {name}={raw!r} is not a number; using {default}")
        return default


def _int(name: str, default: int) -> int:
    raw = _get_secret(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        print(f"[settings] {name}={raw!r} is not an integer; using {default}")
        return default


def _completion_steps() -> Optional[int]:
    raw = _get_secret("CHALLENGE_COMPLETION_STEPS")
    if raw is None:
        return DEFAULT_COMPLETION_STEPS
    if str(raw).strip().lower() in _MANUAL:
        return None
    try:
        n = int(raw)
    except (TypeError, ValueError):
        print(f"[settings] CHALLENGE_COMPLETION_STEPS={raw!r} is invalid; using {DEFAULT_COMPLETION_STEPS}")
        return DEFAULT_COMPLETION_STEPS
    return n if n > 0 else None


# ---------------------- Public API ----------------------

def load_policy() -> LedgerPolicy:
    """
    Ledger variant from config:
      CHALLENGE_COMPLETION_STEPS  int, or 0/manual/none for manual finish only
      CHALLENGE_CAP_STAKE         bool
      CHALLENGE_MIN_ODDS          float (odds must be strictly greater)
    """
    return LedgerPolicy(
        completion_steps=_completion_steps(),
        cap_stake=_flag("CHALLENGE_CAP_STAKE", False),
        min_odds=_float("CHALLENGE_MIN_ODDS", DEFAULT_MIN_ODDS),
    )


def storage_backend() -> str:
    backend = str(_get_secret("CHALLENGE_STORAGE", "local") or "local").lower().strip()
    if backend not in STORAGE_BACKENDS:
        print(f"[settings] unknown CHALLENGE_STORAGE={backend!r}; using local")
        return "local"
    return backend


def local_store_path() -> str:
    return str(_get_secret("CHALLENGE_STORE_PATH", DEFAULT_STORE_PATH))


def analytics_step_threshold() -> int:
    return _int("CHALLENGE_ANALYTICS_STEP_THRESHOLD", DEFAULT_STEP_THRESHOLD)
