# supabase_client.py — per-session Supabase client for the challenge tables
from __future__ import annotations

import streamlit as st

from supabase import create_client, Client

from settings import _get_secret, app_env

# ---- client options import (version-proof) ----
try:
    # newer supabase-py versions
    from supabase.lib.client_options import ClientOptions as _ClientOptions
except Exception:
    _ClientOptions = None  # type: ignore


class SupabaseConfigError(RuntimeError):
    pass


def _cfg():
    env = app_env()

    if env == "dev":
        url = _get_secret("SUPABASE_URL_DEV")
        key = _get_secret("SUPABASE_KEY_DEV")
    else:
        url = _get_secret("SUPABASE_URL_PROD")
        key = _get_secret("SUPABASE_KEY_PROD")

    if not url or not key:
        raise SupabaseConfigError(
            "Missing Supabase credentials. Need SUPABASE_URL_* and SUPABASE_KEY_* for active APP_ENV."
        )

    return env, str(url), str(key)


def _make_client(url: str, key: str) -> Client:
    """
    Single-user app: no auth session to persist or refresh.
    """
    if _ClientOptions is None:
        # Older supabase-py: no client options available
        return create_client(url, key)

    opts = _ClientOptions(
        persist_session=False,
        auto_refresh_token=False,
    )
    return create_client(url, key, options=opts)  # type: ignore[arg-type]


def get_supabase() -> Client:
    """Per-Streamlit-session client."""
    if st.session_state.get("supabase_client") is not None:
        return st.session_state.supabase_client

    _, url, key = _cfg()
    st.session_state.supabase_client = _make_client(url, key)
    return st.session_state.supabase_client


def reset_supabase_client():
    """
    Force creation of a new client on next get_supabase() call.
    Call this after changing APP_ENV or credentials.
    """
    st.session_state.pop("supabase_client", None)
