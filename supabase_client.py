# supabase_client.py — Supabase client for the ledger store (anon key, RLS enforced)
from __future__ import annotations

from dataclasses import dataclass

import streamlit as st

from supabase import Client, ClientOptions, create_client

from config import app_env, get_secret

_SESSION_KEY = "supabase_client_anon"


class SupabaseConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class SupabaseSettings:
    env: str
    url: str
    anon_key: str


def load_settings() -> SupabaseSettings:
    """Credentials for the active APP_ENV (SUPABASE_URL_DEV / _PROD, same for the key)."""
    env = app_env()
    suffix = "DEV" if env == "dev" else "PROD"

    url = get_secret(f"SUPABASE_URL_{suffix}")
    anon_key = get_secret(f"SUPABASE_ANON_KEY_{suffix}")
    if not url or not anon_key:
        raise SupabaseConfigError(
            f"Ledger store is not configured for APP_ENV={env!r}: "
            f"set SUPABASE_URL_{suffix} and SUPABASE_ANON_KEY_{suffix}."
        )
    return SupabaseSettings(env=env, url=url, anon_key=anon_key)


def _make_client(settings: SupabaseSettings) -> Client:
    # the host app owns login; the SDK must not persist or refresh sessions
    opts = ClientOptions(persist_session=False, auto_refresh_token=False)
    return create_client(settings.url, settings.anon_key, options=opts)


def get_supabase() -> Client:
    """One client per Streamlit session, built on first use."""
    client = st.session_state.get(_SESSION_KEY)
    if client is None:
        client = _make_client(load_settings())
        st.session_state[_SESSION_KEY] = client
    return client


def reset_supabase_client() -> None:
    """Drop the cached client so the next get_supabase() builds a fresh one (logout / user switch)."""
    st.session_state.pop(_SESSION_KEY, None)
