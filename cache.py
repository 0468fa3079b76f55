# cache.py — Session-scoped caching for feeds and ledger sessions
#
# Parsed feeds and the per-user LedgerSession live in st.session_state so a
# Streamlit rerun doesn't refetch the feed or reload the ledger. Each cache is
# invalidated explicitly.

import streamlit as st
from typing import Callable, List, Optional

from feed_parser import OutcomeRecord, SignalsFeed
from db import LedgerLoadError
from ledger_manager import LedgerSession
from supabase_client import reset_supabase_client


# ============================================================
#  OUTCOME RECORDS CACHE (results feed)
# ============================================================

def get_cached_outcomes(url: str, loader_fn: Callable[[str], List[OutcomeRecord]]) -> List[OutcomeRecord]:
    """
    Cache the parsed results feed for this URL.

    Usage:
        from cache import get_cached_outcomes
        records = get_cached_outcomes(results_feed_url(), load_outcomes)
    """
    if not url:
        return []

    cache_key = f"_cache_outcomes_{url}"

    if cache_key not in st.session_state:
        try:
            st.session_state[cache_key] = loader_fn(url) or []
        except Exception as e:
            # feed outages show as "no data"; next rerun retries
            print(f"[cache] get_cached_outcomes loader error: {e!r}")
            return []

    return st.session_state[cache_key]


def invalidate_outcomes_cache(url: str) -> None:
    if not url:
        return
    cache_key = f"_cache_outcomes_{url}"
    if cache_key in st.session_state:
        del st.session_state[cache_key]


# ============================================================
#  SIGNALS FEED CACHE
# ============================================================

def get_cached_signals(url: str, loader_fn: Callable[[str], SignalsFeed]) -> Optional[SignalsFeed]:
    if not url:
        return None

    cache_key = f"_cache_signals_{url}"

    if cache_key not in st.session_state:
        try:
            st.session_state[cache_key] = loader_fn(url)
        except Exception as e:
            print(f"[cache] get_cached_signals loader error: {e!r}")
            return None

    return st.session_state[cache_key]


def invalidate_signals_cache(url: str) -> None:
    if not url:
        return
    cache_key = f"_cache_signals_{url}"
    if cache_key in st.session_state:
        del st.session_state[cache_key]


# ============================================================
#  LEDGER SESSION (one writer per user per browser session)
# ============================================================

def get_cached_ledger_session(
    user_id: str,
    factory: Callable[[str], LedgerSession],
) -> Optional[LedgerSession]:
    """
    Return this user's LedgerSession, creating it on first access. The session
    is loaded lazily; a failed load stays visible on session.load_error and
    the next call retries it.

    Usage:
        from ledger_manager import supabase_session
        session = get_cached_ledger_session(USER_ID, supabase_session)
    """
    if not user_id:
        return None

    cache_key = f"_cache_ledger_session_{user_id}"

    session = st.session_state.get(cache_key)
    if session is None:
        session = factory(user_id)
        st.session_state[cache_key] = session

    if not session.is_loaded:
        try:
            session.load()
        except LedgerLoadError as e:
            print(f"[cache] ledger load error user={user_id}: {e!r}")

    return session


def invalidate_ledger_session(user_id: str) -> None:
    if not user_id:
        return
    cache_key = f"_cache_ledger_session_{user_id}"
    if cache_key in st.session_state:
        del st.session_state[cache_key]


# ============================================================
#  CONVENIENCE: clear everything on logout / user switch
# ============================================================

def clear_all_user_caches() -> None:
    """
    Clear ALL user-specific caches regardless of user_id.
    Call on logout/login to ensure no data bleeds between users.
    """
    prefixes = (
        "_cache_ledger_session_",
    )
    keys_to_delete = [k for k in list(st.session_state.keys()) if any(k.startswith(p) for p in prefixes)]
    for k in keys_to_delete:
        del st.session_state[k]
    reset_supabase_client()
