# db.py — persistence helpers for per-user bankroll ledgers (Supabase table: bankroll_ledgers)
#
# Table shape:
#   user_id      uuid  (unique)
#   ledger_json  jsonb  -> ledger.export_ledger() output
#   bankroll     numeric      summary columns, kept aligned with ledger_json
#   soros_active bool
#   bets_count   int
#   updated_at   timestamptz
#
# "No row yet" and "could not read" are different answers:
#   load_ledger_row() -> None              first-time user, seed defaults
#   load_ledger_row() -> LedgerLoadError   store failure, do NOT seed

from __future__ import annotations

from typing import Any, Dict, Optional
import datetime as dt
import json  # needed to decode jsonb coming back as strings

import time
import httpx

from supabase import Client

from supabase_client import get_supabase

LEDGER_TABLE = "bankroll_ledgers"


class LedgerLoadError(RuntimeError):
    """The store could not be read. Retryable; never means 'new user'."""


class LedgerSaveError(RuntimeError):
    """The store rejected or never acknowledged a write."""


def _sid(x: Any) -> str:
    """Safe id normalize (uuid.UUID -> str, None -> '')."""
    if x is None:
        return ""
    try:
        return str(x)
    except Exception:
        return ""


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def _execute_with_retry(q, *, tries: int = 3, base_sleep: float = 0.2):
    """
    Retry wrapper for transient PostgREST/httpx read/connect hiccups.
    q must be a PostgREST query object that supports .execute().
    """
    last_err = None
    for attempt in range(tries):
        try:
            return q.execute()
        except (httpx.ReadError, httpx.ConnectError, httpx.TimeoutException) as e:
            last_err = e
            print(f"[db] transient store error (attempt {attempt + 1}/{tries}): {e!r}")
            time.sleep(base_sleep * (2 ** attempt))  # 0.2, 0.4, 0.8
    raise last_err  # bubble after retries


# ---------- LEDGER ----------

def load_ledger_row(user_id: str, sb: Optional[Client] = None) -> Optional[Dict[str, Any]]:
    """
    Return the stored ledger snapshot for this user, or None if there is none.
    Raises LedgerLoadError when the store can't be read or the row is corrupt.
    """
    user_id = _sid(user_id)
    if not user_id:
        raise LedgerLoadError("Missing user_id. Refusing to load a ledger without an owner.")

    try:
        # client built in here too: missing credentials are a load failure
        sb = sb or get_supabase()
        q = (
            sb.table(LEDGER_TABLE)
            .select("ledger_json,updated_at")
            .eq("user_id", user_id)
            .limit(1)
        )
        res = _execute_with_retry(q)
    except Exception as e:
        print(f"[db] load_ledger_row error user={user_id}: {e!r}")
        raise LedgerLoadError(f"Could not load ledger for user {user_id}: {e}") from e

    rows = getattr(res, "data", None) or []
    if not rows:
        return None

    raw = (rows[0] or {}).get("ledger_json")
    if raw is None:
        return None

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            print(f"[db] load_ledger_row failed to json.loads(ledger_json) user={user_id}: {e!r}")
            raise LedgerLoadError(f"Stored ledger for user {user_id} is not valid JSON.") from e

    if not isinstance(raw, dict):
        raise LedgerLoadError(f"Stored ledger for user {user_id} is not an object.")

    return raw


def save_ledger_row(user_id: str, snapshot: Dict[str, Any], sb: Optional[Client] = None) -> None:
    """Upsert the full snapshot (last writer wins). Raises LedgerSaveError."""
    user_id = _sid(user_id)
    if not user_id or not isinstance(snapshot, dict):
        raise LedgerSaveError(
            f"Invalid save args user_id={user_id!r} type(snapshot)={type(snapshot).__name__}"
        )

    history = snapshot.get("history") or []
    payload = {
        "user_id": user_id,
        "ledger_json": snapshot,

        # summary columns (keep aligned with ledger_json)
        "bankroll": float(snapshot.get("bankroll", 0.0) or 0.0),
        "soros_active": bool(snapshot.get("sorosActive", False)),
        "bets_count": len(history),

        "updated_at": _now_iso(),
    }

    try:
        sb = sb or get_supabase()
        _execute_with_retry(sb.table(LEDGER_TABLE).upsert(payload, on_conflict="user_id"))
    except Exception as e:
        print(f"[db] save_ledger_row error user={user_id}: {e!r}")
        raise LedgerSaveError(f"Could not save ledger for user {user_id}: {e}") from e


class SupabaseLedgerStore:
    """LedgerStore backed by the bankroll_ledgers table."""

    def __init__(self, sb: Optional[Client] = None):
        self._sb = sb

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        return load_ledger_row(user_id, sb=self._sb)

    def save(self, user_id: str, snapshot: Dict[str, Any]) -> None:
        save_ledger_row(user_id, snapshot, sb=self._sb)
