# ledger_manager.py — per-user ledger session: single writer, load/save policy
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Union
import threading

from engine import StakingPolicyConfig
from ledger import (
    BankrollLedger,
    LedgerImportError,
    Proposal,
    ResolvedBet,
    cancel_pending,
    export_ledger,
    export_ledger_json,
    import_ledger,
    initial_ledger,
    propose_bet,
    reset_all,
    resolve,
    set_bankroll,
)
from config import load_policy_config
from db import LedgerLoadError, LedgerSaveError, SupabaseLedgerStore


class LedgerStore(Protocol):
    """Key-value store for ledger snapshots, keyed by user id."""

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        """None when the user has no ledger yet; raise LedgerLoadError on failure."""

    def save(self, user_id: str, snapshot: Dict[str, Any]) -> None:
        """Raise LedgerSaveError on failure."""


class LedgerUnavailableError(RuntimeError):
    """The ledger isn't loaded (never loaded, or the last load failed)."""


@dataclass(frozen=True)
class SaveOutcome:
    saved: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class Resolution:
    bet: ResolvedBet
    ledger: BankrollLedger
    save: SaveOutcome


class LedgerSession:
    """
    Owns the single current BankrollLedger for one user.

    Every operation runs under one lock, store call included, so nothing
    mutates the ledger while a save is in flight. Committed transitions are
    applied in memory first; a failed save is reported, never rolled back
    (the store is last-writer-wins).

    This object holds no Streamlit state. The UI keeps one instance per user
    (see cache.get_cached_ledger_session).
    """

    def __init__(
        self,
        user_id: str,
        store: LedgerStore,
        cfg: Optional[StakingPolicyConfig] = None,
    ):
        self.user_id = str(user_id)
        self.cfg = cfg or StakingPolicyConfig()
        self._store = store
        self._lock = threading.RLock()

        self._ledger: Optional[BankrollLedger] = None
        self.load_error: Optional[str] = None
        self.last_save_error: Optional[str] = None
        self.is_new: bool = False

    # ---- load ----
    def load(self) -> BankrollLedger:
        """
        Load once per session. No stored row seeds defaults; a store failure
        leaves the session unusable and raises LedgerLoadError (call again to retry).
        """
        with self._lock:
            try:
                snap = self._store.load(self.user_id)
            except LedgerLoadError as e:
                self._ledger = None
                self.load_error = str(e)
                print(f"[ledger_manager] load failed user={self.user_id}: {e!r}")
                raise

            if snap is None:
                self._ledger = initial_ledger()
                self.is_new = True
            else:
                try:
                    self._ledger = import_ledger(snap)
                except LedgerImportError as e:
                    self._ledger = None
                    self.load_error = f"Stored ledger is malformed: {e}"
                    print(f"[ledger_manager] stored ledger rejected user={self.user_id}: {e!r}")
                    raise LedgerLoadError(self.load_error) from e
                self.is_new = False

            self.load_error = None
            return self._ledger

    @property
    def is_loaded(self) -> bool:
        return self._ledger is not None

    @property
    def ledger(self) -> BankrollLedger:
        if self._ledger is None:
            msg = self.load_error or "Ledger not loaded yet."
            raise LedgerUnavailableError(msg)
        return self._ledger

    # ---- persistence ----
    def _persist(self) -> SaveOutcome:
        try:
            self._store.save(self.user_id, export_ledger(self.ledger))
        except LedgerSaveError as e:
            self.last_save_error = str(e)
            print(f"[ledger_manager] save failed user={self.user_id} (kept in memory): {e!r}")
            return SaveOutcome(saved=False, error=self.last_save_error)
        self.last_save_error = None
        return SaveOutcome(saved=True)

    def retry_save(self) -> SaveOutcome:
        """Push the current in-memory ledger again after a failed save."""
        with self._lock:
            return self._persist()

    # ---- transitions ----
    def propose(self, odd: float) -> Proposal:
        """Pending bets live in memory only; nothing is saved here."""
        with self._lock:
            proposal = propose_bet(self.ledger, self.cfg, odd)
            if not proposal.refused:
                self._ledger = proposal.ledger
            return proposal

    def resolve(self, won: bool) -> Resolution:
        with self._lock:
            new_ledger, bet = resolve(self.ledger, won)
            self._ledger = new_ledger
            outcome = self._persist()
            return Resolution(bet=bet, ledger=new_ledger, save=outcome)

    def cancel(self) -> BankrollLedger:
        with self._lock:
            self._ledger = cancel_pending(self.ledger)
            return self._ledger

    def set_bankroll(self, amount: float) -> SaveOutcome:
        with self._lock:
            self._ledger = set_bankroll(self.ledger, amount)
            return self._persist()

    def reset(self, confirm: bool = False) -> SaveOutcome:
        with self._lock:
            self._ledger = reset_all(self.ledger, confirm=confirm)
            return self._persist()

    def import_snapshot(self, snapshot: Union[Dict[str, Any], str, bytes]) -> SaveOutcome:
        """
        Replace bankroll + history wholesale. Validation happens before any
        change; a rejected snapshot raises LedgerImportError and leaves the
        current ledger untouched. Any pending bet is dropped.
        """
        with self._lock:
            if not self.is_loaded:
                raise LedgerUnavailableError(self.load_error or "Ledger not loaded yet.")
            self._ledger = import_ledger(snapshot)
            return self._persist()

    def export_json(self) -> str:
        with self._lock:
            return export_ledger_json(self.ledger)


def supabase_session(user_id: str) -> LedgerSession:
    """Default factory: Supabase-backed store + policy from secrets."""
    return LedgerSession(user_id, SupabaseLedgerStore(), cfg=load_policy_config())
