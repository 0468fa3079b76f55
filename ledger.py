# ledger.py — pending-bet state machine over a BankrollLedger value
#
#   IDLE --propose_bet--> PENDING --resolve--> IDLE (history += ResolvedBet)
#   any  --reset_all(confirm=True)--> IDLE (initial ledger)
#   any  --import_ledger--> IDLE (pending bet dropped)
#
# Every transition is a pure function: it takes a ledger and returns a new one.
# The ledger session owns the current instance and persistence.
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
import datetime as dt
import json
import math
import uuid

from engine import (
    INITIAL_BANKROLL,
    MIN_STAKE,
    ProgressionState,
    StakeDecision,
    StakingPolicyConfig,
    clamp_stake,
    format_money,
    next_stake,
    settle,
    LABEL_INVALID,
    LABEL_KELLY_NEGATIVE,
    LABEL_NEGATIVE_EV,
)


class LedgerStateError(RuntimeError):
    """Transition attempted from the wrong phase (caller bug)."""


class LedgerImportError(ValueError):
    """Snapshot failed shape validation; nothing was applied."""


class LedgerPhase(str, Enum):
    IDLE = "IDLE"
    PENDING = "PENDING"


@dataclass(frozen=True)
class PendingBet:
    id: str
    policy_label: str
    stake_amount: float
    odd: float


@dataclass(frozen=True)
class ResolvedBet:
    id: str
    policy_label: str
    stake_amount: float
    odd: float
    won: bool
    profit_or_loss: float
    bankroll_after: float
    resolved_at: str = ""


@dataclass(frozen=True)
class BankrollLedger:
    """ProgressionState + oldest-first history + at most one pending bet."""
    state: ProgressionState = field(default_factory=lambda: ProgressionState(bankroll=INITIAL_BANKROLL))
    history: Tuple[ResolvedBet, ...] = ()
    pending: Optional[PendingBet] = None

    @property
    def phase(self) -> LedgerPhase:
        return LedgerPhase.PENDING if self.pending is not None else LedgerPhase.IDLE

    @property
    def bankroll(self) -> float:
        return self.state.bankroll


@dataclass(frozen=True)
class Proposal:
    """Result of propose_bet. On refusal `ledger` is the unchanged input."""
    ledger: BankrollLedger
    decision: StakeDecision
    refused: bool = False
    message: str = ""

    @property
    def pending(self) -> Optional[PendingBet]:
        return self.ledger.pending


def initial_ledger(bankroll: float = INITIAL_BANKROLL) -> BankrollLedger:
    return BankrollLedger(state=ProgressionState(bankroll=float(bankroll)))


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def _coerce_odd(odd: Any) -> float:
    """Numbers and numeric strings from the UI; anything else becomes NaN."""
    if isinstance(odd, bool):
        return math.nan
    try:
        return float(odd)
    except (TypeError, ValueError):
        return math.nan


def _refusal_message(decision: StakeDecision, odd: Any) -> str:
    if decision.label == LABEL_INVALID:
        return f"Odd {odd!r} is not a valid decimal odd (must be a number greater than 1)."
    if decision.label == LABEL_NEGATIVE_EV:
        return f"Odd {odd} is below the minimum viable odd: no stake recommended (negative EV)."
    if decision.label == LABEL_KELLY_NEGATIVE:
        return f"Odd {odd} has no positive edge under Kelly: no stake recommended."
    return "Bankroll too small to place a stake."


# ============================================================
#  TRANSITIONS
# ============================================================

def propose_bet(
    ledger: BankrollLedger,
    cfg: StakingPolicyConfig,
    odd: float,
    bet_id: Optional[str] = None,
) -> Proposal:
    """
    IDLE only. Refusals (invalid odd, negative EV, nothing to stake) leave the
    ledger IDLE and come back as Proposal(refused=True).
    """
    if ledger.phase is not LedgerPhase.IDLE:
        raise LedgerStateError("Cannot propose a bet while another one is pending.")

    odd_value = _coerce_odd(odd)
    decision = next_stake(cfg, ledger.state, odd_value)

    # Soros sizes the stake from the carry, but a pending bet still needs a real odd
    if not (math.isfinite(odd_value) and odd_value > 1.0):
        decision = StakeDecision(stake=0.0, label=LABEL_INVALID)

    if decision.is_refusal:
        return Proposal(ledger=ledger, decision=decision, refused=True,
                        message=_refusal_message(decision, odd))

    stake = clamp_stake(decision.stake, ledger.bankroll)
    if stake < MIN_STAKE:
        refused = StakeDecision(stake=0.0, label=decision.label)
        return Proposal(ledger=ledger, decision=refused, refused=True,
                        message=_refusal_message(refused, odd))

    pending = PendingBet(
        id=bet_id or uuid.uuid4().hex,
        policy_label=decision.label,
        stake_amount=stake,
        odd=odd_value,
    )
    return Proposal(
        ledger=replace(ledger, pending=pending),
        decision=StakeDecision(stake=stake, label=decision.label),
    )


def resolve(
    ledger: BankrollLedger,
    won: bool,
    resolved_at: Optional[str] = None,
) -> Tuple[BankrollLedger, ResolvedBet]:
    """PENDING only. Settles, appends to history, back to IDLE."""
    bet = ledger.pending
    if bet is None:
        raise LedgerStateError("Cannot resolve: no bet is pending.")

    s = settle(ledger.state, bet.stake_amount, bet.odd, won=bool(won))
    resolved = ResolvedBet(
        id=bet.id,
        policy_label=bet.policy_label,
        stake_amount=bet.stake_amount,
        odd=bet.odd,
        won=bool(won),
        profit_or_loss=s.profit_or_loss,
        bankroll_after=s.state.bankroll,
        resolved_at=resolved_at or _now_iso(),
    )
    new_ledger = BankrollLedger(state=s.state, history=ledger.history + (resolved,), pending=None)
    return new_ledger, resolved


def cancel_pending(ledger: BankrollLedger) -> BankrollLedger:
    """Drop the proposal without touching bankroll or history."""
    if ledger.pending is None:
        raise LedgerStateError("Cannot cancel: no bet is pending.")
    return replace(ledger, pending=None)


def reset_all(
    ledger: BankrollLedger,
    confirm: bool = False,
    bankroll: float = INITIAL_BANKROLL,
) -> BankrollLedger:
    """Destructive: wipes history, progression and any pending bet."""
    if confirm is not True:
        raise LedgerStateError("reset_all is destructive and requires confirm=True.")
    return initial_ledger(bankroll)


def set_bankroll(ledger: BankrollLedger, amount: float) -> BankrollLedger:
    """Manual bankroll edit. IDLE only; progression flags are left as they are."""
    if ledger.phase is not LedgerPhase.IDLE:
        raise LedgerStateError("Cannot edit the bankroll while a bet is pending.")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValueError(f"Bankroll must be a number, got {amount!r}")
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"Bankroll must be a finite number >= 0, got {amount!r}")
    return replace(ledger, state=replace(ledger.state, bankroll=value))


# ============================================================
#  EXPORT / IMPORT (persistence record + downloadable file)
# ============================================================

def _bet_to_dict(b: ResolvedBet) -> Dict[str, Any]:
    return {
        "id": b.id,
        "policyLabel": b.policy_label,
        "stakeAmount": b.stake_amount,
        "odd": b.odd,
        "won": b.won,
        "profitOrLoss": b.profit_or_loss,
        "bankrollAfter": b.bankroll_after,
        "resolvedAt": b.resolved_at,
    }


def export_ledger(ledger: BankrollLedger) -> Dict[str, Any]:
    """
    Persistence/export shape:

      {
        "bankroll": float,
        "sorosActive": bool,
        "sorosCarryAmount": float,
        "history": [ResolvedBet dict, ...]   # oldest first
      }

    The pending bet is never exported.
    """
    return {
        "bankroll": ledger.state.bankroll,
        "sorosActive": ledger.state.soros_active,
        "sorosCarryAmount": ledger.state.soros_carry_amount,
        "history": [_bet_to_dict(b) for b in ledger.history],
    }


def export_ledger_json(ledger: BankrollLedger, indent: Optional[int] = 2) -> str:
    return json.dumps(export_ledger(ledger), indent=indent, ensure_ascii=False)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _req_number(d: Dict[str, Any], key: str, where: str) -> float:
    if key not in d:
        raise LedgerImportError(f"{where}: missing required field '{key}'.")
    v = d[key]
    if not _is_number(v):
        raise LedgerImportError(f"{where}: field '{key}' must be a finite number, got {v!r}.")
    return float(v)


def _bet_from_dict(raw: Any, i: int) -> ResolvedBet:
    where = f"history[{i}]"
    if not isinstance(raw, dict):
        raise LedgerImportError(f"{where}: expected an object, got {type(raw).__name__}.")

    won = raw.get("won")
    if not isinstance(won, bool):
        raise LedgerImportError(f"{where}: field 'won' must be true or false, got {won!r}.")

    bet_id = raw.get("id")
    if bet_id is None or str(bet_id) == "":
        raise LedgerImportError(f"{where}: missing required field 'id'.")

    stake = _req_number(raw, "stakeAmount", where)
    odd = _req_number(raw, "odd", where)
    if stake <= 0:
        raise LedgerImportError(f"{where}: 'stakeAmount' must be > 0, got {stake!r}.")
    if odd <= 1:
        raise LedgerImportError(f"{where}: 'odd' must be > 1, got {odd!r}.")

    return ResolvedBet(
        id=str(bet_id),
        policy_label=str(raw.get("policyLabel") or ""),
        stake_amount=stake,
        odd=odd,
        won=won,
        profit_or_loss=_req_number(raw, "profitOrLoss", where),
        bankroll_after=_req_number(raw, "bankrollAfter", where),
        resolved_at=str(raw.get("resolvedAt") or ""),
    )


def import_ledger(snapshot: Union[Dict[str, Any], str, bytes]) -> BankrollLedger:
    """
    Rebuild a ledger from export_ledger() output (dict or JSON text).

    Requires a numeric `bankroll` and a `history` list; Soros fields default to
    off. Raises LedgerImportError with the first problem found. Any pending
    bet is discarded, never restored.
    """
    if isinstance(snapshot, (str, bytes)):
        try:
            snapshot = json.loads(snapshot)
        except ValueError as e:
            raise LedgerImportError(f"Snapshot is not valid JSON: {e}") from e

    if not isinstance(snapshot, dict):
        raise LedgerImportError(f"Snapshot must be an object, got {type(snapshot).__name__}.")

    bankroll = _req_number(snapshot, "bankroll", "snapshot")
    if bankroll < 0:
        raise LedgerImportError(f"snapshot: 'bankroll' must be >= 0, got {bankroll!r}.")

    raw_history = snapshot.get("history")
    if not isinstance(raw_history, list):
        raise LedgerImportError("snapshot: 'history' must be a list.")

    soros_active = snapshot.get("sorosActive", False)
    if not isinstance(soros_active, bool):
        raise LedgerImportError(f"snapshot: 'sorosActive' must be true or false, got {soros_active!r}.")

    carry = snapshot.get("sorosCarryAmount", 0.0)
    if not _is_number(carry) or carry < 0:
        raise LedgerImportError(f"snapshot: 'sorosCarryAmount' must be a number >= 0, got {carry!r}.")
    if carry > 0 and not soros_active:
        raise LedgerImportError("snapshot: 'sorosCarryAmount' is set but 'sorosActive' is false.")

    history: List[ResolvedBet] = [_bet_from_dict(raw, i) for i, raw in enumerate(raw_history)]

    return BankrollLedger(
        state=ProgressionState(
            bankroll=bankroll,
            soros_active=soros_active,
            soros_carry_amount=float(carry),
        ),
        history=tuple(history),
        pending=None,
    )


def describe(ledger: BankrollLedger) -> str:
    """One-line status for inline messages."""
    status = f"Bankroll {format_money(ledger.bankroll)}"
    if ledger.state.soros_active:
        status += f" · Soros armed ({format_money(ledger.state.soros_carry_amount)})"
    if ledger.pending is not None:
        p = ledger.pending
        status += f" · pending {p.policy_label} {format_money(p.stake_amount)} @ {p.odd}"
    return status
