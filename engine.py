# engine.py — Staking Policy Engine (fixed stake / Kelly / Soros level 1)
#
# POLICY (priority order):
# 1. Soros active            -> stake = carry amount           "Soros level 1"
# 2. Odd not finite or <= 1  -> 0                              "invalid"
# 3. Odd < minimum viable    -> 0                              "negative EV"
# 4. Odd <= low threshold    -> bankroll × fixed fraction      "fixed stake"
# 5. Kelly f <= 0            -> 0                              "Kelly EV-"
#    Kelly f > 0             -> bankroll × f                   "Kelly 25.56%"
#
# Soros never compounds beyond one level: after a Soros win the progression
# goes back to the base policy.

from dataclasses import dataclass, replace
from typing import Optional
import math

# ============================================================
# POLICY DEFAULTS
# ============================================================
WIN_RATE: float = 0.807
LOW_ODD_THRESHOLD: float = 1.27
FIXED_STAKE_FRACTION: float = 0.05
MINIMUM_VIABLE_ODD: float = 1.24

MIN_STAKE: float = 0.01
INITIAL_BANKROLL: float = 100.0

LABEL_SOROS = "Soros level 1"
LABEL_INVALID = "invalid"
LABEL_NEGATIVE_EV = "negative EV"
LABEL_FIXED = "fixed stake"
LABEL_KELLY_NEGATIVE = "Kelly EV-"


@dataclass(frozen=True)
class StakingPolicyConfig:
    """Business policy knobs, set once per run."""
    win_rate: float = WIN_RATE
    low_odd_threshold: float = LOW_ODD_THRESHOLD
    fixed_stake_fraction: float = FIXED_STAKE_FRACTION
    minimum_viable_odd: float = MINIMUM_VIABLE_ODD

    def __post_init__(self) -> None:
        if not (0.0 < self.win_rate < 1.0):
            raise ValueError(f"win_rate must be in (0, 1), got {self.win_rate!r}")
        if not (0.0 < self.fixed_stake_fraction < 1.0):
            raise ValueError(
                f"fixed_stake_fraction must be in (0, 1), got {self.fixed_stake_fraction!r}"
            )
        for name in ("low_odd_threshold", "minimum_viable_odd"):
            v = getattr(self, name)
            if not math.isfinite(v):
                raise ValueError(f"{name} must be a finite number, got {v!r}")


@dataclass(frozen=True)
class ProgressionState:
    """The only mutable piece of a simulation, threaded step to step."""
    bankroll: float = INITIAL_BANKROLL
    soros_active: bool = False
    soros_carry_amount: float = 0.0

    def __post_init__(self) -> None:
        if not math.isfinite(self.bankroll) or self.bankroll < 0:
            raise ValueError(f"bankroll must be a finite number >= 0, got {self.bankroll!r}")
        if self.soros_carry_amount < 0:
            raise ValueError(f"soros_carry_amount must be >= 0, got {self.soros_carry_amount!r}")
        if self.soros_carry_amount > 0 and not self.soros_active:
            raise ValueError("soros_carry_amount > 0 requires soros_active")


@dataclass(frozen=True)
class StakeDecision:
    stake: float
    label: str

    @property
    def is_refusal(self) -> bool:
        return self.stake <= 0


@dataclass(frozen=True)
class Settlement:
    """Outcome of applying one win/loss to a ProgressionState."""
    stake: float
    profit_or_loss: float
    state: ProgressionState


def kelly_fraction(win_rate: float, odd: float) -> float:
    """Raw Kelly fraction for decimal odds. Can be negative (EV-)."""
    b = odd - 1.0
    return (win_rate * b - (1.0 - win_rate)) / b


def _is_valid_odd(odd) -> bool:
    try:
        v = float(odd)
    except (TypeError, ValueError):
        return False
    return math.isfinite(v) and v > 1.0


def next_stake(cfg: StakingPolicyConfig, state: ProgressionState, odd: float) -> StakeDecision:
    if state.soros_active:
        return StakeDecision(stake=state.soros_carry_amount, label=LABEL_SOROS)

    if not _is_valid_odd(odd):
        return StakeDecision(stake=0.0, label=LABEL_INVALID)
    odd = float(odd)

    if odd < cfg.minimum_viable_odd:
        return StakeDecision(stake=0.0, label=LABEL_NEGATIVE_EV)

    if odd <= cfg.low_odd_threshold:
        return StakeDecision(stake=state.bankroll * cfg.fixed_stake_fraction, label=LABEL_FIXED)

    f = kelly_fraction(cfg.win_rate, odd)
    if f <= 0:
        return StakeDecision(stake=0.0, label=LABEL_KELLY_NEGATIVE)
    return StakeDecision(stake=state.bankroll * f, label=f"Kelly {f * 100:.2f}%")


def clamp_stake(stake: float, bankroll: float, minimum: float = MIN_STAKE) -> float:
    """Never below the minimum unit, never above the bankroll."""
    return min(max(stake, minimum), bankroll)


def settle(state: ProgressionState, stake: float, odd: float, won: bool) -> Settlement:
    """
    Apply one outcome.

    WIN:  bankroll += stake × (odd - 1). Soros activates with
          carry = stake + profit if it was off; switches off if it was on.
    LOSS: bankroll -= stake. Soros switches off.
    """
    if won:
        profit = stake * (odd - 1.0)
        if state.soros_active:
            new_state = ProgressionState(bankroll=state.bankroll + profit)
        else:
            new_state = ProgressionState(
                bankroll=state.bankroll + profit,
                soros_active=True,
                soros_carry_amount=stake + profit,
            )
        return Settlement(stake=stake, profit_or_loss=profit, state=new_state)

    # stake is clamped to the bankroll upstream, so this stays >= 0
    return Settlement(
        stake=stake,
        profit_or_loss=-stake,
        state=replace(
            state,
            bankroll=state.bankroll - stake,
            soros_active=False,
            soros_carry_amount=0.0,
        ),
    )


def format_money(amount: Optional[float]) -> str:
    """Two-decimal display rounding. Never feed the result back into math."""
    if amount is None:
        return "—"
    return f"{amount:.2f}"
