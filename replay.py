# replay.py — folds the staking policy over historical outcomes into a bankroll curve
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union
import datetime as dt

from engine import (
    INITIAL_BANKROLL,
    ProgressionState,
    StakingPolicyConfig,
    clamp_stake,
    format_money,
    next_stake,
    settle,
)
from feed_parser import Outcome, OutcomeRecord
from aggregation import SummaryStats, filter_by_year, summary_stats

# Historical feed carries no per-match odds: every step uses the average
AVERAGE_ODD: float = 1.28
FLAT_STAKE_UNITS: float = 5.0

OddSource = Union[float, Callable[[OutcomeRecord], float]]


@dataclass(frozen=True)
class BankrollPoint:
    index: int
    bankroll_after: float
    outcome: Outcome
    annotation: str
    occurred_at: Optional[dt.date] = None
    stake: float = 0.0
    label: str = ""
    profit_or_loss: float = 0.0


@dataclass(frozen=True)
class ReplayResult:
    series: List[BankrollPoint]
    stats: SummaryStats
    final_state: ProgressionState

    @property
    def final_bankroll(self) -> float:
        return self.final_state.bankroll


def _odd_for(source: OddSource, record: OutcomeRecord) -> float:
    if callable(source):
        return float(source(record))
    return float(source)


def _annotate(record: OutcomeRecord, label: str, stake: float, bankroll_after: float) -> str:
    parts = [record.occurred_at.isoformat()]
    match = record.participants
    if record.score_label:
        match = f"{match} {record.score_label}"
    if match:
        parts.append(match)
    parts.append(record.outcome.value)
    parts.append(f"{label} {format_money(stake)}")
    parts.append(f"bankroll {format_money(bankroll_after)}")
    return " · ".join(parts)


def replay(
    cfg: StakingPolicyConfig,
    records: Sequence[OutcomeRecord],
    odd: OddSource = AVERAGE_ODD,
    initial_bankroll: float = INITIAL_BANKROLL,
) -> ReplayResult:
    """
    Replay `records` (already sorted by date) from a fresh bankroll.

    Each step: policy decision -> clamp to [MIN_STAKE, bankroll] -> settle.
    Amounts accumulate at full precision; only annotations are rounded.
    """
    state = ProgressionState(bankroll=float(initial_bankroll))
    series: List[BankrollPoint] = []

    for i, rec in enumerate(records, start=1):
        step_odd = _odd_for(odd, rec)
        decision = next_stake(cfg, state, step_odd)
        stake = clamp_stake(decision.stake, state.bankroll)

        s = settle(state, stake, step_odd, won=rec.won)
        state = s.state

        series.append(
            BankrollPoint(
                index=i,
                bankroll_after=state.bankroll,
                outcome=rec.outcome,
                annotation=_annotate(rec, decision.label, stake, state.bankroll),
                occurred_at=rec.occurred_at,
                stake=stake,
                label=decision.label,
                profit_or_loss=s.profit_or_loss,
            )
        )

    return ReplayResult(series=series, stats=summary_stats(records), final_state=state)


def replay_year(
    cfg: StakingPolicyConfig,
    records: Sequence[OutcomeRecord],
    year: Optional[Union[int, str]] = None,
    odd: OddSource = AVERAGE_ODD,
    initial_bankroll: float = INITIAL_BANKROLL,
) -> ReplayResult:
    """Filter first, then replay from the initial bankroll. Never resumes mid-series."""
    return replay(cfg, filter_by_year(records, year), odd=odd, initial_bankroll=initial_bankroll)


# ============================================================
# SIMPLE CURVES (dashboard modes)
# ============================================================

def score_series(records: Sequence[OutcomeRecord]) -> List[int]:
    """Running wins minus losses."""
    out: List[int] = []
    score = 0
    for rec in records:
        score += 1 if rec.won else -1
        out.append(score)
    return out


def flat_stake_series(
    records: Sequence[OutcomeRecord],
    stake: float = FLAT_STAKE_UNITS,
    odd: float = AVERAGE_ODD,
    initial_bankroll: float = INITIAL_BANKROLL,
) -> List[float]:
    """Bankroll in units with a fixed, non-compounding stake per entry."""
    out: List[float] = []
    bankroll = float(initial_bankroll)
    for rec in records:
        if rec.won:
            bankroll += stake * (odd - 1.0)
        else:
            bankroll -= stake
        out.append(bankroll)
    return out
