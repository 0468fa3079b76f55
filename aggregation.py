# aggregation.py — year filters + counting stats over outcome records
#
# DataFrame helpers feed the charting layer; counting stats stay plain so the
# replay loop doesn't pay for pandas on every call.
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Union

import pandas as pd

if TYPE_CHECKING:
    from feed_parser import OutcomeRecord
    from replay import BankrollPoint

ALL_YEARS = "all"
# year-selector labels that mean "no filter" (the feed UI is in Portuguese)
_ALL_YEARS_LABELS = {ALL_YEARS, "todos"}


@dataclass(frozen=True)
class SummaryStats:
    total: int = 0
    wins: int = 0
    losses: int = 0

    @property
    def win_rate(self) -> float:
        """Wins / total as a 0..1 fraction (0.0 when empty)."""
        if self.total <= 0:
            return 0.0
        return self.wins / self.total

    @property
    def win_rate_label(self) -> str:
        return f"{self.win_rate * 100:.2f}%"


def _year_key(year: Optional[Union[int, str]]) -> Optional[int]:
    if year is None:
        return None
    if isinstance(year, str):
        s = year.strip().lower()
        if not s or s in _ALL_YEARS_LABELS:
            return None
        try:
            return int(s)
        except ValueError:
            raise ValueError(f"year must be a number, \"all\" or None, got {year!r}") from None
    return int(year)


def filter_by_year(
    records: Sequence["OutcomeRecord"], year: Optional[Union[int, str]] = None
) -> List["OutcomeRecord"]:
    """
    None, "all" or "Todos" keeps everything; any other non-numeric string
    raises ValueError. Order is preserved.
    """
    y = _year_key(year)
    if y is None:
        return list(records)
    return [r for r in records if r.occurred_at.year == y]


def available_years(records: Sequence["OutcomeRecord"]) -> List[int]:
    return sorted({r.occurred_at.year for r in records})


def summary_stats(records: Sequence["OutcomeRecord"]) -> SummaryStats:
    total = len(records)
    wins = sum(1 for r in records if r.won)
    return SummaryStats(total=total, wins=wins, losses=total - wins)


# ============================================================
#  DATAFRAMES (charting collaborator)
# ============================================================

_RECORD_COLUMNS = ["sequence_index", "occurred_at", "year", "participants", "score", "profile", "outcome"]
_SERIES_COLUMNS = ["index", "occurred_at", "outcome", "label", "stake", "profit_or_loss", "bankroll_after", "annotation"]


def records_frame(records: Sequence["OutcomeRecord"]) -> pd.DataFrame:
    data: List[dict] = []
    for r in records:
        data.append({
            "sequence_index": r.sequence_index,
            "occurred_at": pd.Timestamp(r.occurred_at),
            "year": r.occurred_at.year,
            "participants": r.participants,
            "score": r.score_label,
            "profile": r.profile,
            "outcome": r.outcome.value,
        })
    return pd.DataFrame(data, columns=_RECORD_COLUMNS)


def series_frame(series: Sequence["BankrollPoint"]) -> pd.DataFrame:
    data: List[dict] = []
    for p in series:
        data.append({
            "index": p.index,
            "occurred_at": pd.Timestamp(p.occurred_at) if p.occurred_at else pd.NaT,
            "outcome": p.outcome.value,
            "label": p.label,
            "stake": p.stake,
            "profit_or_loss": p.profit_or_loss,
            "bankroll_after": p.bankroll_after,
            "annotation": p.annotation,
        })
    return pd.DataFrame(data, columns=_SERIES_COLUMNS)


def yearly_breakdown(records: Sequence["OutcomeRecord"]) -> pd.DataFrame:
    """One row per year: total / wins / losses / win_rate (0..1)."""
    df = records_frame(records)
    if df.empty:
        return pd.DataFrame(columns=["year", "total", "wins", "losses", "win_rate"])

    df["win"] = (df["outcome"] == "WIN").astype(int)
    out = (
        df.groupby("year")
        .agg(total=("win", "size"), wins=("win", "sum"))
        .reset_index()
        .sort_values("year")
    )
    out["losses"] = out["total"] - out["wins"]
    out["win_rate"] = out["wins"] / out["total"]
    return out[["year", "total", "wins", "losses", "win_rate"]].reset_index(drop=True)


def stats_dict(stats: SummaryStats) -> dict[str, Any]:
    """Shape used by the stat cards."""
    return {
        "total": stats.total,
        "wins": stats.wins,
        "losses": stats.losses,
        "rate": stats.win_rate_label,
    }
