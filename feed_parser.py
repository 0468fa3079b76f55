# feed_parser.py — tolerant block parsers for the results feed and the signals feed
#
# Both feeds are free text split into blocks by a header marker. Blocks that
# can't be understood are dropped silently: noise is routine, not an error.
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import datetime as dt
import re

__all__ = [
    "Outcome",
    "OutcomeRecord",
    "Signal",
    "SignalsFeed",
    "best_guess_date",
    "parse",
    "parse_signals",
    "free_signals",
]


class Outcome(str, Enum):
    WIN = "WIN"
    LOSS = "LOSS"


@dataclass(frozen=True)
class OutcomeRecord:
    sequence_index: int
    occurred_at: dt.date
    participants: str
    score_label: str
    outcome: Outcome
    profile: str = "N/A"

    @property
    def won(self) -> bool:
        return self.outcome is Outcome.WIN


# ----------------------------- Results feed -----------------------------

_BLOCK_SPLIT_RE = re.compile(r"\[R\d+\]")

# Report chrome that surrounds the blocks in the backtest export
_NOISE_RES = [
    re.compile(r"--- RELATÓRIO COMPLETO DE BACKTEST[^\n]*"),
    re.compile(r"RODADAS ANALISADAS: \d+ a \d+"),
    re.compile(r"-{5,}"),
    re.compile(r"Total de Entradas \(Aptas\): \d+"),
    re.compile(r"Total de Greens: \d+"),
    re.compile(r"Total de Reds: \d+"),
    re.compile(r"Assertividade: \d+(?:\.\d+)?%?"),
]

_RESULT_RE = re.compile(r"RESULTADO:\s*(green|red)\b", re.IGNORECASE)
_DATE_RE = re.compile(r"(?<!\d)(\d{4}-\d{2}-\d{2})(?!\d)")
_TEAMS_RE = re.compile(r"^(.+?)\s+(\d+\s*[–-]\s*\d+)\s+(.+)$")

_RESULT_MAP = {"green": Outcome.WIN, "red": Outcome.LOSS}


def _strip_noise(text: str) -> str:
    for rx in _NOISE_RES:
        text = rx.sub("", text)
    return text


def _date_tokens(block: str) -> List[dt.date]:
    out: List[dt.date] = []
    for token in _DATE_RE.findall(block):
        try:
            out.append(dt.date.fromisoformat(token))
        except ValueError:
            # 2023-13-45 and friends
            continue
    return out


def best_guess_date(dates: Iterable[dt.date]) -> Optional[dt.date]:
    """
    Disambiguation policy for blocks carrying several dates: the latest one
    is the best guess for when the match was played. None when empty.
    """
    dates = list(dates)
    if not dates:
        return None
    return max(dates)


def _teams_and_score(first_line: str) -> Tuple[str, str]:
    m = _TEAMS_RE.match(first_line)
    if not m:
        return first_line, ""
    home, score, away = m.group(1).strip(), m.group(2), m.group(3).strip()
    score = re.sub(r"\s*[–-]\s*", "–", score)
    return f"{home} vs {away}", score


def _profile(lines: List[str]) -> str:
    for line in lines:
        if line.startswith("Perfil:"):
            label = line.split("|")[0].replace("Perfil:", "").strip()
            return label or "N/A"
    return "N/A"


def _parse_block(index: int, block: str) -> Optional[OutcomeRecord]:
    lines = [ln.strip() for ln in block.strip().split("\n")]
    lines = [ln for ln in lines if ln]
    if not lines:
        return None

    outcome = None
    for line in lines:
        m = _RESULT_RE.search(line)
        if m:
            outcome = _RESULT_MAP[m.group(1).lower()]
            break
    if outcome is None:
        return None

    occurred_at = best_guess_date(_date_tokens(block))
    if occurred_at is None:
        return None

    participants, score = _teams_and_score(lines[0])
    return OutcomeRecord(
        sequence_index=index,
        occurred_at=occurred_at,
        participants=participants,
        score_label=score,
        outcome=outcome,
        profile=_profile(lines),
    )


def parse(raw_text: str) -> List[OutcomeRecord]:
    """
    Results feed -> OutcomeRecords sorted ascending by date (ties keep
    input order). Returns [] on empty or unparsable input.
    """
    if not raw_text or not isinstance(raw_text, str):
        return []

    cleaned = _strip_noise(raw_text)
    blocks = [b for b in _BLOCK_SPLIT_RE.split(cleaned) if b.strip()]

    records: List[OutcomeRecord] = []
    for index, block in enumerate(blocks):
        rec = _parse_block(index, block)
        if rec is not None:
            records.append(rec)

    # sorted() is stable, so equal dates keep their feed order
    return sorted(records, key=lambda r: r.occurred_at)


# ----------------------------- Signals feed -----------------------------

SIGNAL_MARKER = "🎯 PARTIDA:"
TITLE_PREFIX = "--- DICAS E ANÁLISE"
DEFAULT_TITLE = "Dicas da Semana"

DEFAULT_PROFILE = "Não especificado"
DEFAULT_ANALYSIS = "Análise não disponível."
DEFAULT_WARNING = "Nenhum ponto de atenção específico."
BET_SUGGESTION = "Mercado de Menos de 3.5 Gols."
FREE_SIGNAL_COUNT = 2

_PROFILE_KEY = "PERFIL ENCONTRADO:"
_ANALYSIS_KEY = "RESUMO DA ANÁLISE:"
_WARNING_KEY = "PONTO DE ATENÇÃO:"
_METRICS_KEY = "MÉTRICAS CHAVE:"
_METRIC_LINE_RE = re.compile(r"^\s*-\s*([^:]+):\s*(.+)$")
# leading number of the value; trailing units or text are ignored ("87%" -> 87, "1.3x" -> 1.3)
_METRIC_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass
class Signal:
    match: str
    profile: str = DEFAULT_PROFILE
    analysis: str = DEFAULT_ANALYSIS
    warning: str = DEFAULT_WARNING
    metrics: Dict[str, float] = field(default_factory=dict)
    bet_suggestion: str = BET_SUGGESTION
    is_free: bool = False


@dataclass
class SignalsFeed:
    title: str
    signals: List[Signal] = field(default_factory=list)


@dataclass
class _SignalDraft:
    """Mutable accumulator while walking a block's lines."""
    match: str
    profile: Optional[str] = None
    analysis: str = ""
    warning: str = ""
    metrics: Optional[Dict[str, float]] = None
    section: str = ""

    def finish(self, is_free: bool) -> Signal:
        return Signal(
            match=self.match,
            profile=self.profile or DEFAULT_PROFILE,
            analysis=self.analysis.strip() or DEFAULT_ANALYSIS,
            warning=self.warning.strip() or DEFAULT_WARNING,
            metrics=dict(self.metrics or {}),
            is_free=is_free,
        )


def _after(line: str, key: str) -> str:
    return line.split(key, 1)[1].strip()


def _set_profile(d: _SignalDraft, line: str) -> None:
    d.profile = _after(line, _PROFILE_KEY).replace('"', "").strip() or None
    d.section = ""


def _add_analysis(d: _SignalDraft, line: str) -> None:
    d.analysis += _after(line, _ANALYSIS_KEY) + " "
    d.section = ""


def _add_warning(d: _SignalDraft, line: str) -> None:
    d.warning += _after(line, _WARNING_KEY) + " "
    d.section = ""


def _open_metrics(d: _SignalDraft, line: str) -> None:
    d.metrics = d.metrics if d.metrics is not None else {}
    d.section = "metrics"


def _is_metric_line(d: _SignalDraft, line: str) -> bool:
    return d.section == "metrics" and bool(_METRIC_LINE_RE.match(line))


def _add_metric(d: _SignalDraft, line: str) -> None:
    m = _METRIC_LINE_RE.match(line)
    if not m:
        return
    num = _METRIC_NUMBER_RE.match(m.group(2).strip())
    if not num:
        return
    value = float(num.group(0))
    if d.metrics is None:
        d.metrics = {}
    d.metrics[m.group(1).strip()] = value


def _is_separator(line: str) -> bool:
    return "---" in line or "===" in line


def _continue_text(d: _SignalDraft, line: str) -> None:
    if d.warning:
        d.warning += line.strip() + " "
    elif d.analysis:
        d.analysis += line.strip() + " "


# Ordered (matcher, setter) table: first match wins. Add fields here.
LineRule = Tuple[Callable[[_SignalDraft, str], bool], Callable[[_SignalDraft, str], None]]

SIGNAL_LINE_RULES: List[LineRule] = [
    (lambda d, ln: _PROFILE_KEY in ln, _set_profile),
    (lambda d, ln: _ANALYSIS_KEY in ln, _add_analysis),
    (lambda d, ln: _WARNING_KEY in ln, _add_warning),
    (lambda d, ln: _METRICS_KEY in ln, _open_metrics),
    (_is_metric_line, _add_metric),
    (lambda d, ln: _is_separator(ln) or not ln.strip(), lambda d, ln: None),
    (lambda d, ln: True, _continue_text),
]


def _classify(draft: _SignalDraft, line: str, rules: List[LineRule]) -> None:
    for matches, apply in rules:
        if matches(draft, line):
            apply(draft, line)
            return


def _feed_title(text: str) -> str:
    for line in text.split("\n"):
        line = line.strip()
        if line.startswith(TITLE_PREFIX):
            return line.replace("---", "").strip() or DEFAULT_TITLE
    return DEFAULT_TITLE


def parse_signals(raw_text: str, rules: Optional[List[LineRule]] = None) -> SignalsFeed:
    """
    Signals feed -> SignalsFeed. Blocks are headed by "🎯 PARTIDA:"; the first
    FREE_SIGNAL_COUNT signals are flagged free.
    """
    if not raw_text or not isinstance(raw_text, str):
        return SignalsFeed(title=DEFAULT_TITLE)

    rules = rules or SIGNAL_LINE_RULES
    blocks = raw_text.split(SIGNAL_MARKER)[1:]

    signals: List[Signal] = []
    for block in blocks:
        lines = block.strip().split("\n")
        # empty blocks still count as signals (match ""), free slots included
        match = lines[0].strip() if lines else ""
        draft = _SignalDraft(match=match)
        for line in lines[1:]:
            _classify(draft, line.rstrip(), rules)
        signals.append(draft.finish(is_free=len(signals) < FREE_SIGNAL_COUNT))

    return SignalsFeed(title=_feed_title(raw_text), signals=signals)


def free_signals(feed: SignalsFeed) -> List[Signal]:
    return [s for s in feed.signals if s.is_free]
