from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from .models import (
    BEARISH,
    BULLISH,
    DOWNTREND,
    ENTRY_ZONE,
    FLAT,
    LONG,
    OVERBOUGHT,
    OVEREXTENDED,
    OVERSOLD,
    RETRACING,
    SHORT,
    UPTREND,
    ScoreTerm,
    TimeframeAnalysis,
)
from .profiles import StrategyProfile


@dataclass(frozen=True)
class ScoreWeights:
    anchor_trend: float = 0.40
    confirm_budget: float = 0.20
    confirm_flat_share: float = 1.0 / 3.0
    pullback_entry_zone: float = 0.15
    pullback_retracing: float = 0.08
    pullback_overextended: float = -0.10
    oscillator_budget: float = 0.15
    oscillator_exhausted_penalty: float = -0.05
    structure_favorable: float = 0.10
    structure_other: float = 0.05


DEFAULT_WEIGHTS = ScoreWeights()


@dataclass(frozen=True)
class ConfluenceScore:
    direction: str
    terms: Tuple[ScoreTerm, ...]
    raw: float
    confidence: float


def trend_for(direction: str) -> str:
    return UPTREND if direction == LONG else DOWNTREND


def opposite_trend(direction: str) -> str:
    return DOWNTREND if direction == LONG else UPTREND


def effective_trend(a: Optional[TimeframeAnalysis]) -> str:
    """Unknown trend behaves like FLAT."""
    return a.trend if a is not None else FLAT


def _anchor_term(direction: str, tf: str, a: Optional[TimeframeAnalysis], w: ScoreWeights) -> ScoreTerm:
    trend = effective_trend(a)
    if trend == trend_for(direction):
        return ScoreTerm(f"anchor_trend:{tf}", w.anchor_trend, f"{tf} {trend}")
    return ScoreTerm(f"anchor_trend:{tf}", 0.0, f"{tf} {trend}")


def _confirm_term(direction: str, tf: str, a: Optional[TimeframeAnalysis], share: float, w: ScoreWeights) -> ScoreTerm:
    trend = effective_trend(a)
    note = f"{tf} {trend}" if a is not None else f"{tf} unknown"
    if trend == trend_for(direction):
        return ScoreTerm(f"confirm:{tf}", share, note)
    if trend == opposite_trend(direction):
        return ScoreTerm(f"confirm:{tf}", -share, note)
    return ScoreTerm(f"confirm:{tf}", share * w.confirm_flat_share, note)


def _pullback_term(tf: str, a: Optional[TimeframeAnalysis], w: ScoreWeights) -> ScoreTerm:
    state = a.pullback_state if a is not None else None
    if state == ENTRY_ZONE:
        return ScoreTerm(f"pullback:{tf}", w.pullback_entry_zone, f"{tf} {state}")
    if state == RETRACING:
        return ScoreTerm(f"pullback:{tf}", w.pullback_retracing, f"{tf} {state}")
    if state == OVEREXTENDED:
        return ScoreTerm(f"pullback:{tf}", w.pullback_overextended, f"{tf} {state}")
    return ScoreTerm(f"pullback:{tf}", 0.0, f"{tf} unknown")


def _oscillator_term(direction: str, tf: str, a: Optional[TimeframeAnalysis], share: float, w: ScoreWeights) -> ScoreTerm:
    if a is None or a.oscillator_k is None:
        return ScoreTerm(f"oscillator:{tf}", 0.0, f"{tf} unknown")
    wanted = BULLISH if direction == LONG else BEARISH
    exhausted = OVERBOUGHT if direction == LONG else OVERSOLD
    value = share if a.oscillator_direction == wanted else 0.0
    if a.oscillator_zone == exhausted and w.oscillator_budget:
        # penalty is scaled to this timeframe's share of the budget
        value += share / w.oscillator_budget * w.oscillator_exhausted_penalty
    return ScoreTerm(
        f"oscillator:{tf}",
        value,
        f"{tf} {a.oscillator_direction} {a.oscillator_zone} k={a.oscillator_k:.1f}",
    )


def _structure_term(direction: str, tf: str, a: Optional[TimeframeAnalysis], w: ScoreWeights) -> ScoreTerm:
    if a is None or a.swing_high is None or a.swing_low is None or a.swing_high <= a.swing_low:
        return ScoreTerm(f"structure:{tf}", 0.0, f"{tf} no range")
    position = (a.current_price - a.swing_low) / (a.swing_high - a.swing_low)
    favorable = position < 0.5 if direction == LONG else position > 0.5
    value = w.structure_favorable if favorable else w.structure_other
    return ScoreTerm(f"structure:{tf}", value, f"{tf} range position {position:.2f}")


def score_confluence(
    direction: str,
    analyses: Mapping[str, Optional[TimeframeAnalysis]],
    profile: StrategyProfile,
    anchor_timeframe: str,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> ConfluenceScore:
    """Itemised confidence for a LONG or SHORT hypothesis.

    Terms are evaluated in a fixed order: anchor trend, each confirmation
    timeframe, pullback, each entry timeframe's oscillator, then structure.
    The confidence is the clamped sum of the terms.
    """
    if direction not in (LONG, SHORT):
        raise ValueError(f"direction must be LONG or SHORT, got {direction!r}")
    w = weights
    terms = [_anchor_term(direction, anchor_timeframe, analyses.get(anchor_timeframe), w)]

    confirms = profile.confirm_timeframes
    if confirms:
        share = w.confirm_budget / len(confirms)
        for tf in confirms:
            terms.append(_confirm_term(direction, tf, analyses.get(tf), share, w))

    pb_tf = profile.pullback_timeframe or anchor_timeframe
    terms.append(_pullback_term(pb_tf, analyses.get(pb_tf), w))

    share = w.oscillator_budget / len(profile.entry_timeframes)
    for tf in profile.entry_timeframes:
        terms.append(_oscillator_term(direction, tf, analyses.get(tf), share, w))

    terms.append(_structure_term(direction, anchor_timeframe, analyses.get(anchor_timeframe), w))

    raw = sum(t.value for t in terms)
    confidence = min(1.0, max(0.0, raw))
    return ConfluenceScore(direction=direction, terms=tuple(terms), raw=raw, confidence=confidence)
