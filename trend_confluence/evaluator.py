from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .analysis import analyze_all
from .config import AnalysisSettings
from .errors import (
    ANCHOR_FLAT,
    CONTRADICTION,
    INSUFFICIENT_DATA,
    INVALID_RISK,
    LOW_CONFIDENCE,
    MISSING_TIMEFRAME,
    OVEREXTENDED_PULLBACK,
)
from .models import (
    DOWNTREND,
    ENTRY_ZONE,
    LONG,
    NONE,
    OVEREXTENDED,
    RETRACING,
    SHORT,
    UPTREND,
    Candle,
    EntryZone,
    Signal,
    TimeframeAnalysis,
)
from .profiles import StrategyProfile
from .scoring import DEFAULT_WEIGHTS, ScoreWeights, effective_trend, score_confluence

log = logging.getLogger("evaluator")


@dataclass(frozen=True)
class EvaluationContext:
    """Per-call evaluation inputs. Nothing is kept between calls."""

    symbol: str = ""
    as_of_ms: Optional[int] = None
    settings: Optional[AnalysisSettings] = None


_NO_CONTEXT = EvaluationContext()


def _none(profile: StrategyProfile, ctx: EvaluationContext, code: str, reason: str, **kw) -> Signal:
    log.debug("no_signal symbol=%s profile=%s code=%s reason=%s", ctx.symbol or "-", profile.name, code, reason)
    return Signal(
        valid=False,
        direction=NONE,
        confidence=kw.pop("confidence", 0.0),
        reason=reason,
        reason_code=code,
        profile=profile.name,
        symbol=ctx.symbol,
        as_of_ms=ctx.as_of_ms,
        **kw,
    )


def _resolve_anchor(
    analyses: Mapping[str, Optional[TimeframeAnalysis]], profile: StrategyProfile
) -> Tuple[Optional[str], Optional[TimeframeAnalysis]]:
    for tf in profile.anchor_timeframes:
        a = analyses.get(tf)
        if a is not None and a.trend in (UPTREND, DOWNTREND):
            return tf, a
    return None, None


def _build_levels(
    direction: str,
    anchor: TimeframeAnalysis,
    stop_source: TimeframeAnalysis,
    profile: StrategyProfile,
) -> Tuple[EntryZone, Optional[float], Tuple[float, ...]]:
    tol = profile.entry_tolerance_pct
    ema21 = anchor.ema21
    zone = EntryZone(min=ema21 * (1.0 - tol), max=ema21 * (1.0 + tol))
    entry = zone.mid

    if direction == LONG:
        stop = stop_source.swing_low * (1.0 - profile.stop_buffer_pct)
        risk = entry - stop
    else:
        stop = stop_source.swing_high * (1.0 + profile.stop_buffer_pct)
        risk = stop - entry
    if risk <= 0:
        return zone, stop, ()

    sign = 1.0 if direction == LONG else -1.0
    targets = tuple(entry + sign * risk * r for r in profile.risk_reward_targets)
    return zone, stop, targets


def evaluate(
    analyses: Mapping[str, Optional[TimeframeAnalysis]],
    profile: StrategyProfile,
    context: Optional[EvaluationContext] = None,
    *,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> Signal:
    """Decide LONG / SHORT / NONE for one profile from per-timeframe analyses.

    Stages run in order and the first failing stage decides the NONE reason:
    missing timeframes, anchor gate, confirmation, pullback entry, score.
    Output depends only on the arguments.
    """
    ctx = context or _NO_CONTEXT

    absent = [tf for tf in profile.referenced_timeframes() if tf not in analyses]
    if absent:
        return _none(profile, ctx, MISSING_TIMEFRAME, f"missing timeframe(s): {', '.join(absent)}")

    # gate
    anchor_tf, anchor = _resolve_anchor(analyses, profile)
    if anchor is None:
        if all(analyses.get(tf) is None for tf in profile.anchor_timeframes):
            return _none(profile, ctx, INSUFFICIENT_DATA, "insufficient data on anchor timeframe(s)")
        return _none(profile, ctx, ANCHOR_FLAT, "anchor trend flat")

    direction = LONG if anchor.trend == UPTREND else SHORT
    against = DOWNTREND if direction == LONG else UPTREND

    # confirm
    for tf in profile.confirm_timeframes:
        if effective_trend(analyses.get(tf)) == against:
            return _none(
                profile, ctx, CONTRADICTION,
                f"{tf} trend {against} contradicts {anchor_tf} {anchor.trend}",
                anchor_timeframe=anchor_tf,
            )

    # entry
    pb_tf = profile.pullback_timeframe or anchor_tf
    pb = analyses.get(pb_tf)
    pb_state = pb.pullback_state if pb is not None else None
    if pb_state == OVEREXTENDED:
        return _none(
            profile, ctx, OVEREXTENDED_PULLBACK,
            f"price overextended from EMA21 on {pb_tf}",
            anchor_timeframe=anchor_tf,
        )
    if pb_state not in (ENTRY_ZONE, RETRACING):
        return _none(
            profile, ctx, OVEREXTENDED_PULLBACK,
            f"pullback state unknown on {pb_tf}",
            anchor_timeframe=anchor_tf,
        )

    # score
    score = score_confluence(direction, analyses, profile, anchor_tf, weights)
    if score.confidence < profile.min_confidence:
        return _none(
            profile, ctx, LOW_CONFIDENCE,
            f"confidence below threshold ({score.confidence:.2f} < {profile.min_confidence:.2f})",
            confidence=score.confidence,
            anchor_timeframe=anchor_tf,
            contributions=score.terms,
        )

    stop_tf = profile.stop_loss_timeframe
    stop_source = analyses.get(stop_tf)
    if anchor.ema21 is None:
        return _none(profile, ctx, INSUFFICIENT_DATA, f"no EMA21 on {anchor_tf}", anchor_timeframe=anchor_tf)
    if stop_source is None or stop_source.swing_low is None or stop_source.swing_high is None:
        return _none(
            profile, ctx, INSUFFICIENT_DATA,
            f"no swing structure on stop timeframe {stop_tf}",
            anchor_timeframe=anchor_tf,
        )

    zone, stop, targets = _build_levels(direction, anchor, stop_source, profile)
    if not targets:
        return _none(
            profile, ctx, INVALID_RISK,
            f"stop {stop:g} on wrong side of entry {zone.mid:g}",
            confidence=score.confidence,
            anchor_timeframe=anchor_tf,
            stop_timeframe=stop_tf,
            contributions=score.terms,
        )

    signal = Signal(
        valid=True,
        direction=direction,
        confidence=score.confidence,
        reason=f"{anchor_tf} {anchor.trend.lower()}, {pb_tf} {pb_state.lower()}, confidence {score.confidence:.2f}",
        entry_zone=zone,
        stop_loss=stop,
        targets=targets,
        risk_reward=tuple(profile.risk_reward_targets),
        profile=profile.name,
        anchor_timeframe=anchor_tf,
        stop_timeframe=stop_tf,
        symbol=ctx.symbol,
        as_of_ms=ctx.as_of_ms,
        contributions=score.terms,
    )
    log.debug(
        "signal symbol=%s profile=%s direction=%s confidence=%.3f entry=%.6g stop=%.6g",
        ctx.symbol or "-", profile.name, direction, score.confidence, zone.mid, stop,
    )
    return signal


def evaluate_all(
    analyses: Mapping[str, Optional[TimeframeAnalysis]],
    profiles: Sequence[StrategyProfile],
    context: Optional[EvaluationContext] = None,
) -> Tuple[Signal, Dict[str, Signal]]:
    """Evaluate every profile; return the best valid signal and all of them.

    Best is the valid signal with the highest confidence, earlier profiles win
    ties. With no valid signal the first profile's NONE is returned.
    """
    if not profiles:
        raise ValueError("evaluate_all needs at least one profile")
    per_profile: Dict[str, Signal] = {}
    best: Optional[Signal] = None
    for p in profiles:
        sig = evaluate(analyses, p, context)
        per_profile[p.name] = sig
        if sig.valid and (best is None or sig.confidence > best.confidence):
            best = sig
    if best is None:
        best = per_profile[profiles[0].name]
    return best, per_profile


def evaluate_candles(
    candles_by_tf: Mapping[str, Sequence[Candle]],
    profile: StrategyProfile,
    context: Optional[EvaluationContext] = None,
) -> Signal:
    ctx = context or _NO_CONTEXT
    analyses = analyze_all(candles_by_tf, ctx.settings)
    return evaluate(analyses, profile, ctx)


def required_timeframes(profiles: Sequence[StrategyProfile]) -> List[str]:
    """Union of timeframes referenced by `profiles`, first-seen order."""
    out: List[str] = []
    for p in profiles:
        for tf in p.referenced_timeframes():
            if tf not in out:
                out.append(tf)
    return out
