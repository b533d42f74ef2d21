from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .config import AnalysisSettings
from .errors import EmptySeriesError
from .indicators import ema_series, stoch_rsi, swing_points
from .models import (
    BEARISH,
    BULLISH,
    DOWNTREND,
    ENTRY_ZONE,
    FLAT,
    NEUTRAL,
    OVERBOUGHT,
    OVEREXTENDED,
    OVERSOLD,
    RETRACING,
    UPTREND,
    Candle,
    TimeframeAnalysis,
)
from .validation import sanitize_candles

log = logging.getLogger("analysis")

DEFAULT_SETTINGS = AnalysisSettings()


def classify_pullback(distance: Optional[float], tolerance: float, overextended_multiple: float = 3.0) -> Optional[str]:
    """Bucket a distance-from-EMA21 fraction. Monotone in `distance`."""
    if distance is None:
        return None
    if distance < tolerance:
        return ENTRY_ZONE
    if distance > tolerance * overextended_multiple:
        return OVEREXTENDED
    return RETRACING


def classify_trend(price: float, ema21: Optional[float], ema21_prev: Optional[float], ema200: Optional[float]) -> str:
    if ema200 is None or ema21 is None or ema21_prev is None:
        return FLAT
    if price > ema200 and ema21 > ema21_prev:
        return UPTREND
    if price < ema200 and ema21 < ema21_prev:
        return DOWNTREND
    return FLAT


def classify_oscillator(
    k: Optional[float], d: Optional[float], overbought: float = 80.0, oversold: float = 20.0
) -> Tuple[str, str]:
    if k is None or d is None:
        return NEUTRAL, FLAT
    if k > overbought and d > overbought:
        zone = OVERBOUGHT
    elif k < oversold and d < oversold:
        zone = OVERSOLD
    else:
        zone = NEUTRAL
    if k > d:
        direction = BULLISH
    elif k < d:
        direction = BEARISH
    else:
        direction = FLAT
    return zone, direction


def analyze_timeframe(
    candles: Sequence[Candle],
    timeframe: str,
    settings: Optional[AnalysisSettings] = None,
    *,
    validated: bool = False,
) -> Optional[TimeframeAnalysis]:
    """Indicator snapshot for the latest candle of `candles`.

    Returns None when the sanitised series is shorter than
    `settings.min_candles`. Raises EmptySeriesError when nothing survives
    sanitising. Pass `validated=True` for series already sanitised.
    """
    s = settings or DEFAULT_SETTINGS
    if validated:
        clean = list(candles)
    else:
        clean, _ = sanitize_candles(candles, label=timeframe)
    if not clean:
        raise EmptySeriesError(f"no usable candles for timeframe {timeframe}")
    if len(clean) < s.min_candles:
        log.debug("insufficient_data tf=%s candles=%d need=%d", timeframe, len(clean), s.min_candles)
        return None

    closes = [c.close for c in clean]
    highs = [c.high for c in clean]
    lows = [c.low for c in clean]
    price = closes[-1]
    missing: List[str] = []

    fast = ema_series(closes, s.ema_fast)
    ema21 = fast[-1] if fast else None
    ema21_prev = fast[-2] if len(fast) >= 2 else None
    if ema21 is None:
        missing.append("ema21")
    elif ema21_prev is None:
        missing.append("ema21_slope")

    slow = ema_series(closes, s.ema_slow)
    ema200 = slow[-1] if slow else None
    if ema200 is None:
        missing.append("ema200")

    osc = stoch_rsi(closes, s.rsi_len, s.stoch_len, s.k_len, s.d_len)
    if osc is None:
        k = d = None
        missing.append("oscillator")
    else:
        k, d = osc[0][-1], osc[1][-1]
    zone, osc_dir = classify_oscillator(k, d, s.overbought, s.oversold)

    swing_high, swing_low = swing_points(highs, lows, s.swing_lookback, s.swing_pivot_len)
    if swing_high is None:
        missing.append("swing")

    distance = abs(price - ema21) / price if ema21 is not None else None
    pullback = classify_pullback(distance, s.entry_tolerance_pct, s.overextended_multiple)

    return TimeframeAnalysis(
        timeframe=timeframe,
        timestamp_ms=clean[-1].timestamp_ms,
        candle_count=len(clean),
        current_price=price,
        ema21=ema21,
        ema21_prev=ema21_prev,
        ema200=ema200,
        oscillator_k=k,
        oscillator_d=d,
        oscillator_zone=zone,
        oscillator_direction=osc_dir,
        swing_high=swing_high,
        swing_low=swing_low,
        trend=classify_trend(price, ema21, ema21_prev, ema200),
        pullback_state=pullback,
        distance_from_ema21_pct=distance,
        missing=tuple(missing),
    )


def analyze_all(
    candles_by_tf: Mapping[str, Sequence[Candle]],
    settings: Optional[AnalysisSettings] = None,
    *,
    validated: bool = False,
) -> Dict[str, Optional[TimeframeAnalysis]]:
    """Analyse every timeframe; an empty series maps to None."""
    out: Dict[str, Optional[TimeframeAnalysis]] = {}
    for tf, candles in candles_by_tf.items():
        if not candles:
            out[tf] = None
            continue
        out[tf] = analyze_timeframe(candles, tf, settings, validated=validated)
    return out
