from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .models import Candle

log = logging.getLogger("validation")


@dataclass(frozen=True)
class RejectedCandle:
    index: int
    timestamp_ms: Optional[int]
    reason: str


def candle_problem(c: Candle, prev_ts: Optional[int]) -> Optional[str]:
    """Reason the candle cannot be used, or None if it is well formed."""
    prices = (c.open, c.high, c.low, c.close)
    for p in prices:
        if p is None or not math.isfinite(p):
            return "non_finite_price"
    if any(p <= 0 for p in prices):
        return "non_positive_price"
    if c.volume is None or not math.isfinite(c.volume) or c.volume <= 0:
        return "non_positive_volume"
    if c.high < max(c.open, c.close, c.low) or c.low > min(c.open, c.close, c.high):
        return "ohlc_inconsistent"
    if prev_ts is not None and c.timestamp_ms <= prev_ts:
        return "non_increasing_timestamp"
    return None


def sanitize_candles(
    candles: Sequence[Candle], *, label: str = ""
) -> Tuple[List[Candle], List[RejectedCandle]]:
    """Drop malformed candles, keeping the order of the rest.

    Timestamp monotonicity is checked against the last *accepted* candle, so
    a single out-of-order row does not poison the remainder of the series.
    """
    clean: List[Candle] = []
    rejected: List[RejectedCandle] = []
    prev_ts: Optional[int] = None
    for i, c in enumerate(candles):
        problem = candle_problem(c, prev_ts)
        if problem is not None:
            rejected.append(RejectedCandle(index=i, timestamp_ms=getattr(c, "timestamp_ms", None), reason=problem))
            continue
        clean.append(c)
        prev_ts = c.timestamp_ms

    if rejected:
        log.warning(
            "candles_rejected series=%s rejected=%d kept=%d first_reason=%s",
            label or "-",
            len(rejected),
            len(clean),
            rejected[0].reason,
        )
    return clean, rejected
