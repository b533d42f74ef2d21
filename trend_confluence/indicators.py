from __future__ import annotations
from typing import List, Optional, Sequence, Tuple


def ema_next(prev_ema: Optional[float], x: float, length: int) -> float:
    if length <= 1:
        return x
    alpha = 2.0 / (length + 1.0)
    return x if prev_ema is None else (alpha * x + (1.0 - alpha) * prev_ema)


def sma_series(values: Sequence[float], length: int) -> List[float]:
    if length <= 0 or len(values) < length:
        return []
    out: List[float] = []
    window = sum(values[:length])
    out.append(window / length)
    for i in range(length, len(values)):
        window += values[i] - values[i - length]
        out.append(window / length)
    return out


def ema_series(values: Sequence[float], length: int) -> List[float]:
    """EMA seeded with the SMA of the first `length` values.

    Returns len(values) - length + 1 points, or [] when history is too short.
    """
    if length <= 0 or len(values) < length:
        return []
    seed = sum(values[:length]) / float(length)
    out = [seed]
    for x in values[length:]:
        out.append(ema_next(out[-1], x, length))
    return out


def rma_next(prev: Optional[float], x: float, length: int) -> float:
    """Wilder's RMA."""
    if length <= 1 or prev is None:
        return x
    return prev + (x - prev) / float(length)


def rsi_series(closes: Sequence[float], length: int = 14) -> List[float]:
    """Wilder RSI, first value once `length` changes are available."""
    if length <= 0 or len(closes) < length + 1:
        return []
    gains: List[float] = []
    losses: List[float] = []
    for i in range(1, len(closes)):
        ch = closes[i] - closes[i - 1]
        gains.append(ch if ch > 0 else 0.0)
        losses.append(-ch if ch < 0 else 0.0)

    avg_gain = sum(gains[:length]) / length
    avg_loss = sum(losses[:length]) / length
    out = [_rsi_value(avg_gain, avg_loss)]
    for g, l in zip(gains[length:], losses[length:]):
        avg_gain = rma_next(avg_gain, g, length)
        avg_loss = rma_next(avg_loss, l, length)
        out.append(_rsi_value(avg_gain, avg_loss))
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def stoch_rsi(
    closes: Sequence[float],
    rsi_len: int = 14,
    stoch_len: int = 14,
    k_len: int = 3,
    d_len: int = 3,
) -> Optional[Tuple[List[float], List[float]]]:
    """Stochastic RSI (%K, %D series, aligned on their last element).

    A flat RSI window has no range; its stochastic reads 100.
    """
    rsi = rsi_series(closes, rsi_len)
    if len(rsi) < stoch_len:
        return None
    stoch: List[float] = []
    for i in range(stoch_len - 1, len(rsi)):
        window = rsi[i - stoch_len + 1: i + 1]
        lo = min(window)
        hi = max(window)
        rng = hi - lo
        stoch.append(100.0 if rng <= 0 else (rsi[i] - lo) / rng * 100.0)
    k = sma_series(stoch, k_len)
    d = sma_series(k, d_len)
    if not d:
        return None
    return k, d


def is_strict_pivot_high(highs: Sequence[float], idx: int, pivot_len: int) -> bool:
    if idx - pivot_len < 0 or idx + pivot_len >= len(highs):
        return False
    h = highs[idx]
    for i in range(idx - pivot_len, idx + pivot_len + 1):
        if i == idx:
            continue
        if h <= highs[i]:
            return False
    return True


def is_strict_pivot_low(lows: Sequence[float], idx: int, pivot_len: int) -> bool:
    if idx - pivot_len < 0 or idx + pivot_len >= len(lows):
        return False
    lo = lows[idx]
    for i in range(idx - pivot_len, idx + pivot_len + 1):
        if i == idx:
            continue
        if lo >= lows[i]:
            return False
    return True


def swing_points(
    highs: Sequence[float], lows: Sequence[float], lookback: int = 20, pivot_len: int = 1
) -> Tuple[Optional[float], Optional[float]]:
    """Highest pivot high and lowest pivot low inside the last `lookback` bars.

    Pivots may use neighbours just outside the window. When the window holds no
    flanked extremum the plain window max/min is returned.
    """
    n = len(highs)
    if n < 3 or len(lows) != n:
        return None, None
    start = max(0, n - max(1, lookback))

    pivot_highs = [highs[i] for i in range(start, n) if is_strict_pivot_high(highs, i, pivot_len)]
    pivot_lows = [lows[i] for i in range(start, n) if is_strict_pivot_low(lows, i, pivot_len)]

    swing_high = max(pivot_highs) if pivot_highs else max(highs[start:])
    swing_low = min(pivot_lows) if pivot_lows else min(lows[start:])
    return swing_high, swing_low
