import pytest

from trend_confluence.indicators import (
    ema_series,
    rsi_series,
    sma_series,
    stoch_rsi,
    swing_points,
)


def test_ema_is_seeded_with_sma():
    assert ema_series([1, 2, 3, 4, 5], 3) == pytest.approx([2.0, 3.0, 4.0])
    assert ema_series([1, 2], 3) == []


def test_sma_series_window():
    assert sma_series([1, 2, 3, 4], 2) == pytest.approx([1.5, 2.5, 3.5])


def test_rsi_series_extremes_and_balance():
    rising = [float(i) for i in range(1, 17)]
    assert rsi_series(rising, 14) == pytest.approx([100.0, 100.0])

    alternating = [1.0 + (i % 2) for i in range(15)]
    assert rsi_series(alternating, 14)[-1] == pytest.approx(50.0)

    assert rsi_series([1.0] * 10, 14) == []


def test_stoch_rsi_needs_enough_history():
    need = 14 + 14 + 3 + 3 - 2
    closes = [100.0 + (i % 5) for i in range(need)]
    assert stoch_rsi(closes[:-1]) is None
    k, d = stoch_rsi(closes)
    assert len(d) == 1
    assert 0.0 <= k[-1] <= 100.0
    assert 0.0 <= d[-1] <= 100.0


def test_stoch_rsi_flat_window_reads_100():
    k, d = stoch_rsi([50.0] * 40)
    assert k[-1] == pytest.approx(100.0)
    assert d[-1] == pytest.approx(100.0)


def test_swing_points_uses_strict_pivots():
    highs = [1, 3, 2, 5, 4]
    lows = [0.5, 1, 0.2, 2, 3]
    assert swing_points(highs, lows, lookback=20) == (5, 0.2)


def test_swing_points_falls_back_to_window_extremes():
    highs = [1, 2, 3, 4]
    lows = [0.5, 1, 1.5, 2]
    assert swing_points(highs, lows, lookback=20) == (4, 0.5)


def test_swing_points_respects_lookback_and_short_input():
    highs = [50, 1, 2, 3, 2, 1]
    lows = [0.1, 1, 1, 1, 1, 1]
    hi, _ = swing_points(highs, lows, lookback=4)
    assert hi == 3
    assert swing_points([1, 2], [0, 1]) == (None, None)
