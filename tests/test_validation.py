import logging
import math

from trend_confluence.models import Candle
from trend_confluence.validation import sanitize_candles


def _c(idx: int, o: float, h: float, l: float, c: float, v: float = 1.0) -> Candle:
    return Candle(timestamp_ms=idx * 60_000, open=o, high=h, low=l, close=c, volume=v)


def test_clean_series_passes_untouched():
    candles = [_c(i, 10, 11, 9, 10) for i in range(5)]
    clean, rejected = sanitize_candles(candles)
    assert clean == candles
    assert rejected == []


def test_each_malformed_candle_is_rejected_with_reason(caplog):
    candles = [
        _c(0, 10, 11, 9, 10),
        _c(1, 10, 11, 9, math.nan),
        _c(2, 10, 11, 9, 10, 0.0),
        _c(3, 10, 9, 8, 10),  # high below close
        _c(4, -1, 11, 9, 10),
        _c(4, 10, 11, 9, 10),
        _c(4, 10, 11, 9, 10),
        _c(5, 10, 11, 9, 10),
    ]
    with caplog.at_level(logging.WARNING, logger="validation"):
        clean, rejected = sanitize_candles(candles, label="BTC:1h")

    assert [c.timestamp_ms for c in clean] == [0, 4 * 60_000, 5 * 60_000]
    assert [r.reason for r in rejected] == [
        "non_finite_price",
        "non_positive_volume",
        "ohlc_inconsistent",
        "non_positive_price",
        "non_increasing_timestamp",
    ]
    assert [r.index for r in rejected] == [1, 2, 3, 4, 6]
    assert "candles_rejected" in caplog.text


def test_out_of_order_row_does_not_poison_the_rest():
    candles = [_c(0, 10, 11, 9, 10), _c(5, 10, 11, 9, 10), _c(3, 10, 11, 9, 10), _c(6, 10, 11, 9, 10)]
    clean, rejected = sanitize_candles(candles)
    assert [c.timestamp_ms // 60_000 for c in clean] == [0, 5, 6]
    assert len(rejected) == 1
