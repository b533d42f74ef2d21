import json
import logging

import pytest

from trend_confluence.data import candle_from_row, load_candles, load_symbol_dir
from trend_confluence.errors import DataFormatError


def test_kline_row_and_mapping_rows():
    c = candle_from_row([1_700_000_000_000, "1", "2", "0.5", "1.5", "10", 1_700_000_059_999])
    assert (c.timestamp_ms, c.open, c.high, c.low, c.close, c.volume) == (1_700_000_000_000, 1.0, 2.0, 0.5, 1.5, 10.0)

    m = candle_from_row({"t": 60_000, "o": 1, "h": 2, "l": 0.5, "c": 1.5, "v": 3})
    assert m.timestamp_ms == 60_000
    assert m.volume == 3.0

    iso = candle_from_row({"timestamp": "1970-01-01T00:01:00Z", "open": 1, "high": 2, "low": 0.5, "close": 1.5, "volume": 3})
    assert iso.timestamp_ms == 60_000


def test_load_csv(tmp_path):
    path = tmp_path / "BTCUSDT_1h.csv"
    path.write_text(
        "timestamp,open,high,low,close,volume\n"
        "0,10,11,9,10.5,100\n"
        "3600000,10.5,12,10,11,120\n",
        encoding="utf-8",
    )
    candles = load_candles(str(path))
    assert [c.timestamp_ms for c in candles] == [0, 3_600_000]
    assert candles[1].close == 11.0


def test_load_json_klines_and_wrapped_object(tmp_path):
    rows = [[0, "10", "11", "9", "10.5", "100"], [60_000, "10.5", "12", "10", "11", "120"]]
    p1 = tmp_path / "a.json"
    p1.write_text(json.dumps(rows), encoding="utf-8")
    p2 = tmp_path / "b.json"
    p2.write_text(json.dumps({"candles": rows}), encoding="utf-8")
    assert load_candles(str(p1)) == load_candles(str(p2))
    assert len(load_candles(str(p1))) == 2


def test_bad_rows_and_formats_raise(tmp_path):
    bad = tmp_path / "bad.csv"
    bad.write_text("timestamp,open,high,low,close,volume\n0,10,11,9,oops,1\n", encoding="utf-8")
    with pytest.raises(DataFormatError):
        load_candles(str(bad))

    other = tmp_path / "x.txt"
    other.write_text("", encoding="utf-8")
    with pytest.raises(DataFormatError):
        load_candles(str(other))


def test_load_symbol_dir_skips_missing_files(tmp_path, caplog):
    (tmp_path / "ETHUSDT_4h.json").write_text(json.dumps([[0, 1, 2, 0.5, 1.5, 1]]), encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="data"):
        out = load_symbol_dir(str(tmp_path), "ETHUSDT", ["4h", "1h"])
    assert list(out) == ["4h"]
    assert "series_missing" in caplog.text
