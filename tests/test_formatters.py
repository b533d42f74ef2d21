import json

from trend_confluence.formatters import format_signal, format_summary
from trend_confluence.models import (
    CLOSED,
    LONG,
    NONE,
    TAKE_PROFIT,
    BacktestResult,
    BacktestStats,
    EntryZone,
    ScoreTerm,
    Signal,
    Trade,
    iso_ms,
)


def _valid_signal():
    return Signal(
        valid=True,
        direction=LONG,
        confidence=0.8,
        reason="4h uptrend, 4h entry_zone, confidence 0.80",
        entry_zone=EntryZone(99.6, 100.4),
        stop_loss=90.0,
        targets=(110.0, 120.0),
        risk_reward=(1.0, 2.0),
        profile="trend",
        anchor_timeframe="4h",
        stop_timeframe="4h",
        symbol="BTCUSDT",
        as_of_ms=3_600_000,
        contributions=(ScoreTerm("anchor_trend:4h", 0.4, "4h UPTREND"),),
    )


def test_iso_timestamps_are_utc():
    assert iso_ms(0) == "1970-01-01T00:00:00Z"
    assert iso_ms(3_600_000) == "1970-01-01T01:00:00Z"
    assert iso_ms(None) is None


def test_signal_to_dict_is_json_ready():
    d = json.loads(json.dumps(_valid_signal().to_dict()))
    assert d["direction"] == "LONG"
    assert d["targets"] == {"tp1": 110.0, "tp2": 120.0}
    assert d["entry_zone"] == {"min": 99.6, "max": 100.4}
    assert d["as_of"] == "1970-01-01T01:00:00Z"
    assert d["contributions"][0]["name"] == "anchor_trend:4h"

    none = Signal(valid=False, direction=NONE, confidence=0.0, reason="anchor trend flat", reason_code="ANCHOR_FLAT")
    nd = none.to_dict()
    assert nd["entry_zone"] == {"min": None, "max": None}
    assert nd["targets"] == {}


def test_format_signal_valid_and_none():
    text = format_signal(_valid_signal())
    assert "LONG" in text
    assert "TP1: 110 (1R)" in text
    assert "Stop (4h): 90" in text
    assert "anchor_trend:4h=+0.400" in text

    none = Signal(valid=False, direction=NONE, confidence=0.0, reason="anchor trend flat", reason_code="ANCHOR_FLAT")
    assert "NO TRADE [ANCHOR_FLAT] anchor trend flat" in format_signal(none)


def test_format_summary_and_result_dict():
    trade = Trade(
        id=1, direction=LONG, entry_time_ms=0, entry_price=100.0, stop_loss=95.0, targets=(105.0,),
        take_profit=105.0, risk_amount=5.0, state=CLOSED, exit_time_ms=3_600_000, exit_price=105.0,
        exit_type=TAKE_PROFIT, r_multiple=1.0,
    )
    result = BacktestResult(
        symbol="BTCUSDT",
        profile="trend",
        profile_signature="ab" * 32,
        timeframe="4h",
        trades=[trade],
        rejected_candles={"1h": 2},
        bars_evaluated=10,
        stats=BacktestStats(total_trades=1, wins=1, win_rate=1.0, avg_r=1.0, total_r=1.0, avg_win=1.0),
    )
    text = format_summary(result)
    assert "Trades: 1" in text
    assert "Total R: +1.00" in text
    assert "Rejected candles: 1h=2" in text

    d = json.loads(json.dumps(result.to_dict()))
    assert d["summary"]["total_r"] == 1.0
    assert d["trades"][0]["entry_time"] == "1970-01-01T00:00:00Z"
    assert d["trades"][0]["exit_time"] == "1970-01-01T01:00:00Z"
