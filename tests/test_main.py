import json

from trend_confluence.main import main

CONFIG = """
backtest:
  warmup_bars: 0
  history_window: 100
profiles:
  - name: hourly
    anchor_timeframes: [1h]
    confirm_timeframes: []
    entry_timeframes: [1h]
    min_confidence: 0.5
    risk_reward_targets: [1.0]
    stop_loss_timeframe: 1h
"""


def _write_series(path, n=30):
    lines = ["timestamp,open,high,low,close,volume"]
    for i in range(n):
        close = 100 + i
        lines.append(f"{i * 3_600_000},{close - 0.5},{close + 1},{close - 1.5},{close},1")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def test_profiles_command_lists_builtins(capsys):
    assert main(["profiles"]) == 0
    out = capsys.readouterr().out
    for name in ("scalp", "trend", "swing"):
        assert name in out


def test_configuration_error_exits_with_2(tmp_path):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("analysis:\n  swing_lookbak: 5\n", encoding="utf-8")
    assert main(["--config", str(cfg), "profiles"]) == 2
    assert main(["--config", str(tmp_path / "missing.yaml"), "profiles"]) == 2


def test_wrongly_typed_config_value_exits_with_2(tmp_path):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("backtest:\n  warmup_bars: \"200\"\n", encoding="utf-8")
    assert main(["--config", str(cfg), "profiles"]) == 2


def test_unknown_profile_exits_with_2(tmp_path):
    assert main(["evaluate", "--data-dir", str(tmp_path), "--symbol", "BTC", "--profile", "nope"]) == 2


def test_evaluate_reports_missing_timeframes(tmp_path, capsys):
    rc = main(["evaluate", "--data-dir", str(tmp_path), "--symbol", "BTCUSDT", "--profile", "trend", "--json"])
    assert rc == 0
    out = json.loads(capsys.readouterr().out)
    assert out["best"]["reason_code"] == "MISSING_TIMEFRAME"
    assert set(out["profiles"]) == {"trend"}


def test_backtest_writes_json(tmp_path, capsys):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text(CONFIG, encoding="utf-8")
    _write_series(tmp_path / "BTCUSDT_1h.csv")
    out_path = tmp_path / "results.json"

    rc = main([
        "--config", str(cfg), "--log-level", "WARNING",
        "backtest", "--data-dir", str(tmp_path), "--symbol", "BTCUSDT", "--out", str(out_path),
    ])
    assert rc == 0
    payload = json.loads(out_path.read_text(encoding="utf-8"))
    assert payload["failures"] == []
    assert len(payload["results"]) == 1
    res = payload["results"][0]
    assert res["symbol"] == "BTCUSDT"
    assert res["profile"] == "hourly"
    assert res["bars_evaluated"] == 30
    assert "hourly" in capsys.readouterr().out


def test_backtest_missing_data_is_reported_as_failure(tmp_path):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text(CONFIG, encoding="utf-8")
    rc = main(["--config", str(cfg), "backtest", "--data-dir", str(tmp_path), "--symbol", "NOPE"])
    assert rc == 1
