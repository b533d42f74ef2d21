from __future__ import annotations

import math

from trend_confluence.backtest import BacktestSimulator
from trend_confluence.config import BacktestConfig
from trend_confluence.formatters import format_summary, format_trades
from trend_confluence.models import Candle
from trend_confluence.profiles import StrategyProfile
from trend_confluence.timeframes import tf_ms


def candle(idx: int, step_ms: int, price: float) -> Candle:
    wiggle = price * 0.004
    return Candle(
        timestamp_ms=idx * step_ms,
        open=price - wiggle / 2,
        high=price + wiggle,
        low=price - wiggle,
        close=price,
        volume=1.0,
    )


def wave_series(tf: str, n: int, drift: float) -> list:
    """Rising (or falling) drift with a slow sine so pullbacks occur."""
    step = tf_ms(tf)
    return [candle(i, step, 100.0 * (1.0 + drift * i) + 3.0 * math.sin(i / 6.0)) for i in range(n)]


def run_case(name: str, drift: float):
    profile = StrategyProfile(
        name=f"smoke_{name}",
        anchor_timeframes=("1h",),
        confirm_timeframes=(),
        entry_timeframes=("1h",),
        min_confidence=0.5,
        risk_reward_targets=(1.0, 2.0),
        stop_loss_timeframe="1h",
    )
    data = {"1h": wave_series("1h", 600, drift)}
    sim = BacktestSimulator(profile, BacktestConfig(warmup_bars=210, history_window=400))
    res = sim.run(data, symbol="SMOKE")
    print(format_summary(res))
    for line in format_trades(res, limit=5):
        print("  " + line)
    total = sum(t.r_multiple for t in res.trades)
    print(f"{name}: equity check total_r={res.stats.total_r:.6f} sum={total:.6f}\n")


def main():
    run_case("uptrend", 0.001)
    run_case("downtrend", -0.0008)


if __name__ == "__main__":
    main()
