from __future__ import annotations

import logging
import threading
from bisect import bisect_right
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .analysis import analyze_all
from .config import AnalysisSettings, BacktestConfig
from .errors import EmptySeriesError
from .evaluator import EvaluationContext, evaluate
from .models import (
    CLOSED,
    FORCED_CLOSE,
    LONG,
    STOP_LOSS,
    TAKE_PROFIT,
    BacktestResult,
    BacktestStats,
    Candle,
    Signal,
    SkippedStep,
    Trade,
)
from .profiles import StrategyProfile, profile_signature
from .timeframes import tf_ms
from .validation import sanitize_candles

log = logging.getLogger("backtest")

Evaluator = Callable[..., Signal]


class AsOfView:
    """Read-only access to a candle series as of a point in time.

    Only candles with `timestamp_ms <= as_of_ms` are ever returned. With
    `closed_by_ms`, candles whose close (open + `span_ms`) falls after it are
    cut as well, so an unfinished higher-timeframe candle stays hidden.
    """

    def __init__(self, candles: Sequence[Candle], span_ms: int = 0):
        self._candles = list(candles)
        self._ts = [c.timestamp_ms for c in self._candles]
        self._close_ts = [t + span_ms for t in self._ts]

    def __len__(self) -> int:
        return len(self._candles)

    def candles(self) -> List[Candle]:
        return list(self._candles)

    def upto(self, as_of_ms: int, window: Optional[int] = None, closed_by_ms: Optional[int] = None) -> List[Candle]:
        end = bisect_right(self._ts, as_of_ms)
        if closed_by_ms is not None:
            end = min(end, bisect_right(self._close_ts, closed_by_ms))
        start = 0 if window is None else max(0, end - window)
        return self._candles[start:end]


def _r_multiple(trade: Trade, exit_price: float) -> float:
    if trade.risk_amount <= 0:
        return 0.0
    move = exit_price - trade.entry_price
    if trade.direction != LONG:
        move = -move
    return move / trade.risk_amount


def check_exit(trade: Trade, bar: Candle) -> Optional[Tuple[str, float]]:
    """(exit_type, price) if `bar` touches a level; the stop is checked first."""
    if trade.direction == LONG:
        if bar.low <= trade.stop_loss:
            return STOP_LOSS, trade.stop_loss
        if bar.high >= trade.take_profit:
            return TAKE_PROFIT, trade.take_profit
    else:
        if bar.high >= trade.stop_loss:
            return STOP_LOSS, trade.stop_loss
        if bar.low <= trade.take_profit:
            return TAKE_PROFIT, trade.take_profit
    return None


def compute_stats(trades: Sequence[Trade]) -> BacktestStats:
    closed = [t for t in trades if t.r_multiple is not None]
    n = len(closed)
    if n == 0:
        return BacktestStats()
    rs = [t.r_multiple for t in closed]
    wins = [r for r in rs if r > 0]
    losses = [r for r in rs if r < 0]
    gross_win = sum(wins)
    gross_loss = abs(sum(losses))

    equity = 0.0
    peak = 0.0
    max_dd = 0.0
    for r in rs:
        equity += r
        peak = max(peak, equity)
        max_dd = max(max_dd, peak - equity)

    return BacktestStats(
        total_trades=n,
        wins=len(wins),
        losses=len(losses),
        breakevens=n - len(wins) - len(losses),
        win_rate=len(wins) / n,
        avg_r=sum(rs) / n,
        total_r=sum(rs),
        avg_win=gross_win / len(wins) if wins else 0.0,
        avg_loss=gross_loss / len(losses) if losses else 0.0,
        profit_factor=gross_win / gross_loss if gross_loss > 0 else 0.0,
        max_drawdown=max_dd,
    )


class BacktestSimulator:
    """Bar-by-bar replay of one profile over historical candles.

    Holds at most one position. Every decision is made from as-of slices of
    the input series, so no candle later than the current driver bar can
    influence it.
    """

    def __init__(
        self,
        profile: StrategyProfile,
        config: Optional[BacktestConfig] = None,
        settings: Optional[AnalysisSettings] = None,
        evaluator: Evaluator = evaluate,
    ):
        self.profile = profile
        self.config = config or BacktestConfig()
        self.config.validate()
        self.settings = settings or AnalysisSettings()
        self.evaluator = evaluator

    def run(
        self,
        candles_by_tf: Mapping[str, Sequence[Candle]],
        symbol: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> BacktestResult:
        cfg = self.config
        driver_tf = cfg.timeframe or self.profile.anchor_timeframes[0]

        views: Dict[str, AsOfView] = {}
        rejected: Dict[str, int] = {}
        for tf, candles in candles_by_tf.items():
            clean, bad = sanitize_candles(candles, label=f"{symbol}:{tf}")
            views[tf] = AsOfView(clean, tf_ms(tf))
            if bad:
                rejected[tf] = len(bad)

        driver = views.get(driver_tf)
        if driver is None or len(driver) == 0:
            raise EmptySeriesError(f"no usable candles for driver timeframe {driver_tf}")
        bars = driver.candles()
        driver_span = tf_ms(driver_tf)

        result = BacktestResult(
            symbol=symbol,
            profile=self.profile.name,
            profile_signature=profile_signature(self.profile),
            timeframe=driver_tf,
            rejected_candles=rejected,
        )
        log.info(
            "backtest_start symbol=%s profile=%s tf=%s bars=%d warmup=%d",
            symbol or "-", self.profile.name, driver_tf, len(bars), cfg.warmup_bars,
        )

        position: Optional[Trade] = None
        last_bar: Optional[Candle] = None
        next_id = 1

        for i in range(cfg.warmup_bars, len(bars)):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                log.info("backtest_cancelled symbol=%s profile=%s index=%d", symbol or "-", self.profile.name, i)
                break

            bar = bars[i]
            last_bar = bar
            result.bars_evaluated += 1
            try:
                if position is not None:
                    hit = check_exit(position, bar)
                    if hit is not None:
                        self._close(position, bar.timestamp_ms, hit[1], hit[0])
                        result.trades.append(position)
                        position = None
                    continue

                analyses = analyze_all(
                    {
                        tf: v.upto(bar.timestamp_ms, cfg.history_window, closed_by_ms=bar.timestamp_ms + driver_span)
                        for tf, v in views.items()
                    },
                    self.settings,
                    validated=True,
                )
                ctx = EvaluationContext(symbol=symbol, as_of_ms=bar.timestamp_ms, settings=self.settings)
                signal = self.evaluator(analyses, self.profile, ctx)
                if not signal.valid:
                    continue

                trade = self._open(signal, bar, next_id)
                if trade is None:
                    result.skipped.append(
                        SkippedStep(i, bar.timestamp_ms, f"entry {bar.close:g} outside stop/target range")
                    )
                    continue
                position = trade
                next_id += 1
            except Exception as e:
                log.warning(
                    "bar_skipped symbol=%s profile=%s index=%d err=%r",
                    symbol or "-", self.profile.name, i, e,
                )
                result.skipped.append(SkippedStep(i, bar.timestamp_ms, repr(e)))

        if position is not None:
            # end of data or cancellation: flat at the last processed close
            final = last_bar or bars[-1]
            self._close(position, final.timestamp_ms, final.close, FORCED_CLOSE, r_multiple=0.0)
            result.trades.append(position)

        result.stats = compute_stats(result.trades)
        log.info(
            "backtest_done symbol=%s profile=%s trades=%d total_r=%.2f win_rate=%.2f skipped=%d cancelled=%s",
            symbol or "-", self.profile.name, result.stats.total_trades, result.stats.total_r,
            result.stats.win_rate, len(result.skipped), result.cancelled,
        )
        return result

    def _open(self, signal: Signal, bar: Candle, trade_id: int) -> Optional[Trade]:
        slip = self.config.slippage_pct
        if signal.direction == LONG:
            entry = bar.close * (1.0 + slip)
        else:
            entry = bar.close * (1.0 - slip)
        stop = signal.stop_loss
        if stop is None or not signal.targets:
            return None
        idx = min(self.config.target_index, len(signal.targets) - 1)
        tp = signal.targets[idx]

        inside = stop < entry < tp if signal.direction == LONG else tp < entry < stop
        if not inside:
            log.debug(
                "entry_skipped direction=%s entry=%.6g stop=%.6g tp=%.6g",
                signal.direction, entry, stop, tp,
            )
            return None

        trade = Trade(
            id=trade_id,
            direction=signal.direction,
            entry_time_ms=bar.timestamp_ms,
            entry_price=entry,
            stop_loss=stop,
            targets=tuple(signal.targets),
            take_profit=tp,
            risk_amount=abs(entry - stop),
            confidence=signal.confidence,
            reason=signal.reason,
        )
        log.debug(
            "trade_open id=%d direction=%s entry=%.6g stop=%.6g tp=%.6g",
            trade.id, trade.direction, entry, stop, tp,
        )
        return trade

    @staticmethod
    def _close(
        trade: Trade, ts_ms: int, price: float, exit_type: str, r_multiple: Optional[float] = None
    ) -> None:
        trade.state = CLOSED
        trade.exit_time_ms = ts_ms
        trade.exit_price = price
        trade.exit_type = exit_type
        trade.r_multiple = _r_multiple(trade, price) if r_multiple is None else r_multiple
        log.debug("trade_close id=%d type=%s r=%.3f", trade.id, exit_type, trade.r_multiple)
