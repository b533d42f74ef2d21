from __future__ import annotations

from typing import Dict, Iterable, Optional

from .models import BacktestResult, Signal, iso_ms


def _fmt_price(val: Optional[float]) -> str:
    if val is None:
        return "-"
    return f"{val:g}"


def _fmt_ms(ts_ms: Optional[int]) -> str:
    return iso_ms(ts_ms) or "-"


def format_signal(signal: Signal, *, with_breakdown: bool = True) -> str:
    """Plain-text rendering of one signal."""
    head = f"{signal.symbol or '-'} | {signal.profile or '-'} | as of {_fmt_ms(signal.as_of_ms)}"
    if not signal.valid:
        lines = [
            head,
            f"NO TRADE [{signal.reason_code}] {signal.reason}",
        ]
        if signal.confidence:
            lines.append(f"Confidence: {signal.confidence:.2f}")
    else:
        zone = signal.entry_zone
        lines = [
            head,
            f"{signal.direction} ({signal.anchor_timeframe} anchor) confidence {signal.confidence:.2f}",
            f"Entry zone: {_fmt_price(zone.min)} - {_fmt_price(zone.max)} (mid {_fmt_price(zone.mid)})",
            f"Stop ({signal.stop_timeframe}): {_fmt_price(signal.stop_loss)}",
        ]
        for i, (tp, rr) in enumerate(zip(signal.targets, signal.risk_reward)):
            lines.append(f"TP{i + 1}: {_fmt_price(tp)} ({rr:g}R)")
        lines.append(f"Reason: {signal.reason}")

    if with_breakdown and signal.contributions:
        lines.append("Score breakdown:")
        lines.append(" | ".join(f"{t.name}={t.value:+.3f}" for t in signal.contributions))
    return "\n".join(lines)


def format_per_profile(signals: Dict[str, Signal]) -> str:
    return "\n".join(
        f"{name}: {s.direction} conf={s.confidence:.2f}" + ("" if s.valid else f" [{s.reason_code}] {s.reason}")
        for name, s in signals.items()
    )


def format_summary(result: BacktestResult) -> str:
    """Plain-text backtest summary."""
    s = result.stats
    lines = [
        f"{result.symbol or '-'} | {result.profile} | {result.timeframe} | sig {result.profile_signature[:12]}",
        f"Bars: {result.bars_evaluated} | Trades: {s.total_trades} | W/L/BE: {s.wins}/{s.losses}/{s.breakevens}",
        f"Win rate: {s.win_rate * 100:.1f}% | Avg R: {s.avg_r:+.2f} | Total R: {s.total_r:+.2f}",
        f"Avg win: {s.avg_win:.2f}R | Avg loss: {s.avg_loss:.2f}R | PF: {s.profit_factor:.2f} | Max DD: {s.max_drawdown:.2f}R",
    ]
    if result.skipped:
        lines.append(f"Skipped bars: {len(result.skipped)}")
    if result.rejected_candles:
        rej = ", ".join(f"{tf}={n}" for tf, n in sorted(result.rejected_candles.items()))
        lines.append(f"Rejected candles: {rej}")
    if result.cancelled:
        lines.append("CANCELLED (partial result)")
    return "\n".join(lines)


def format_trades(result: BacktestResult, limit: int = 10) -> Iterable[str]:
    for t in result.trades[:limit]:
        yield (
            f"{t.id}. {t.direction} @ {_fmt_price(t.entry_price)} | {_fmt_ms(t.entry_time_ms)} | "
            f"Exit: {t.exit_type} @ {_fmt_price(t.exit_price)} | R: {t.r_multiple:+.2f}"
        )
