from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

# Directions
LONG = "LONG"
SHORT = "SHORT"
NONE = "NONE"

# Trend / pullback / oscillator classifications
UPTREND = "UPTREND"
DOWNTREND = "DOWNTREND"
FLAT = "FLAT"

ENTRY_ZONE = "ENTRY_ZONE"
RETRACING = "RETRACING"
OVEREXTENDED = "OVEREXTENDED"

OVERBOUGHT = "OVERBOUGHT"
OVERSOLD = "OVERSOLD"
NEUTRAL = "NEUTRAL"

BULLISH = "BULLISH"
BEARISH = "BEARISH"

# Trade lifecycle
OPEN = "OPEN"
CLOSED = "CLOSED"

STOP_LOSS = "STOP_LOSS"
TAKE_PROFIT = "TAKE_PROFIT"
FORCED_CLOSE = "FORCED_CLOSE"


def iso_ms(ts_ms: Optional[int]) -> Optional[str]:
    if ts_ms is None:
        return None
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Candle:
    timestamp_ms: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class TimeframeAnalysis:
    timeframe: str
    timestamp_ms: int
    candle_count: int
    current_price: float
    ema21: Optional[float]
    ema21_prev: Optional[float]
    ema200: Optional[float]
    oscillator_k: Optional[float]
    oscillator_d: Optional[float]
    oscillator_zone: str  # OVERBOUGHT | OVERSOLD | NEUTRAL
    oscillator_direction: str  # BULLISH | BEARISH | FLAT
    swing_high: Optional[float]
    swing_low: Optional[float]
    trend: str  # UPTREND | DOWNTREND | FLAT
    pullback_state: Optional[str]  # None when EMA21 is unknown
    distance_from_ema21_pct: Optional[float]  # fraction, 0.004 == 0.4%
    missing: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeframe": self.timeframe,
            "timestamp": iso_ms(self.timestamp_ms),
            "candle_count": self.candle_count,
            "current_price": self.current_price,
            "ema21": self.ema21,
            "ema200": self.ema200,
            "oscillator_k": self.oscillator_k,
            "oscillator_d": self.oscillator_d,
            "oscillator_zone": self.oscillator_zone,
            "oscillator_direction": self.oscillator_direction,
            "swing_high": self.swing_high,
            "swing_low": self.swing_low,
            "trend": self.trend,
            "pullback_state": self.pullback_state,
            "distance_from_ema21_pct": self.distance_from_ema21_pct,
            "missing": list(self.missing),
        }


@dataclass(frozen=True)
class EntryZone:
    min: float
    max: float

    @property
    def mid(self) -> float:
        return (self.min + self.max) / 2.0


@dataclass(frozen=True)
class ScoreTerm:
    name: str
    value: float
    note: str = ""


@dataclass(frozen=True)
class Signal:
    valid: bool
    direction: str  # LONG | SHORT | NONE
    confidence: float
    reason: str
    reason_code: Optional[str] = None
    entry_zone: Optional[EntryZone] = None
    stop_loss: Optional[float] = None
    targets: Tuple[float, ...] = ()
    risk_reward: Tuple[float, ...] = ()
    profile: str = ""
    anchor_timeframe: Optional[str] = None
    stop_timeframe: Optional[str] = None
    symbol: str = ""
    as_of_ms: Optional[int] = None
    contributions: Tuple[ScoreTerm, ...] = ()

    @property
    def entry_price(self) -> Optional[float]:
        return self.entry_zone.mid if self.entry_zone is not None else None

    @property
    def risk_amount(self) -> Optional[float]:
        entry = self.entry_price
        if entry is None or self.stop_loss is None:
            return None
        return abs(entry - self.stop_loss)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "direction": self.direction,
            "confidence": self.confidence,
            "reason": self.reason,
            "reason_code": self.reason_code,
            "entry_zone": (
                {"min": self.entry_zone.min, "max": self.entry_zone.max}
                if self.entry_zone is not None
                else {"min": None, "max": None}
            ),
            "stop_loss": self.stop_loss,
            "targets": {f"tp{i + 1}": tp for i, tp in enumerate(self.targets)},
            "risk_reward": {f"tp{i + 1}": rr for i, rr in enumerate(self.risk_reward)},
            "profile": self.profile,
            "anchor_timeframe": self.anchor_timeframe,
            "stop_timeframe": self.stop_timeframe,
            "symbol": self.symbol,
            "as_of": iso_ms(self.as_of_ms),
            "contributions": [
                {"name": t.name, "value": t.value, "note": t.note} for t in self.contributions
            ],
        }


@dataclass
class Trade:
    id: int
    direction: str
    entry_time_ms: int
    entry_price: float
    stop_loss: float
    targets: Tuple[float, ...]
    take_profit: float
    risk_amount: float
    confidence: float = 0.0
    reason: str = ""
    state: str = OPEN
    exit_time_ms: Optional[int] = None
    exit_price: Optional[float] = None
    exit_type: Optional[str] = None
    r_multiple: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "direction": self.direction,
            "state": self.state,
            "entry_time": iso_ms(self.entry_time_ms),
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "targets": list(self.targets),
            "take_profit": self.take_profit,
            "risk_amount": self.risk_amount,
            "exit_time": iso_ms(self.exit_time_ms),
            "exit_price": self.exit_price,
            "exit_type": self.exit_type,
            "r_multiple": self.r_multiple,
            "confidence": self.confidence,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class SkippedStep:
    index: int
    timestamp_ms: int
    reason: str


@dataclass(frozen=True)
class BacktestStats:
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    breakevens: int = 0
    win_rate: float = 0.0
    avg_r: float = 0.0
    total_r: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0
    max_drawdown: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_trades": self.total_trades,
            "wins": self.wins,
            "losses": self.losses,
            "breakevens": self.breakevens,
            "win_rate": self.win_rate,
            "avg_r": self.avg_r,
            "total_r": self.total_r,
            "avg_win": self.avg_win,
            "avg_loss": self.avg_loss,
            "profit_factor": self.profit_factor,
            "max_drawdown": self.max_drawdown,
        }


@dataclass
class BacktestResult:
    symbol: str
    profile: str
    profile_signature: str
    timeframe: str
    trades: List[Trade] = field(default_factory=list)
    skipped: List[SkippedStep] = field(default_factory=list)
    rejected_candles: Dict[str, int] = field(default_factory=dict)
    bars_evaluated: int = 0
    cancelled: bool = False
    stats: BacktestStats = field(default_factory=BacktestStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "profile": self.profile,
            "profile_signature": self.profile_signature,
            "timeframe": self.timeframe,
            "bars_evaluated": self.bars_evaluated,
            "cancelled": self.cancelled,
            "rejected_candles": dict(self.rejected_candles),
            "skipped": [
                {"index": s.index, "timestamp": iso_ms(s.timestamp_ms), "reason": s.reason}
                for s in self.skipped
            ],
            "summary": self.stats.to_dict(),
            "trades": [t.to_dict() for t in self.trades],
        }
