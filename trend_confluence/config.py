from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigurationError
from .profiles import BUILTIN_PROFILES, StrategyProfile, profile_from_dict
from .timeframes import is_timeframe

log = logging.getLogger("config")


def _env_override(value: Any, env_key: str) -> Any:
    env_val = os.getenv(env_key)
    if env_val is None:
        return value
    # basic parsing
    if isinstance(value, bool):
        return env_val.strip().lower() in ("1", "true", "yes", "y", "on")
    if isinstance(value, int):
        try:
            return int(env_val)
        except ValueError:
            return value
    if isinstance(value, float):
        try:
            return float(env_val)
        except ValueError:
            return value
    return env_val


def _type_errors(obj, ints=(), numbers=()) -> List[str]:
    errs = []
    for name in ints:
        v = getattr(obj, name)
        if isinstance(v, bool) or not isinstance(v, int):
            errs.append(f"{name} must be an integer, got {v!r}")
    for name in numbers:
        v = getattr(obj, name)
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            errs.append(f"{name} must be a number, got {v!r}")
    return errs


@dataclass(frozen=True)
class AnalysisSettings:
    swing_lookback: int = 20
    swing_pivot_len: int = 1
    entry_tolerance_pct: float = 0.004
    overextended_multiple: float = 3.0
    min_candles: int = 21
    ema_fast: int = 21
    ema_slow: int = 200
    rsi_len: int = 14
    stoch_len: int = 14
    k_len: int = 3
    d_len: int = 3
    overbought: float = 80.0
    oversold: float = 20.0

    def validate(self) -> None:
        errs = _type_errors(
            self,
            ints=(
                "swing_lookback", "swing_pivot_len", "min_candles",
                "ema_fast", "ema_slow", "rsi_len", "stoch_len", "k_len", "d_len",
            ),
            numbers=("entry_tolerance_pct", "overextended_multiple", "overbought", "oversold"),
        )
        if errs:
            raise ConfigurationError("analysis config violation: " + "; ".join(errs))
        if self.swing_lookback < 3:
            errs.append("swing_lookback must be >= 3")
        if self.swing_pivot_len < 1:
            errs.append("swing_pivot_len must be >= 1")
        if not (0 < self.entry_tolerance_pct < 1):
            errs.append("entry_tolerance_pct must be in (0, 1)")
        if self.overextended_multiple <= 1:
            errs.append("overextended_multiple must be > 1")
        if self.min_candles < 2:
            errs.append("min_candles must be >= 2")
        for name in ("ema_fast", "ema_slow", "rsi_len", "stoch_len", "k_len", "d_len"):
            if getattr(self, name) < 1:
                errs.append(f"{name} must be >= 1")
        if not (0 <= self.oversold < self.overbought <= 100):
            errs.append("oversold/overbought must satisfy 0 <= oversold < overbought <= 100")
        if errs:
            raise ConfigurationError("analysis config violation: " + "; ".join(errs))


@dataclass(frozen=True)
class BacktestConfig:
    timeframe: Optional[str] = None  # defaults to the profile's first anchor
    warmup_bars: int = 200
    history_window: Optional[int] = 1000
    target_index: int = 0
    slippage_pct: float = 0.0

    def validate(self) -> None:
        errs = _type_errors(self, ints=("warmup_bars", "target_index"), numbers=("slippage_pct",))
        if self.history_window is not None:
            errs += _type_errors(self, ints=("history_window",))
        if self.timeframe is not None and not isinstance(self.timeframe, str):
            errs.append(f"timeframe must be a string, got {self.timeframe!r}")
        if errs:
            raise ConfigurationError("backtest config violation: " + "; ".join(errs))
        if self.timeframe is not None and not is_timeframe(self.timeframe):
            errs.append(f"timeframe {self.timeframe!r} is not a timeframe")
        if self.warmup_bars < 0:
            errs.append("warmup_bars must be >= 0")
        if self.history_window is not None and self.history_window < 2:
            errs.append("history_window must be >= 2 or null")
        if self.target_index < 0:
            errs.append("target_index must be >= 0")
        if not (0 <= self.slippage_pct < 0.5):
            errs.append("slippage_pct must be in [0, 0.5)")
        if errs:
            raise ConfigurationError("backtest config violation: " + "; ".join(errs))


@dataclass
class RunnerConfig:
    concurrency: int = 4


@dataclass
class AppConfig:
    name: str = "Trend Confluence"
    log_level: str = "INFO"


@dataclass
class Config:
    app: AppConfig = field(default_factory=AppConfig)
    analysis: AnalysisSettings = field(default_factory=AnalysisSettings)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    profiles: List[StrategyProfile] = field(default_factory=lambda: list(BUILTIN_PROFILES.values()))

    def profile(self, name: str) -> StrategyProfile:
        for p in self.profiles:
            if p.name == name:
                return p
        raise ConfigurationError(f"unknown profile {name!r}; known: {[p.name for p in self.profiles]}")


def _section(cls, raw: Any, section: str):
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"section {section!r} must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigurationError(f"unknown keys in {section!r}: {unknown}")
    try:
        return cls(**raw)
    except TypeError as e:
        raise ConfigurationError(f"invalid {section!r} section: {e}") from e


def _load_profiles(raw: Any) -> List[StrategyProfile]:
    if raw is None:
        return list(BUILTIN_PROFILES.values())
    if not isinstance(raw, list) or not raw:
        raise ConfigurationError("'profiles' must be a non-empty list")
    out: List[StrategyProfile] = []
    seen = set()
    for entry in raw:
        if isinstance(entry, str):
            if entry not in BUILTIN_PROFILES:
                raise ConfigurationError(f"unknown built-in profile {entry!r}")
            prof = BUILTIN_PROFILES[entry]
        elif isinstance(entry, dict):
            prof = profile_from_dict(entry)
        else:
            raise ConfigurationError(f"profile entries must be names or mappings, got {type(entry).__name__}")
        if prof.name in seen:
            raise ConfigurationError(f"duplicate profile name {prof.name!r}")
        seen.add(prof.name)
        out.append(prof)
    return out


def config_from_dict(raw: Dict[str, Any]) -> Config:
    known = {"app", "analysis", "backtest", "runner", "profiles"}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigurationError(f"unknown top-level keys: {unknown}")

    cfg = Config(
        app=_section(AppConfig, raw.get("app"), "app"),
        analysis=_section(AnalysisSettings, raw.get("analysis"), "analysis"),
        backtest=_section(BacktestConfig, raw.get("backtest"), "backtest"),
        runner=_section(RunnerConfig, raw.get("runner"), "runner"),
        profiles=_load_profiles(raw.get("profiles")),
    )
    cfg.analysis.validate()
    cfg.backtest.validate()

    # env overrides (useful on servers)
    cfg.app.log_level = _env_override(cfg.app.log_level, "TREND_CONFLUENCE_LOG_LEVEL")
    cfg.runner.concurrency = _env_override(cfg.runner.concurrency, "TREND_CONFLUENCE_CONCURRENCY")
    if _type_errors(cfg.runner, ints=("concurrency",)) or cfg.runner.concurrency < 1:
        raise ConfigurationError(f"runner.concurrency must be an integer >= 1, got {cfg.runner.concurrency!r}")
    return cfg


def load_config(path: Optional[str]) -> Config:
    if not path:
        return config_from_dict({})
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"cannot parse {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")
    cfg = config_from_dict(raw)
    log.info("config_loaded path=%s profiles=%s", path, [p.name for p in cfg.profiles])
    return cfg
