from __future__ import annotations

import hashlib
import json
from dataclasses import MISSING, dataclass, fields, replace
from typing import Any, Dict, Optional, Tuple

from .errors import ConfigurationError
from .timeframes import is_timeframe


@dataclass(frozen=True)
class StrategyProfile:
    """Declarative description of one strategy horizon.

    Anchors are tried in order; the first with a non-flat trend gates the
    signal. The stop-loss timeframe is explicit so that each horizon sizes its
    stop from structure on the timeframe it actually trades.
    """

    name: str
    anchor_timeframes: Tuple[str, ...]
    confirm_timeframes: Tuple[str, ...]
    entry_timeframes: Tuple[str, ...]
    min_confidence: float
    risk_reward_targets: Tuple[float, ...]
    stop_loss_timeframe: str
    pullback_timeframe: Optional[str] = None  # None -> resolved anchor
    entry_tolerance_pct: float = 0.004  # entry band; pullback buckets use AnalysisSettings
    stop_buffer_pct: float = 0.0

    def __post_init__(self) -> None:
        # accept lists from YAML, store tuples
        for name in ("anchor_timeframes", "confirm_timeframes", "entry_timeframes", "risk_reward_targets"):
            val = getattr(self, name)
            if isinstance(val, (str, bytes)) or not hasattr(val, "__iter__"):
                raise ConfigurationError(f"profile {self.name!r}: {name} must be a list")
            object.__setattr__(self, name, tuple(val))
        self._validate()

    def _validate(self) -> None:
        errs = []
        if not isinstance(self.name, str) or not self.name.strip():
            errs.append("name must be a non-empty string")
        if not self.anchor_timeframes:
            errs.append("anchor_timeframes must not be empty")
        if not self.entry_timeframes:
            errs.append("entry_timeframes must not be empty")
        for tf in self.referenced_timeframes():
            if not isinstance(tf, str) or not is_timeframe(tf):
                errs.append(f"{tf!r} is not a timeframe")
        overlap = set(self.anchor_timeframes) & set(self.confirm_timeframes)
        if overlap:
            errs.append(f"timeframes both anchor and confirm: {sorted(overlap)}")
        if not isinstance(self.min_confidence, (int, float)) or not (0 < self.min_confidence <= 1):
            errs.append("min_confidence must be in (0, 1]")
        rr = self.risk_reward_targets
        if not rr:
            errs.append("risk_reward_targets must not be empty")
        elif any((not isinstance(r, (int, float))) or r <= 0 for r in rr):
            errs.append("risk_reward_targets must be positive numbers")
        elif any(b <= a for a, b in zip(rr, rr[1:])):
            errs.append("risk_reward_targets must be strictly increasing")
        if not isinstance(self.entry_tolerance_pct, (int, float)) or not (0 < self.entry_tolerance_pct < 1):
            errs.append("entry_tolerance_pct must be in (0, 1)")
        if not isinstance(self.stop_buffer_pct, (int, float)) or not (0 <= self.stop_buffer_pct < 1):
            errs.append("stop_buffer_pct must be in [0, 1)")
        if errs:
            raise ConfigurationError(f"profile {self.name!r} invalid: " + "; ".join(errs))

    def referenced_timeframes(self) -> Tuple[str, ...]:
        tfs = list(self.anchor_timeframes) + list(self.confirm_timeframes) + list(self.entry_timeframes)
        tfs.append(self.stop_loss_timeframe)
        if self.pullback_timeframe is not None:
            tfs.append(self.pullback_timeframe)
        return tuple(dict.fromkeys(tfs))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "anchor_timeframes": list(self.anchor_timeframes),
            "confirm_timeframes": list(self.confirm_timeframes),
            "entry_timeframes": list(self.entry_timeframes),
            "min_confidence": self.min_confidence,
            "risk_reward_targets": list(self.risk_reward_targets),
            "stop_loss_timeframe": self.stop_loss_timeframe,
            "pullback_timeframe": self.pullback_timeframe,
            "entry_tolerance_pct": self.entry_tolerance_pct,
            "stop_buffer_pct": self.stop_buffer_pct,
        }


BUILTIN_PROFILES: Dict[str, StrategyProfile] = {
    "scalp": StrategyProfile(
        name="scalp",
        anchor_timeframes=("1h",),
        confirm_timeframes=("15m",),
        entry_timeframes=("5m",),
        min_confidence=0.55,
        risk_reward_targets=(1.5, 2.5),
        stop_loss_timeframe="15m",
    ),
    "trend": StrategyProfile(
        name="trend",
        anchor_timeframes=("4h",),
        confirm_timeframes=("1h",),
        entry_timeframes=("15m", "5m"),
        min_confidence=0.60,
        risk_reward_targets=(1.0, 2.0),
        stop_loss_timeframe="4h",
    ),
    "swing": StrategyProfile(
        name="swing",
        anchor_timeframes=("3d", "1d"),
        confirm_timeframes=("4h",),
        entry_timeframes=("4h",),
        min_confidence=0.65,
        risk_reward_targets=(3.0, 5.0),
        stop_loss_timeframe="1d",
    ),
    "micro_scalp": StrategyProfile(
        name="micro_scalp",
        anchor_timeframes=("1h",),
        confirm_timeframes=(),
        entry_timeframes=("15m", "5m"),
        min_confidence=0.50,
        risk_reward_targets=(1.0, 1.5),
        stop_loss_timeframe="15m",
        entry_tolerance_pct=0.0025,
    ),
}


def profile_from_dict(raw: Dict[str, Any]) -> StrategyProfile:
    """Build a profile from a config mapping.

    `extends: <builtin>` copies a built-in profile and overrides the given keys.
    """
    raw = dict(raw)
    base_name = raw.pop("extends", None)
    known = {f.name for f in fields(StrategyProfile)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigurationError(f"profile {raw.get('name', '?')!r}: unknown keys {unknown}")

    if base_name is not None:
        base = BUILTIN_PROFILES.get(base_name)
        if base is None:
            raise ConfigurationError(f"profile extends unknown built-in {base_name!r}")
        if "name" not in raw:
            raise ConfigurationError(f"profile extending {base_name!r} needs its own name")
        try:
            return replace(base, **raw)
        except TypeError as e:
            raise ConfigurationError(f"profile {raw.get('name')!r}: {e}") from e

    missing = sorted(
        f.name for f in fields(StrategyProfile)
        if f.name not in raw and f.default is MISSING and f.default_factory is MISSING
    )
    if missing:
        raise ConfigurationError(f"profile {raw.get('name', '?')!r}: missing keys {missing}")
    try:
        return StrategyProfile(**raw)
    except TypeError as e:
        raise ConfigurationError(f"profile {raw.get('name', '?')!r}: {e}") from e


def profile_signature(profile: StrategyProfile) -> str:
    payload = json.dumps(profile.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
