from __future__ import annotations

import csv
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import DataFormatError
from .models import Candle

log = logging.getLogger("data")

_TIME_KEYS = ("timestamp_ms", "timestamp", "open_time", "open_time_ms", "time", "t")
_FIELD_KEYS = {
    "open": ("open", "o"),
    "high": ("high", "h"),
    "low": ("low", "l"),
    "close": ("close", "c"),
    "volume": ("volume", "v"),
}


def _parse_ts(raw: Any) -> int:
    if isinstance(raw, (int, float)):
        return int(raw)
    s = str(raw).strip()
    try:
        return int(float(s))
    except ValueError:
        pass
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def _pick(row: Dict[str, Any], keys: Sequence[str]) -> Any:
    for k in keys:
        if k in row and row[k] not in (None, ""):
            return row[k]
    raise KeyError(keys[0])


def candle_from_row(row: Any) -> Candle:
    """Exchange kline row `[open_time_ms, o, h, l, c, v, ...]` or a mapping."""
    if isinstance(row, (list, tuple)):
        if len(row) < 6:
            raise ValueError(f"kline row needs 6 fields, got {len(row)}")
        return Candle(
            timestamp_ms=_parse_ts(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5]),
        )
    if isinstance(row, dict):
        lowered = {str(k).strip().lower(): v for k, v in row.items()}
        return Candle(
            timestamp_ms=_parse_ts(_pick(lowered, _TIME_KEYS)),
            open=float(_pick(lowered, _FIELD_KEYS["open"])),
            high=float(_pick(lowered, _FIELD_KEYS["high"])),
            low=float(_pick(lowered, _FIELD_KEYS["low"])),
            close=float(_pick(lowered, _FIELD_KEYS["close"])),
            volume=float(_pick(lowered, _FIELD_KEYS["volume"])),
        )
    raise ValueError(f"unsupported row type {type(row).__name__}")


def _parse_rows(rows: Iterable[Any], path: str) -> List[Candle]:
    out: List[Candle] = []
    for i, row in enumerate(rows):
        try:
            out.append(candle_from_row(row))
        except (KeyError, TypeError, ValueError) as e:
            raise DataFormatError(f"{path}: row {i}: {e!r}") from e
    return out


def load_candles(path: str) -> List[Candle]:
    """Read candles from a CSV (with header) or JSON file.

    Values are parsed, not validated; run them through
    `validation.sanitize_candles` (the simulator and evaluator do).
    """
    ext = os.path.splitext(path)[1].lower()
    if ext == ".csv":
        with open(path, "r", encoding="utf-8", newline="") as f:
            candles = _parse_rows(csv.DictReader(f), path)
    elif ext == ".json":
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise DataFormatError(f"{path}: {e}") from e
        if isinstance(data, dict):
            data = data.get("candles")
        if not isinstance(data, list):
            raise DataFormatError(f"{path}: expected a list of candles")
        candles = _parse_rows(data, path)
    else:
        raise DataFormatError(f"{path}: unsupported extension {ext or '(none)'}")
    log.debug("candles_loaded path=%s count=%d", path, len(candles))
    return candles


def find_series_file(directory: str, symbol: str, timeframe: str) -> Optional[str]:
    for ext in (".csv", ".json"):
        p = os.path.join(directory, f"{symbol}_{timeframe}{ext}")
        if os.path.isfile(p):
            return p
    return None


def load_symbol_dir(directory: str, symbol: str, timeframes: Iterable[str]) -> Dict[str, List[Candle]]:
    """Load `<SYMBOL>_<tf>.csv|json` for each timeframe found in `directory`."""
    out: Dict[str, List[Candle]] = {}
    for tf in timeframes:
        path = find_series_file(directory, symbol, tf)
        if path is None:
            log.warning("series_missing dir=%s symbol=%s tf=%s", directory, symbol, tf)
            continue
        out[tf] = load_candles(path)
    return out
