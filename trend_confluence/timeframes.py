from __future__ import annotations


_UNIT_MINUTES = {"m": 1, "h": 60, "d": 1440, "w": 10080}


def tf_minutes(tf: str) -> int:
    tf = (tf or "").strip().lower()
    if len(tf) < 2 or tf[-1] not in _UNIT_MINUTES:
        raise ValueError(f"Unsupported timeframe: {tf!r}")
    try:
        n = int(tf[:-1])
    except ValueError:
        raise ValueError(f"Unsupported timeframe: {tf!r}") from None
    if n <= 0:
        raise ValueError(f"Unsupported timeframe: {tf!r}")
    return n * _UNIT_MINUTES[tf[-1]]


def tf_ms(tf: str) -> int:
    return tf_minutes(tf) * 60_000


def is_timeframe(tf: str) -> bool:
    try:
        tf_minutes(tf)
    except ValueError:
        return False
    return True
