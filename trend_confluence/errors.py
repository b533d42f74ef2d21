from __future__ import annotations

# Reason codes carried by NONE signals
ANCHOR_FLAT = "ANCHOR_FLAT"
CONTRADICTION = "CONTRADICTION"
OVEREXTENDED_PULLBACK = "OVEREXTENDED"
LOW_CONFIDENCE = "LOW_CONFIDENCE"
INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
MISSING_TIMEFRAME = "MISSING_TIMEFRAME"
INVALID_RISK = "INVALID_RISK"


class TrendConfluenceError(Exception):
    pass


class ConfigurationError(TrendConfluenceError, ValueError):
    """Profile or config schema violation. Raised at load time only."""


class EmptySeriesError(TrendConfluenceError, ValueError):
    """No usable candle left after sanitising a series."""


class DataFormatError(TrendConfluenceError, ValueError):
    """Candle file that cannot be parsed."""
