"""
QuantGate enumerations.
"""

from enum import Enum


class Direction(str, Enum):
    """Directional call of a signal."""

    BUY = "BUY"
    SELL = "SELL"
    NEUTRAL = "NEUTRAL"


class AdxDirection(str, Enum):
    """Trend direction reported alongside ADX."""

    UP = "UP"
    DOWN = "DOWN"
    NEUTRAL = "NEUTRAL"


class RiskLevel(str, Enum):
    """Risk tier derived from the confluence score."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SignalStrength(str, Enum):
    """Conviction bucket derived from a 0-1 confidence."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    WEAK = "WEAK"

    @classmethod
    def from_confidence(cls, confidence: float) -> "SignalStrength":
        if confidence >= 0.8:
            return cls.HIGH
        if confidence >= 0.6:
            return cls.MEDIUM
        if confidence >= 0.4:
            return cls.LOW
        return cls.WEAK


class MarketCondition(str, Enum):
    """Volatility regime of a token, by ATR%."""

    MEME_COIN = "MEME_COIN"
    HIGH_VOLATILITY = "HIGH_VOLATILITY"
    NORMAL = "NORMAL"
    STABLE = "STABLE"


class Timeframe(str, Enum):
    """Forward horizons a signal is evaluated at."""

    H1 = "1h"
    H4 = "4h"
    H24 = "24h"

    @property
    def horizon_seconds(self) -> int:
        """Offset of the exit bar from the signal timestamp."""
        mapping = {
            "1h": 3600,
            "4h": 14400,
            "24h": 86400,
        }
        return mapping[self.value]

    @property
    def tolerance_seconds(self) -> int:
        """How far the exit bar may sit from the target time."""
        mapping = {
            "1h": 1800,   # +/- 30 min
            "4h": 3600,   # +/- 1 h
            "24h": 7200,  # +/- 2 h
        }
        return mapping[self.value]


# Entry bar must be within 5 minutes of the signal
ENTRY_TOLERANCE_SECONDS = 300


class PipelineStage(str, Enum):
    """Named stages of the signal generation pipeline."""

    STATIC_FILTER = "static_filter"
    DATA_FETCH = "data_fetch"
    LLM_ANALYSIS = "llm_analysis"
    COOLDOWN = "cooldown"
    FORMAT_SIGNAL = "format_signal"
    END = "end"


class SearchStrategy(str, Enum):
    """Outcome of the evidence fetch stage."""

    FUNDAMENTAL_SEARCH = "FUNDAMENTAL_SEARCH"
    SKIP = "SKIP"
    FAILED = "FAILED"
