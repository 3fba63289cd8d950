"""
Rule tables for the confluence filter and the smart cooldown.

Confluence tiers are evaluated most severe first; an indicator fires at most
one tier. VWAP deviation and OBV z-score tiers compare the absolute value,
the sign only picks the candidate tag.

Cooldown:
- Base 30 min, clamped to [15, 120]
- Volatility factor = REFERENCE_ATR / ATR%, clamped to [0.3, 2.0]
- Strong trend (ADX > 25) x0.7, otherwise x1.3
- RSI outside [30, 70] x0.8
- Signal strength x0.6 / x0.8 / x1.0 / x1.2
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from quantgate.core.enums import MarketCondition, SignalStrength


@dataclass(frozen=True)
class IndicatorTier:
    """One severity tier of one indicator rule."""

    rule: str  # Name appended to triggered_indicators
    threshold: float
    weight: float  # Contribution to confluence score
    tag: str  # Coarser signal candidate tag
    above: bool  # True: value >= threshold, False: value <= threshold

    def matches(self, value: float) -> bool:
        if self.above:
            return value >= self.threshold
        return value <= self.threshold


RSI_TIERS: Tuple[IndicatorTier, ...] = (
    IndicatorTier("RSI_CRITICAL_OVERSOLD", 20.0, 0.25, "RSI_OVERSOLD", above=False),
    IndicatorTier("RSI_OVERSOLD", 25.0, 0.15, "RSI_OVERSOLD", above=False),
    IndicatorTier("RSI_CRITICAL_OVERBOUGHT", 80.0, 0.25, "RSI_OVERBOUGHT", above=True),
    IndicatorTier("RSI_OVERBOUGHT", 75.0, 0.15, "RSI_OVERBOUGHT", above=True),
)

# abs(deviation %); tag gets _HIGH / _LOW suffix from the sign
VWAP_TIERS: Tuple[IndicatorTier, ...] = (
    IndicatorTier("VWAP_EXTREME_DEVIATION", 4.0, 0.30, "VWAP_DEVIATION", above=True),
    IndicatorTier("VWAP_SIGNIFICANT_DEVIATION", 3.0, 0.20, "VWAP_DEVIATION", above=True),
)

BOLLINGER_TIERS: Tuple[IndicatorTier, ...] = (
    IndicatorTier("BOLLINGER_BREAKOUT_UP", 1.0, 0.20, "BOLLINGER_BREAKOUT_UP", above=True),
    IndicatorTier("BOLLINGER_BREAKOUT_DOWN", 0.0, 0.20, "BOLLINGER_BREAKOUT_DOWN", above=False),
    IndicatorTier("BOLLINGER_OVERBOUGHT", 0.9, 0.10, "BOLLINGER_REVERSAL_DOWN", above=True),
    IndicatorTier("BOLLINGER_OVERSOLD", 0.1, 0.10, "BOLLINGER_REVERSAL_UP", above=False),
)

# Strong-trend tag gets _UP / _DOWN suffix from adx_direction
ADX_TIERS: Tuple[IndicatorTier, ...] = (
    IndicatorTier("ADX_OVERHEATED", 50.0, 0.15, "TREND_EXHAUSTION", above=True),
    IndicatorTier("ADX_STRONG_TREND", 40.0, 0.10, "TREND_CONTINUATION", above=True),
)

ATR_TIERS: Tuple[IndicatorTier, ...] = (
    IndicatorTier("ATR_EXTREME_VOLATILITY", 8.0, 0.15, "HIGH_VOLATILITY", above=True),
    IndicatorTier("ATR_HIGH_VOLATILITY", 5.0, 0.10, "HIGH_VOLATILITY", above=True),
)

# abs(z-score)
OBV_TIERS: Tuple[IndicatorTier, ...] = (
    IndicatorTier("OBV_EXTREME_DIVERGENCE", 4.0, 0.20, "VOLUME_SPIKE", above=True),
    IndicatorTier("OBV_STRONG_DIVERGENCE", 3.0, 0.15, "VOLUME_SPIKE", above=True),
)


@dataclass(frozen=True)
class CooldownFactors:
    """Multipliers applied to the base cooldown."""

    reference_atr: float = 3.0  # ATR% of a "normal" token
    min_volatility_factor: float = 0.3
    max_volatility_factor: float = 2.0

    strong_trend_threshold: float = 25.0
    strong_trend_factor: float = 0.7
    weak_trend_factor: float = 1.3

    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    rsi_extremity_factor: float = 0.8
    rsi_normal_factor: float = 1.0

    # Neutral readings used when an indicator is missing
    default_atr_pct: float = 2.0
    default_adx: float = 20.0
    default_rsi: float = 50.0


COOLDOWN_FACTORS = CooldownFactors()


# Cooldown multiplier per strength level (levels: HIGH >= 0.8, MEDIUM >= 0.6, LOW >= 0.4)
SIGNAL_STRENGTH_MULTIPLIERS: Dict[SignalStrength, float] = {
    SignalStrength.HIGH: 0.6,
    SignalStrength.MEDIUM: 0.8,
    SignalStrength.LOW: 1.0,
    SignalStrength.WEAK: 1.2,
}


@dataclass(frozen=True)
class MarketConditionProfile:
    """ATR% floor and expected cooldown window for a market condition."""

    atr_min: float
    cooldown_range: Tuple[int, int]
    description: str


MARKET_CONDITIONS: Dict[MarketCondition, MarketConditionProfile] = {
    MarketCondition.MEME_COIN: MarketConditionProfile(8.0, (15, 30), "High volatility memecoin"),
    MarketCondition.HIGH_VOLATILITY: MarketConditionProfile(5.0, (30, 60), "High volatility altcoin"),
    MarketCondition.NORMAL: MarketConditionProfile(2.0, (45, 90), "Normal volatility token"),
    MarketCondition.STABLE: MarketConditionProfile(0.0, (60, 120), "Low volatility stable asset"),
}
