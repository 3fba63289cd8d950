"""
Smart signal cooldown - adaptive quiet period per asset.

cooldown = BASE x volatility x trend x rsi x strength, clamped to [15, 120] min

- Volatile tokens (high ATR%) get re-evaluated sooner
- Strong trends (ADX > 25) shorten the cooldown, ranges lengthen it
- RSI extremes shorten it
- High-confidence signals shorten it

The calculator holds no state; the last signal time comes from an external
lookup. Any failure while checking fails open (the signal goes out).
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional, Tuple

from quantgate.config.settings import settings
from quantgate.config.thresholds import (
    COOLDOWN_FACTORS,
    MARKET_CONDITIONS,
    SIGNAL_STRENGTH_MULTIPLIERS,
    CooldownFactors,
)
from quantgate.core.enums import MarketCondition, SignalStrength
from quantgate.core.models import UTC, CooldownDecision, IndicatorSnapshot, as_utc
from quantgate.data.base import LastSignalTimeLookup

logger = logging.getLogger(__name__)


def classify_market_condition(atr_pct: float) -> MarketCondition:
    """Classify a token's volatility regime from ATR%."""
    for condition in (
        MarketCondition.MEME_COIN,
        MarketCondition.HIGH_VOLATILITY,
        MarketCondition.NORMAL,
    ):
        if atr_pct >= MARKET_CONDITIONS[condition].atr_min:
            return condition
    return MarketCondition.STABLE


def recommended_cooldown_range(condition: MarketCondition) -> Tuple[int, int]:
    """Expected (min, max) cooldown minutes for a market condition (monitoring only)."""
    return MARKET_CONDITIONS[condition].cooldown_range


def signal_strength_multiplier(confidence: float) -> float:
    return SIGNAL_STRENGTH_MULTIPLIERS[SignalStrength.from_confidence(confidence)]


class SmartCooldownCalculator:
    """
    Volatility + trend based cooldown.

    Usage:
        calc = SmartCooldownCalculator()
        minutes = calc.compute_cooldown(snapshot, signal_confidence=0.85)
        if calc.should_skip("SOL", snapshot, 0.85, last_signal_time):
            return  # still cooling down
    """

    def __init__(
        self,
        base_minutes: int = 30,
        min_minutes: int = 15,
        max_minutes: int = 120,
        factors: Optional[CooldownFactors] = None,
    ):
        self.base_minutes = base_minutes
        self.min_minutes = min_minutes
        self.max_minutes = max_minutes
        self.factors = factors or COOLDOWN_FACTORS

    def _clamp(self, minutes: float) -> int:
        # Half-up rounding: 22.5 -> 23
        return max(self.min_minutes, min(self.max_minutes, math.floor(minutes + 0.5)))

    def volatility_factor(self, atr_pct: float) -> float:
        f = self.factors
        if atr_pct <= 0:
            # No measurable volatility: longest allowed cooldown
            return f.max_volatility_factor
        return max(f.min_volatility_factor, min(f.max_volatility_factor, f.reference_atr / atr_pct))

    def trend_factor(self, adx: float) -> float:
        f = self.factors
        if adx > f.strong_trend_threshold:
            return f.strong_trend_factor
        return f.weak_trend_factor

    def rsi_factor(self, rsi: float) -> float:
        f = self.factors
        if rsi > f.rsi_overbought or rsi < f.rsi_oversold:
            return f.rsi_extremity_factor
        return f.rsi_normal_factor

    def compute_cooldown(
        self,
        snapshot: IndicatorSnapshot,
        signal_confidence: float = 0.5,
    ) -> int:
        """Cooldown in minutes for this snapshot and signal confidence."""
        f = self.factors
        atr_pct = snapshot.atr_pct if snapshot.atr_pct is not None else f.default_atr_pct
        adx = snapshot.adx if snapshot.adx is not None else f.default_adx
        rsi = snapshot.rsi if snapshot.rsi is not None else f.default_rsi

        try:
            volatility = self.volatility_factor(atr_pct)
            trend = self.trend_factor(adx)
            rsi_f = self.rsi_factor(rsi)
            strength = signal_strength_multiplier(signal_confidence)

            raw = self.base_minutes * volatility * trend * rsi_f * strength
            minutes = self._clamp(raw)
        except (ArithmeticError, TypeError, ValueError) as e:
            logger.error(
                "Error calculating smart cooldown, using base cooldown: %s "
                "(atr=%s adx=%s rsi=%s)", e, atr_pct, adx, rsi,
            )
            return self._clamp(self.base_minutes)

        logger.debug(
            "Smart cooldown: atr=%.2f adx=%.1f rsi=%.1f conf=%.2f -> "
            "vol=%.2f trend=%.2f rsi=%.2f strength=%.2f raw=%.1f final=%d (%s)",
            atr_pct, adx, rsi, signal_confidence,
            volatility, trend, rsi_f, strength, raw, minutes,
            classify_market_condition(atr_pct).value,
        )
        return minutes

    @staticmethod
    def is_within_cooldown(
        last_signal_time: datetime,
        cooldown_minutes: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """True while strictly less than cooldown_minutes have elapsed."""
        now = as_utc(now) if now else datetime.now(UTC)
        return now - as_utc(last_signal_time) < timedelta(minutes=cooldown_minutes)

    @staticmethod
    def remaining_minutes(
        last_signal_time: datetime,
        cooldown_minutes: int,
        now: Optional[datetime] = None,
    ) -> int:
        """Whole minutes (rounded up) until the cooldown ends, never negative."""
        now = as_utc(now) if now else datetime.now(UTC)
        elapsed = (now - as_utc(last_signal_time)).total_seconds()
        remaining = cooldown_minutes * 60 - elapsed
        return max(0, math.ceil(remaining / 60))

    def decide(
        self,
        snapshot: IndicatorSnapshot,
        signal_confidence: float,
        last_signal_time: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> CooldownDecision:
        """Full cooldown decision; no prior signal never blocks."""
        minutes = self.compute_cooldown(snapshot, signal_confidence)
        if last_signal_time is None:
            return CooldownDecision(skip=False, cooldown_minutes=minutes, remaining_minutes=0)

        skip = self.is_within_cooldown(last_signal_time, minutes, now)
        remaining = self.remaining_minutes(last_signal_time, minutes, now) if skip else 0
        return CooldownDecision(skip=skip, cooldown_minutes=minutes, remaining_minutes=remaining)

    def should_skip(
        self,
        asset: str,
        snapshot: IndicatorSnapshot,
        signal_confidence: float,
        last_signal_time: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> bool:
        """True if the asset is still cooling down. Fails open on any error."""
        try:
            if last_signal_time is None:
                logger.debug("No previous signal for %s, proceeding", asset)
                return False

            decision = self.decide(snapshot, signal_confidence, last_signal_time, now)
        except Exception as e:
            logger.error(
                "Error checking cooldown for %s, proceeding with signal generation: %s",
                asset, e,
            )
            return False

        if decision.skip:
            logger.info(
                "%s in cooldown (%d min, %d min remaining), skipping signal",
                asset, decision.cooldown_minutes, decision.remaining_minutes,
            )
        else:
            logger.debug(
                "%s cooldown of %d min has passed, proceeding",
                asset, decision.cooldown_minutes,
            )
        return decision.skip


def get_cooldown_calculator() -> SmartCooldownCalculator:
    """Calculator configured from settings."""
    return SmartCooldownCalculator(
        base_minutes=settings.cooldown_base_minutes,
        min_minutes=settings.cooldown_min_minutes,
        max_minutes=settings.cooldown_max_minutes,
    )


async def should_skip_due_to_cooldown(
    asset: str,
    snapshot: IndicatorSnapshot,
    confidence: float,
    lookup: LastSignalTimeLookup,
    calculator: Optional[SmartCooldownCalculator] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check the last-alert store and decide whether to suppress a signal.

    Lookup failures fail open and return False.
    """
    calculator = calculator or get_cooldown_calculator()
    try:
        last_signal_time = await lookup.get_last_signal_time(asset)
    except Exception as e:
        logger.error(
            "Error fetching last signal time for %s, proceeding with signal generation: %s",
            asset, e,
        )
        return False

    return calculator.should_skip(asset, snapshot, confidence, last_signal_time, now)
