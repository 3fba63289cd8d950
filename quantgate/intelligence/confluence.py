"""
QuantGate Confluence Filter
Static, rule-based gate that runs before any LLM analysis.

Each of the six indicators is checked against its severity tiers
(see quantgate.config.thresholds). A firing tier adds its weight to the
confluence score, its rule name to triggered_indicators and a coarser
tag to signal_candidates.

GATE:
- At least 2 indicators triggered
- Confluence score >= 0.2

RISK:
- HIGH   (score >= 0.5)
- MEDIUM (score >= 0.3)
- LOW    (otherwise)
"""

import logging
from typing import List, Optional, Sequence, Tuple

from quantgate.config.settings import settings
from quantgate.config.thresholds import (
    ADX_TIERS,
    ATR_TIERS,
    BOLLINGER_TIERS,
    OBV_TIERS,
    RSI_TIERS,
    VWAP_TIERS,
    IndicatorTier,
)
from quantgate.core.enums import AdxDirection, RiskLevel
from quantgate.core.models import FilterResult, IndicatorSnapshot

logger = logging.getLogger(__name__)

# Float sums of tier weights are rounded to keep boundary comparisons exact
SCORE_PRECISION = 10


def classify_risk_level(
    confluence_score: float,
    high_threshold: float = 0.5,
    medium_threshold: float = 0.3,
) -> RiskLevel:
    """Map a confluence score to a risk tier."""
    if confluence_score >= high_threshold:
        return RiskLevel.HIGH
    if confluence_score >= medium_threshold:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _first_match(
    tiers: Sequence[IndicatorTier], value: Optional[float]
) -> Optional[IndicatorTier]:
    if value is None:
        return None
    for tier in tiers:
        if tier.matches(value):
            return tier
    return None


class ConfluenceFilter:
    """
    Decide whether a candidate is worth escalating to LLM analysis.

    Usage:
        result = ConfluenceFilter().apply(snapshot)
        if result.should_proceed:
            ...
    """

    def __init__(
        self,
        min_indicators: int = 2,
        min_score: float = 0.2,
        high_risk_score: float = 0.5,
        medium_risk_score: float = 0.3,
    ):
        self.min_indicators = min_indicators
        self.min_score = min_score
        self.high_risk_score = high_risk_score
        self.medium_risk_score = medium_risk_score

    def apply(self, snapshot: IndicatorSnapshot) -> FilterResult:
        """Evaluate every indicator rule against one snapshot."""
        triggered: List[str] = []
        candidates: List[str] = []
        score = 0.0

        for tier, tag in self._evaluate(snapshot):
            triggered.append(tier.rule)
            candidates.append(tag)
            score += tier.weight

        score = round(score, SCORE_PRECISION)
        should_proceed = len(triggered) >= self.min_indicators and score >= self.min_score
        risk_level = classify_risk_level(score, self.high_risk_score, self.medium_risk_score)

        logger.debug(
            "Confluence filter: %d indicators, score=%.2f, risk=%s, proceed=%s (%s)",
            len(triggered), score, risk_level.value, should_proceed,
            ", ".join(triggered) or "none",
        )

        return FilterResult(
            should_proceed=should_proceed,
            triggered_indicators=tuple(triggered),
            signal_candidates=tuple(candidates),
            confluence_score=score,
            risk_level=risk_level,
        )

    def _evaluate(self, snapshot: IndicatorSnapshot) -> List[Tuple[IndicatorTier, str]]:
        """Return (tier, candidate tag) for every indicator that fires, in rule order."""
        fired: List[Tuple[IndicatorTier, str]] = []

        # RSI
        tier = _first_match(RSI_TIERS, snapshot.rsi)
        if tier:
            fired.append((tier, tier.tag))

        # VWAP deviation (magnitude, sign picks premium/discount)
        vwap = snapshot.vwap_deviation_pct
        tier = _first_match(VWAP_TIERS, abs(vwap) if vwap is not None else None)
        if tier:
            side = "HIGH" if vwap > 0 else "LOW"
            fired.append((tier, f"{tier.tag}_{side}"))

        # Bollinger %B
        tier = _first_match(BOLLINGER_TIERS, snapshot.percent_b)
        if tier:
            fired.append((tier, tier.tag))

        # ADX
        tier = _first_match(ADX_TIERS, snapshot.adx)
        if tier:
            fired.append((tier, self._adx_tag(tier, snapshot.adx_direction)))

        # ATR %
        tier = _first_match(ATR_TIERS, snapshot.atr_pct)
        if tier:
            fired.append((tier, tier.tag))

        # OBV z-score (magnitude)
        obv = snapshot.obv_zscore
        tier = _first_match(OBV_TIERS, abs(obv) if obv is not None else None)
        if tier:
            fired.append((tier, tier.tag))

        return fired

    @staticmethod
    def _adx_tag(tier: IndicatorTier, direction: Optional[AdxDirection]) -> str:
        if tier.tag == "TREND_CONTINUATION" and direction in (AdxDirection.UP, AdxDirection.DOWN):
            return f"{tier.tag}_{direction.value}"
        return tier.tag

    @classmethod
    def from_settings(cls) -> "ConfluenceFilter":
        """Filter with thresholds from QUANTGATE_* settings."""
        return cls(
            min_indicators=settings.min_confluence_indicators,
            min_score=settings.min_confluence_score,
            high_risk_score=settings.high_risk_score,
            medium_risk_score=settings.medium_risk_score,
        )


def apply_confluence_filter(snapshot: IndicatorSnapshot) -> FilterResult:
    """Run the confluence filter with thresholds from settings."""
    return ConfluenceFilter.from_settings().apply(snapshot)
