"""
QuantGate Core Data Models

Pydantic model for the indicator snapshot (the single place raw indicator
values are parsed and validated). Dataclasses for gate results and for the
records exchanged with the signal store and price source.
"""

import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from .enums import AdxDirection, Direction, RiskLevel

UTC = timezone.utc


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_reading(value: Any) -> Optional[float]:
    """
    Parse one raw indicator reading into a finite float or None.

    Accepts ints, floats and numeric strings (the store keeps numerics as
    text). Booleans, blanks, NaN and infinities are treated as absent.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


class IndicatorSnapshot(BaseModel):
    """
    Six technical readings for one asset at one point in time.

    Every reading is optional. A reading that is missing, unparsable or out
    of its valid domain becomes None, so downstream rules only ever see
    `float | None` and a missing indicator simply never fires.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    rsi: Optional[float] = None
    vwap_deviation_pct: Optional[float] = None
    percent_b: Optional[float] = None
    adx: Optional[float] = None
    adx_direction: Optional[AdxDirection] = None
    atr_pct: Optional[float] = None
    obv_zscore: Optional[float] = None

    # Column names used by the technical-analysis table
    RAW_ALIASES: ClassVar[Dict[str, str]] = {
        "vwap_deviation": "vwap_deviation_pct",
        "atr_percent": "atr_pct",
    }

    @field_validator(
        "rsi", "vwap_deviation_pct", "percent_b", "adx", "atr_pct", "obv_zscore",
        mode="before",
    )
    @classmethod
    def _parse_numeric(cls, value: Any) -> Optional[float]:
        return parse_reading(value)

    @field_validator("rsi")
    @classmethod
    def _rsi_in_range(cls, value: Optional[float]) -> Optional[float]:
        if value is None or value < 0 or value > 100:
            return None
        return value

    @field_validator("adx", "atr_pct")
    @classmethod
    def _non_negative(cls, value: Optional[float]) -> Optional[float]:
        if value is None or value < 0:
            return None
        return value

    @field_validator("adx_direction", mode="before")
    @classmethod
    def _parse_direction(cls, value: Any) -> Optional[AdxDirection]:
        if isinstance(value, AdxDirection):
            return value
        if not isinstance(value, str):
            return None
        try:
            return AdxDirection(value.strip().upper())
        except ValueError:
            return None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "IndicatorSnapshot":
        """Build from a technical-analysis row (column names or field names)."""
        fields = {}
        for key, value in raw.items():
            name = cls.RAW_ALIASES.get(key, key)
            if name in cls.model_fields:
                fields[name] = value
        return cls(**fields)

    @property
    def is_empty(self) -> bool:
        """True when no numeric reading is present."""
        return all(
            getattr(self, name) is None
            for name in ("rsi", "vwap_deviation_pct", "percent_b", "adx", "atr_pct", "obv_zscore")
        )


@dataclass(frozen=True)
class FilterResult:
    """Outcome of the confluence filter for one snapshot."""

    should_proceed: bool
    triggered_indicators: Tuple[str, ...]
    signal_candidates: Tuple[str, ...]  # Not deduplicated
    confluence_score: float
    risk_level: RiskLevel

    def to_dict(self) -> dict:
        result = asdict(self)
        result["triggered_indicators"] = list(self.triggered_indicators)
        result["signal_candidates"] = list(self.signal_candidates)
        result["risk_level"] = self.risk_level.value
        return result


@dataclass(frozen=True)
class CooldownDecision:
    """Whether an asset is still inside its adaptive quiet period."""

    skip: bool
    cooldown_minutes: int
    remaining_minutes: int


@dataclass(frozen=True)
class PersistedSignal:
    """A previously emitted signal as read from the signal store."""

    id: str
    asset: str
    direction: Optional[Direction]
    confidence: Optional[float]
    signal_type: str
    timestamp: datetime


@dataclass(frozen=True)
class PriceBar:
    """Closest price bar returned by the price source."""

    price: float
    timestamp: int  # Epoch seconds
