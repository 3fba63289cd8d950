"""Backtest data models."""

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from quantgate.config.settings import settings
from quantgate.core.enums import Direction, Timeframe
from quantgate.core.exceptions import QuantGateConfigError


@dataclass(frozen=True)
class HistoricalSignal:
    """A past signal joined with its realized forward prices."""

    # Identification
    signal_id: str
    asset: str
    direction: Direction
    confidence: float
    signal_type: str
    timestamp: datetime

    # Prices
    entry_price: float
    exit_price_1h: Optional[float] = None
    exit_price_4h: Optional[float] = None
    exit_price_24h: Optional[float] = None

    # Forward returns (None iff the exit price is None)
    return_1h: Optional[float] = None
    return_4h: Optional[float] = None
    return_24h: Optional[float] = None

    # return >= win threshold (None iff the return is None)
    is_win_1h: Optional[bool] = None
    is_win_4h: Optional[bool] = None
    is_win_24h: Optional[bool] = None

    def exit_price_for(self, timeframe: Timeframe) -> Optional[float]:
        return getattr(self, f"exit_price_{timeframe.value}")

    def return_for(self, timeframe: Timeframe) -> Optional[float]:
        return getattr(self, f"return_{timeframe.value}")

    def is_win_for(self, timeframe: Timeframe) -> Optional[bool]:
        return getattr(self, f"is_win_{timeframe.value}")

    def has_outcome(self, timeframe: Timeframe) -> bool:
        return self.return_for(timeframe) is not None and self.is_win_for(timeframe) is not None


@dataclass(frozen=True)
class BacktestMetrics:
    """Aggregate performance of a set of signals at one timeframe."""

    win_rate: float  # 0.0-1.0
    avg_return: float  # Mean of winning returns
    avg_loss: float  # Mean absolute losing return
    risk_reward_ratio: float  # avg_return / avg_loss, inf if no losses
    sample_size: int
    sharpe_ratio: float
    max_drawdown: float  # 0.0-1.0
    confidence_interval: Tuple[float, float]  # 95% Wilson interval on win rate
    total_return: float  # Compounded

    @classmethod
    def empty(cls) -> "BacktestMetrics":
        return cls(
            win_rate=0.0,
            avg_return=0.0,
            avg_loss=0.0,
            risk_reward_ratio=0.0,
            sample_size=0,
            sharpe_ratio=0.0,
            max_drawdown=0.0,
            confidence_interval=(0.0, 0.0),
            total_return=0.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["confidence_interval"] = list(self.confidence_interval)
        if math.isinf(self.risk_reward_ratio):
            result["risk_reward_ratio"] = "inf"
        return result


@dataclass(frozen=True)
class BucketRange:
    """Inclusive confidence range [min, max]."""

    min: float
    max: float

    @property
    def midpoint(self) -> float:
        return (self.min + self.max) / 2


@dataclass(frozen=True)
class ConfidenceBucket:
    """Predicted vs actual win rate for one confidence range."""

    min_confidence: float
    max_confidence: float
    predicted_win_rate: float
    actual_win_rate: float
    sample_size: int
    calibration_error: float  # |predicted - actual|

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def default_confidence_buckets() -> List[BucketRange]:
    """Five 10-point buckets covering 0.5-1.0."""
    return [
        BucketRange(0.5, 0.6),
        BucketRange(0.6, 0.7),
        BucketRange(0.7, 0.8),
        BucketRange(0.8, 0.9),
        BucketRange(0.9, 1.0),
    ]


@dataclass
class BacktestConfig:
    """Backtest run parameters."""

    lookback_days: int = 30
    min_sample_size: int = 20
    confidence_buckets: List[BucketRange] = field(default_factory=default_confidence_buckets)
    timeframes: List[Timeframe] = field(
        default_factory=lambda: [Timeframe.H1, Timeframe.H4, Timeframe.H24]
    )
    win_threshold: float = 0.02  # Minimum return counted as a win

    def validate(self) -> "BacktestConfig":
        """Raise QuantGateConfigError on malformed parameters; returns self."""
        if self.lookback_days <= 0:
            raise QuantGateConfigError(
                f"lookback_days must be positive, got {self.lookback_days}"
            )
        if self.min_sample_size < 0:
            raise QuantGateConfigError(
                f"min_sample_size must be >= 0, got {self.min_sample_size}"
            )
        if not math.isfinite(self.win_threshold):
            raise QuantGateConfigError(f"win_threshold must be finite, got {self.win_threshold}")

        for bucket in self.confidence_buckets:
            if not (0.0 <= bucket.min <= 1.0 and 0.0 <= bucket.max <= 1.0):
                raise QuantGateConfigError(
                    f"Confidence bucket {bucket.min}-{bucket.max} outside [0, 1]"
                )
            if bucket.min > bucket.max:
                raise QuantGateConfigError(
                    f"Confidence bucket min {bucket.min} > max {bucket.max}"
                )

        if not self.timeframes:
            raise QuantGateConfigError("At least one timeframe is required")
        normalized = []
        for tf in self.timeframes:
            try:
                normalized.append(Timeframe(tf))
            except ValueError:
                raise QuantGateConfigError(
                    f"Unsupported timeframe: {tf}. Must be one of: "
                    f"{', '.join(t.value for t in Timeframe)}"
                ) from None
        self.timeframes = normalized
        return self

    @classmethod
    def default(cls) -> "BacktestConfig":
        """Config from QUANTGATE_BACKTEST_* settings."""
        return cls(
            lookback_days=settings.backtest_lookback_days,
            min_sample_size=settings.backtest_min_sample_size,
            win_threshold=settings.backtest_win_threshold,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lookback_days": self.lookback_days,
            "min_sample_size": self.min_sample_size,
            "confidence_buckets": [{"min": b.min, "max": b.max} for b in self.confidence_buckets],
            "timeframes": [tf.value for tf in self.timeframes],
            "win_threshold": self.win_threshold,
        }


@dataclass(frozen=True)
class SignalTypeMetrics:
    """Metrics for one (signal type, direction, timeframe) slice."""

    signal_type: str
    direction: Direction
    timeframe: Timeframe
    metrics: BacktestMetrics

    @property
    def label(self) -> str:
        return f"{self.signal_type}_{self.direction.value}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal_type": self.signal_type,
            "direction": self.direction.value,
            "timeframe": self.timeframe.value,
            "metrics": self.metrics.to_dict(),
        }


@dataclass(frozen=True)
class ThresholdResult:
    """
    Outcome of the confidence threshold search.

    target_met distinguishes a threshold that reached the target win rate
    from a best-effort fallback.
    """

    threshold: float
    actual_win_rate: float
    sample_size: int
    target_met: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SignificanceCheck:
    """Whether a metrics object can be trusted, with advisory warnings."""

    is_significant: bool
    warnings: List[str] = field(default_factory=list)
    t_statistic: float = 0.0
    p_value: float = 1.0  # One-tailed, mean return > 0


@dataclass(frozen=True)
class SignalTypeAnalysis:
    """Ad-hoc analysis of one signal type at one timeframe."""

    signal_type: str
    direction: Direction
    timeframe: Timeframe
    metrics: BacktestMetrics
    validation: SignificanceCheck
    sample_signals: List[HistoricalSignal]


@dataclass(frozen=True)
class BacktestRecommendations:
    """Advisory output of a backtest run."""

    optimal_confidence_threshold: ThresholdResult
    best_performing_signal_types: List[str]
    suggested_improvements: List[str]


@dataclass(frozen=True)
class BacktestReport:
    """Complete output of one backtest run."""

    generated_at: datetime
    config: BacktestConfig
    total_signals: int
    overall_metrics: Dict[Timeframe, BacktestMetrics]
    signal_type_metrics: List[SignalTypeMetrics]
    confidence_calibration: List[ConfidenceBucket]
    calibration_timeframe: Timeframe
    recommendations: BacktestRecommendations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "config": self.config.to_dict(),
            "total_signals": self.total_signals,
            "overall_metrics": {
                tf.value: m.to_dict() for tf, m in self.overall_metrics.items()
            },
            "signal_type_metrics": [stm.to_dict() for stm in self.signal_type_metrics],
            "confidence_calibration": [b.to_dict() for b in self.confidence_calibration],
            "calibration_timeframe": self.calibration_timeframe.value,
            "recommendations": {
                "optimal_confidence_threshold": self.recommendations.optimal_confidence_threshold.to_dict(),
                "best_performing_signal_types": list(self.recommendations.best_performing_signal_types),
                "suggested_improvements": list(self.recommendations.suggested_improvements),
            },
        }
