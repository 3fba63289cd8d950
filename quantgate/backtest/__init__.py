"""QuantGate Signal Backtesting."""

from .cache import MetricsCache
from .calibrator import calibrate, find_optimal_threshold, recommend
from .data_collector import (
    SignalPerformanceCollector,
    calculate_return,
    filter_signals_by_timeframe,
)
from .engine import BacktestEngine, run_backtest, run_quick_backtest
from .models import (
    BacktestConfig,
    BacktestMetrics,
    BacktestRecommendations,
    BacktestReport,
    BucketRange,
    ConfidenceBucket,
    HistoricalSignal,
    SignalTypeAnalysis,
    SignalTypeMetrics,
    SignificanceCheck,
    ThresholdResult,
    default_confidence_buckets,
)
from .statistics import MetricsCalculator, max_drawdown, sharpe_ratio, total_return, wilson_interval

__all__ = [
    # Engine
    "BacktestEngine",
    "MetricsCache",
    "run_backtest",
    "run_quick_backtest",
    # Collection
    "SignalPerformanceCollector",
    "calculate_return",
    "filter_signals_by_timeframe",
    # Metrics
    "MetricsCalculator",
    "max_drawdown",
    "sharpe_ratio",
    "total_return",
    "wilson_interval",
    # Calibration
    "calibrate",
    "find_optimal_threshold",
    "recommend",
    "default_confidence_buckets",
    # Models
    "BacktestConfig",
    "BacktestMetrics",
    "BacktestRecommendations",
    "BacktestReport",
    "BucketRange",
    "ConfidenceBucket",
    "HistoricalSignal",
    "SignalTypeAnalysis",
    "SignalTypeMetrics",
    "SignificanceCheck",
    "ThresholdResult",
]
