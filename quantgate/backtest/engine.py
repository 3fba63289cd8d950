"""
Backtest engine that ties collection, metrics and calibration together.

Usage::

    collector = SignalPerformanceCollector(signal_repo, price_repo)
    engine = BacktestEngine(collector, BacktestConfig(lookback_days=14))
    report = await engine.run_backtest()
    print(report.recommendations.optimal_confidence_threshold)
"""

import functools
import logging
import time
from datetime import datetime
from typing import Dict, List, Optional, Union

from quantgate.backtest.cache import MetricsCache
from quantgate.backtest.calibrator import calibrate, find_optimal_threshold, recommend
from quantgate.backtest.data_collector import (
    SignalPerformanceCollector,
    filter_signals_by_timeframe,
)
from quantgate.backtest.models import (
    BacktestConfig,
    BacktestMetrics,
    BacktestRecommendations,
    BacktestReport,
    ConfidenceBucket,
    HistoricalSignal,
    SignalTypeAnalysis,
    SignalTypeMetrics,
    ThresholdResult,
)
from quantgate.backtest.statistics import MetricsCalculator
from quantgate.core.enums import Direction, Timeframe
from quantgate.core.exceptions import NoSignalDataError, QuantGateConfigError
from quantgate.core.models import UTC, as_utc

logger = logging.getLogger(__name__)

TARGET_WIN_RATE = 0.7
BEST_SIGNAL_TYPES_IN_REPORT = 3
BEST_SIGNALS_LIMIT = 10
NEAR_TIE_WIN_RATE = 0.05
SAMPLE_SIGNALS = 5

# Blanket checks on the reference timeframe
MIN_OVERALL_WIN_RATE = 0.6
MIN_RISK_REWARD = 1.5
MAX_DRAWDOWN = 0.2


def _rank_by_win_rate(a: SignalTypeMetrics, b: SignalTypeMetrics) -> int:
    """Higher win rate first; within 5 points, larger sample first."""
    if abs(a.metrics.win_rate - b.metrics.win_rate) < NEAR_TIE_WIN_RATE:
        return b.metrics.sample_size - a.metrics.sample_size
    return -1 if a.metrics.win_rate > b.metrics.win_rate else 1


class BacktestEngine:
    """
    Main engine for running signal backtests.

    Connects:
    - Collector (signals joined with realized prices)
    - Metrics calculator (per timeframe, per signal type)
    - Calibrator (confidence buckets, threshold search, advice)
    """

    def __init__(
        self,
        collector: SignalPerformanceCollector,
        config: Optional[BacktestConfig] = None,
        cache: Optional[MetricsCache] = None,
        reference_timeframe: Timeframe = Timeframe.H4,
    ):
        self.collector = collector
        self.config = (config or BacktestConfig.default()).validate()
        self.cache = cache
        self.calculator = MetricsCalculator()

        if reference_timeframe not in self.config.timeframes:
            logger.warning(
                "Reference timeframe %s not configured, using %s",
                reference_timeframe.value, self.config.timeframes[0].value,
            )
            reference_timeframe = self.config.timeframes[0]
        self.reference_timeframe = reference_timeframe

        logger.info("BacktestEngine initialized: %s", self.config.to_dict())

    async def run_backtest(self, now: Optional[datetime] = None) -> BacktestReport:
        """
        Run the full analysis over the lookback window.

        Raises:
            NoSignalDataError: The collector found no signals at all.
        """
        logger.info("Starting backtest analysis")
        started = time.perf_counter()

        try:
            signals = await self._signals(now, use_cache=False)
            if not signals:
                raise NoSignalDataError(
                    f"No signal data found for backtesting "
                    f"(lookback {self.config.lookback_days} days)"
                )
            logger.info("Collected %d signal results for analysis", len(signals))

            overall = self._overall_metrics(signals)
            type_metrics = self._signal_type_metrics(signals)
            calibration = calibrate(signals, self.config, self.reference_timeframe)
            recommendations = self._recommendations(
                overall, type_metrics, calibration, signals
            )
        except Exception as e:
            logger.error("Backtest analysis failed: %s", e)
            raise

        report = BacktestReport(
            generated_at=datetime.now(UTC),
            config=self.config,
            total_signals=len(signals),
            overall_metrics=overall,
            signal_type_metrics=type_metrics,
            confidence_calibration=calibration,
            calibration_timeframe=self.reference_timeframe,
            recommendations=recommendations,
        )

        logger.info(
            "Backtest analysis completed in %.0fms (%d signals, %d signal type slices)",
            (time.perf_counter() - started) * 1000, len(signals), len(type_metrics),
        )
        return report

    async def analyze_signal_type(
        self,
        signal_type: str,
        direction: Direction,
        timeframe: Union[Timeframe, str],
        now: Optional[datetime] = None,
    ) -> SignalTypeAnalysis:
        """Metrics, significance check and sample signals for one signal type."""
        timeframe = self._configured_timeframe(timeframe)
        try:
            direction = Direction(direction)
        except ValueError:
            raise QuantGateConfigError(
                f"Invalid direction: {direction}. Must be one of: BUY, SELL, NEUTRAL"
            ) from None

        signals = await self._signals(now)
        subset = [
            s for s in signals
            if s.signal_type == signal_type and s.direction == direction
        ]
        with_outcome = filter_signals_by_timeframe(subset, timeframe)

        metrics = self.calculator.calculate(with_outcome, timeframe)
        validation = self.calculator.validate_significance(
            metrics,
            min_sample_size=self.config.min_sample_size,
            returns=[s.return_for(timeframe) for s in with_outcome],
        )

        return SignalTypeAnalysis(
            signal_type=signal_type,
            direction=direction,
            timeframe=timeframe,
            metrics=metrics,
            validation=validation,
            sample_signals=with_outcome[:SAMPLE_SIGNALS],
        )

    async def get_best_performing_signals(
        self,
        timeframe: Union[Timeframe, str] = Timeframe.H4,
        min_sample_size: int = 20,
        now: Optional[datetime] = None,
    ) -> List[SignalTypeMetrics]:
        """Top signal types by win rate; near-ties favor the larger sample."""
        timeframe = self._configured_timeframe(timeframe)
        signals = await self._signals(now)
        candidates = [
            stm for stm in self._signal_type_metrics(signals)
            if stm.timeframe == timeframe and stm.metrics.sample_size >= min_sample_size
        ]
        ranked = sorted(candidates, key=functools.cmp_to_key(_rank_by_win_rate))
        return ranked[:BEST_SIGNALS_LIMIT]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _signals(
        self, now: Optional[datetime], use_cache: bool = True
    ) -> List[HistoricalSignal]:
        key = (
            "signals",
            self.config.lookback_days,
            self.config.win_threshold,
            as_utc(now).isoformat() if now else None,
        )
        if use_cache and self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Using cached signal performance data (%d signals)", len(cached))
                return cached

        signals = await self.collector.collect(self.config, now=now)
        if self.cache is not None:
            self.cache.set(key, signals)
        return signals

    def _configured_timeframe(self, timeframe: Union[Timeframe, str]) -> Timeframe:
        allowed = ", ".join(tf.value for tf in self.config.timeframes)
        try:
            tf = Timeframe(timeframe)
        except ValueError:
            raise QuantGateConfigError(
                f"Invalid timeframe: {timeframe}. Must be one of: {allowed}"
            ) from None
        if tf not in self.config.timeframes:
            raise QuantGateConfigError(f"Invalid timeframe: {tf.value}. Must be one of: {allowed}")
        return tf

    def _overall_metrics(
        self, signals: List[HistoricalSignal]
    ) -> Dict[Timeframe, BacktestMetrics]:
        return {
            tf: self.calculator.calculate(filter_signals_by_timeframe(signals, tf), tf)
            for tf in self.config.timeframes
        }

    def _signal_type_metrics(self, signals: List[HistoricalSignal]) -> List[SignalTypeMetrics]:
        """Every observed (type, direction) pair at every timeframe, minus thin slices."""
        signal_types = list(dict.fromkeys(s.signal_type for s in signals))
        results: List[SignalTypeMetrics] = []

        for signal_type in signal_types:
            for direction in Direction:
                slices = self.calculator.calculate_signal_type_metrics(
                    signals, signal_type, direction, self.config.timeframes
                )
                results.extend(
                    stm for stm in slices
                    if stm.metrics.sample_size >= self.config.min_sample_size
                )

        return results

    def _recommendations(
        self,
        overall: Dict[Timeframe, BacktestMetrics],
        type_metrics: List[SignalTypeMetrics],
        calibration: List[ConfidenceBucket],
        signals: List[HistoricalSignal],
    ) -> BacktestRecommendations:
        reference = self.reference_timeframe
        optimal: ThresholdResult = find_optimal_threshold(
            signals,
            reference,
            target_win_rate=TARGET_WIN_RATE,
            min_sample_size=self.config.min_sample_size,
        )
        suggestions = recommend(calibration, optimal)

        best = sorted(
            (
                stm for stm in type_metrics
                if stm.timeframe == reference
                and stm.metrics.sample_size >= self.config.min_sample_size
            ),
            key=lambda stm: stm.metrics.win_rate,
            reverse=True,
        )[:BEST_SIGNAL_TYPES_IN_REPORT]

        metrics = overall[reference]
        if metrics.win_rate < MIN_OVERALL_WIN_RATE:
            suggestions.append("Overall win rate is below 60% - review signal generation criteria")
        if metrics.risk_reward_ratio < MIN_RISK_REWARD:
            suggestions.append(
                "Risk/reward ratio is below 1.5 - consider tighter stop losses or higher profit targets"
            )
        if metrics.max_drawdown > MAX_DRAWDOWN:
            suggestions.append("Maximum drawdown exceeds 20% - implement better risk management")

        return BacktestRecommendations(
            optimal_confidence_threshold=optimal,
            best_performing_signal_types=[stm.label for stm in best],
            suggested_improvements=suggestions,
        )


async def run_backtest(
    config: BacktestConfig,
    collector: SignalPerformanceCollector,
    cache: Optional[MetricsCache] = None,
) -> BacktestReport:
    """One-shot backtest with the given config."""
    engine = BacktestEngine(collector, config=config, cache=cache)
    return await engine.run_backtest()


async def run_quick_backtest(
    collector: SignalPerformanceCollector,
    lookback_days: int = 30,
) -> BacktestReport:
    """Backtest with default settings over the last lookback_days."""
    return await run_backtest(BacktestConfig(lookback_days=lookback_days), collector)
