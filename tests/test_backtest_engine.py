"""Tests for the backtest engine."""

from unittest.mock import AsyncMock

import pytest

from quantgate.backtest.cache import MetricsCache
from quantgate.backtest.engine import BacktestEngine, run_backtest, run_quick_backtest
from quantgate.backtest.models import BacktestConfig, BucketRange
from quantgate.config.settings import settings
from quantgate.core.enums import Direction, Timeframe
from quantgate.core.exceptions import (
    NoSignalDataError,
    QuantGateConfigError,
    QuantGateDataError,
)

from factories import make_signal


def batch(prefix, n, wins, confidence=0.75, signal_type="RSI_OVERSOLD",
          direction=Direction.BUY, win_return=0.05, loss_return=-0.02):
    """n signals of one type, the first `wins` of them winners at 4h."""
    return [
        make_signal(
            f"{prefix}{i}",
            confidence=confidence,
            signal_type=signal_type,
            direction=direction,
            return_4h=win_return if i < wins else loss_return,
        )
        for i in range(n)
    ]


@pytest.fixture
def good_signals():
    """RSI_OVERSOLD_BUY wins 80% at high confidence; VOLUME_SPIKE_SELL wins 50%."""
    return (
        batch("r", 40, 32, confidence=0.85)
        + batch("v", 30, 15, confidence=0.65, signal_type="VOLUME_SPIKE",
                direction=Direction.SELL, win_return=0.03, loss_return=-0.03)
    )


@pytest.fixture
def collector(good_signals):
    collector = AsyncMock()
    collector.collect.return_value = good_signals
    return collector


@pytest.fixture
def config():
    return BacktestConfig(min_sample_size=20)


class TestEngineInit:
    def test_default_config_from_settings(self):
        engine = BacktestEngine(AsyncMock())
        assert engine.config.lookback_days == settings.backtest_lookback_days
        assert engine.config.min_sample_size == settings.backtest_min_sample_size
        assert engine.reference_timeframe == Timeframe.H4

    def test_reference_timeframe_falls_back_to_first_configured(self):
        engine = BacktestEngine(AsyncMock(), BacktestConfig(timeframes=[Timeframe.H24, Timeframe.H1]))
        assert engine.reference_timeframe == Timeframe.H24

    def test_string_timeframes_normalized(self):
        engine = BacktestEngine(AsyncMock(), BacktestConfig(timeframes=["1h", "4h"]))
        assert engine.config.timeframes == [Timeframe.H1, Timeframe.H4]

    @pytest.mark.parametrize("config", [
        BacktestConfig(lookback_days=0),
        BacktestConfig(min_sample_size=-1),
        BacktestConfig(win_threshold=float("nan")),
        BacktestConfig(confidence_buckets=[BucketRange(0.8, 0.7)]),
        BacktestConfig(confidence_buckets=[BucketRange(0.9, 1.2)]),
        BacktestConfig(timeframes=[]),
        BacktestConfig(timeframes=["15m"]),
    ])
    def test_invalid_config_rejected(self, config):
        with pytest.raises(QuantGateConfigError):
            BacktestEngine(AsyncMock(), config)


class TestRunBacktest:
    @pytest.mark.asyncio
    async def test_report(self, collector, config, now):
        report = await BacktestEngine(collector, config).run_backtest(now=now)

        collector.collect.assert_awaited_once_with(config, now=now)
        assert report.total_signals == 70
        assert set(report.overall_metrics) == {Timeframe.H1, Timeframe.H4, Timeframe.H24}
        assert report.overall_metrics[Timeframe.H4].sample_size == 70
        assert report.overall_metrics[Timeframe.H1].sample_size == 0
        assert report.calibration_timeframe == Timeframe.H4
        assert len(report.confidence_calibration) == 5
        assert report.generated_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_thin_slices_dropped(self, collector, config, now):
        report = await BacktestEngine(collector, config).run_backtest(now=now)

        labels = {(stm.label, stm.timeframe) for stm in report.signal_type_metrics}
        assert labels == {
            ("RSI_OVERSOLD_BUY", Timeframe.H4),
            ("VOLUME_SPIKE_SELL", Timeframe.H4),
        }

    @pytest.mark.asyncio
    async def test_recommendations(self, collector, config, now):
        report = await BacktestEngine(collector, config).run_backtest(now=now)
        recs = report.recommendations

        optimal = recs.optimal_confidence_threshold
        assert optimal.target_met is True
        assert optimal.threshold == pytest.approx(0.85)
        assert optimal.actual_win_rate == pytest.approx(0.8)
        assert recs.best_performing_signal_types == ["RSI_OVERSOLD_BUY", "VOLUME_SPIKE_SELL"]
        assert "Overall win rate is below 60% - review signal generation criteria" not in (
            recs.suggested_improvements
        )

    @pytest.mark.asyncio
    async def test_threshold_search_uses_configured_minimum(self, config, now):
        collector = AsyncMock()
        collector.collect.return_value = batch("h", 25, 25, confidence=0.9)

        report = await BacktestEngine(collector, config).run_backtest(now=now)

        optimal = report.recommendations.optimal_confidence_threshold
        assert optimal.target_met is True
        assert optimal.threshold == pytest.approx(0.9)
        assert optimal.sample_size == 25

    @pytest.mark.asyncio
    async def test_blanket_checks(self, config, now):
        # alternating +3% / -5%: 50% win rate, RR 0.6, ~30% drawdown
        signals = [
            make_signal(f"s{i}", confidence=0.75, return_4h=0.03 if i % 2 == 0 else -0.05)
            for i in range(30)
        ]
        collector = AsyncMock()
        collector.collect.return_value = signals

        report = await BacktestEngine(collector, config).run_backtest(now=now)
        suggestions = report.recommendations.suggested_improvements

        assert "Overall win rate is below 60% - review signal generation criteria" in suggestions
        assert (
            "Risk/reward ratio is below 1.5 - consider tighter stop losses or higher profit targets"
            in suggestions
        )
        assert "Maximum drawdown exceeds 20% - implement better risk management" in suggestions
        assert report.recommendations.optimal_confidence_threshold.target_met is False

    @pytest.mark.asyncio
    async def test_to_dict(self, collector, config, now):
        data = (await BacktestEngine(collector, config).run_backtest(now=now)).to_dict()

        assert data["total_signals"] == 70
        assert data["calibration_timeframe"] == "4h"
        assert set(data["overall_metrics"]) == {"1h", "4h", "24h"}
        assert data["recommendations"]["optimal_confidence_threshold"]["target_met"] is True

    @pytest.mark.asyncio
    async def test_no_signals(self, config, now):
        collector = AsyncMock()
        collector.collect.return_value = []

        with pytest.raises(NoSignalDataError):
            await BacktestEngine(collector, config).run_backtest(now=now)

    @pytest.mark.asyncio
    async def test_collector_error_propagates(self, config, now):
        collector = AsyncMock()
        collector.collect.side_effect = QuantGateDataError("store down")

        with pytest.raises(QuantGateDataError):
            await BacktestEngine(collector, config).run_backtest(now=now)

    @pytest.mark.asyncio
    async def test_module_helpers(self, collector, config):
        report = await run_backtest(config, collector)
        assert report.total_signals == 70

        await run_quick_backtest(collector, lookback_days=7)
        assert collector.collect.call_args.args[0].lookback_days == 7


class TestAnalyzeSignalType:
    @pytest.mark.asyncio
    async def test_analysis(self, collector, config, now):
        engine = BacktestEngine(collector, config)

        analysis = await engine.analyze_signal_type("RSI_OVERSOLD", "BUY", "4h", now=now)

        assert analysis.direction == Direction.BUY
        assert analysis.timeframe == Timeframe.H4
        assert analysis.metrics.sample_size == 40
        assert analysis.metrics.win_rate == pytest.approx(0.8)
        assert analysis.validation.is_significant is True
        assert analysis.validation.p_value < 0.05
        assert len(analysis.sample_signals) == 5
        assert all(s.signal_type == "RSI_OVERSOLD" for s in analysis.sample_signals)

    @pytest.mark.asyncio
    async def test_unknown_type(self, collector, config, now):
        analysis = await BacktestEngine(collector, config).analyze_signal_type(
            "MACD_CROSS", Direction.BUY, Timeframe.H4, now=now
        )

        assert analysis.metrics.sample_size == 0
        assert analysis.validation.is_significant is False
        assert analysis.sample_signals == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeframe", ["15m", "1d"])
    async def test_invalid_timeframe(self, collector, config, timeframe):
        with pytest.raises(QuantGateConfigError):
            await BacktestEngine(collector, config).analyze_signal_type(
                "RSI_OVERSOLD", Direction.BUY, timeframe
            )
        collector.collect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_timeframe_not_configured(self, collector):
        engine = BacktestEngine(collector, BacktestConfig(timeframes=[Timeframe.H4]))
        with pytest.raises(QuantGateConfigError):
            await engine.analyze_signal_type("RSI_OVERSOLD", Direction.BUY, Timeframe.H1)
        collector.collect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_direction(self, collector, config):
        with pytest.raises(QuantGateConfigError, match="Invalid direction"):
            await BacktestEngine(collector, config).analyze_signal_type(
                "RSI_OVERSOLD", "LONG", Timeframe.H4
            )
        collector.collect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_direction_string_accepted(self, collector, config, now):
        analysis = await BacktestEngine(collector, config).analyze_signal_type(
            "VOLUME_SPIKE", "SELL", "4h", now=now
        )
        assert analysis.direction == Direction.SELL
        assert analysis.metrics.sample_size == 30


class TestBestPerformingSignals:
    @pytest.fixture
    def ranked_collector(self):
        signals = (
            batch("a", 20, 16, signal_type="RSI_OVERSOLD")                      # 80%, n=20
            + batch("b", 50, 39, signal_type="MACD_CROSS")                      # 78%, n=50
            + batch("c", 30, 18, signal_type="VOLUME_SPIKE", direction=Direction.SELL)  # 60%
            + batch("d", 10, 10, signal_type="BB_SQUEEZE")                      # too few
        )
        collector = AsyncMock()
        collector.collect.return_value = signals
        return collector

    @pytest.mark.asyncio
    async def test_near_ties_favor_larger_sample(self, ranked_collector, config, now):
        best = await BacktestEngine(ranked_collector, config).get_best_performing_signals(now=now)

        assert [stm.label for stm in best] == [
            "MACD_CROSS_BUY",
            "RSI_OVERSOLD_BUY",
            "VOLUME_SPIKE_SELL",
        ]
        assert all(stm.timeframe == Timeframe.H4 for stm in best)

    @pytest.mark.asyncio
    async def test_min_sample_size(self, ranked_collector, config, now):
        best = await BacktestEngine(ranked_collector, config).get_best_performing_signals(
            min_sample_size=40, now=now
        )
        assert [stm.label for stm in best] == ["MACD_CROSS_BUY"]

    @pytest.mark.asyncio
    async def test_limited_to_ten(self, config, now):
        signals = []
        for t in range(12):
            signals += batch(f"t{t}-", 20, 10 + t // 2, signal_type=f"TYPE_{t}")
        collector = AsyncMock()
        collector.collect.return_value = signals

        best = await BacktestEngine(collector, config).get_best_performing_signals(now=now)

        assert len(best) == 10

    @pytest.mark.asyncio
    async def test_other_timeframe_without_outcomes(self, ranked_collector, config, now):
        engine = BacktestEngine(ranked_collector, config)
        assert await engine.get_best_performing_signals(Timeframe.H24, now=now) == []

    @pytest.mark.asyncio
    async def test_invalid_timeframe(self, ranked_collector, config):
        with pytest.raises(QuantGateConfigError):
            await BacktestEngine(ranked_collector, config).get_best_performing_signals("15m")
        ranked_collector.collect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_timeframe_not_configured(self, ranked_collector):
        engine = BacktestEngine(ranked_collector, BacktestConfig(timeframes=[Timeframe.H4]))
        with pytest.raises(QuantGateConfigError):
            await engine.get_best_performing_signals(Timeframe.H1)
        ranked_collector.collect.assert_not_awaited()


class TestCaching:
    @pytest.mark.asyncio
    async def test_ad_hoc_queries_reuse_signals(self, collector, config, now):
        engine = BacktestEngine(collector, config, cache=MetricsCache())

        await engine.analyze_signal_type("RSI_OVERSOLD", Direction.BUY, Timeframe.H4, now=now)
        await engine.get_best_performing_signals(now=now)

        assert collector.collect.await_count == 1

    @pytest.mark.asyncio
    async def test_run_backtest_always_collects(self, collector, config, now):
        engine = BacktestEngine(collector, config, cache=MetricsCache())

        await engine.run_backtest(now=now)
        await engine.run_backtest(now=now)
        await engine.get_best_performing_signals(now=now)

        assert collector.collect.await_count == 2

    @pytest.mark.asyncio
    async def test_without_cache(self, collector, config, now):
        engine = BacktestEngine(collector, config)

        await engine.get_best_performing_signals(now=now)
        await engine.get_best_performing_signals(now=now)

        assert collector.collect.await_count == 2
