"""
Calculate backtest metrics for historical signals.

Key metrics:
- Win rate (with 95% Wilson score interval)
- Average win / average loss and risk/reward
- Sharpe ratio (per signal, risk-free rate 0)
- Max drawdown of the compounded return curve
- Total compounded return
- Statistical significance (t-test on mean return)
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats as sp_stats

from quantgate.backtest.models import (
    BacktestMetrics,
    HistoricalSignal,
    SignalTypeMetrics,
    SignificanceCheck,
)
from quantgate.core.enums import Direction, Timeframe

logger = logging.getLogger(__name__)

WILSON_Z_95 = 1.96


def extract_timeframe_data(
    signals: Sequence[HistoricalSignal], timeframe: Timeframe
) -> Tuple[List[float], List[float], List[float]]:
    """Split realized returns at a timeframe into (all, wins, losses), in input order."""
    returns: List[float] = []
    wins: List[float] = []
    losses: List[float] = []

    for signal in signals:
        ret = signal.return_for(timeframe)
        is_win = signal.is_win_for(timeframe)
        if ret is None or is_win is None:
            continue
        returns.append(ret)
        if is_win:
            wins.append(ret)
        else:
            losses.append(ret)

    return returns, wins, losses


def win_rate_for_timeframe(signals: Sequence[HistoricalSignal], timeframe: Timeframe) -> float:
    """Wins / signals with a known outcome at this timeframe (0 if none)."""
    _, wins, losses = extract_timeframe_data(signals, timeframe)
    total = len(wins) + len(losses)
    if total == 0:
        return 0.0
    return len(wins) / total


def sharpe_ratio(returns: Sequence[float]) -> float:
    """Mean / sample std (n-1). 0 with fewer than 2 samples or zero spread."""
    if len(returns) < 2:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    std = float(np.std(arr, ddof=1))
    if std <= 0 or not math.isfinite(std):
        return 0.0
    return float(np.mean(arr)) / std


def max_drawdown(returns: Sequence[float]) -> float:
    """Largest peak-to-trough decline of the compounded curve, as a fraction."""
    cumulative = 1.0
    peak = 1.0
    max_dd = 0.0

    for ret in returns:
        cumulative *= 1 + ret
        if cumulative > peak:
            peak = cumulative
        if peak > 0:
            dd = (peak - cumulative) / peak
            if dd > max_dd:
                max_dd = dd

    return max_dd


def total_return(returns: Sequence[float]) -> float:
    """Compounded return minus 1."""
    cumulative = 1.0
    for ret in returns:
        cumulative *= 1 + ret
    return cumulative - 1


def wilson_interval(
    win_rate: float, sample_size: int, z: float = WILSON_Z_95
) -> Tuple[float, float]:
    """Wilson score interval for a binomial proportion, clamped to [0, 1]."""
    if sample_size <= 0:
        return 0.0, 0.0

    n = sample_size
    p = win_rate
    z2 = z * z

    denominator = 1 + z2 / n
    center = p + z2 / (2 * n)
    margin = z * math.sqrt((p * (1 - p) + z2 / (4 * n)) / n)

    lower = max(0.0, (center - margin) / denominator)
    upper = min(1.0, (center + margin) / denominator)
    return lower, upper


class MetricsCalculator:
    """Calculate backtest metrics."""

    # validate_significance thresholds
    MIN_SAMPLE_SIZE = 30
    MAX_CI_WIDTH = 0.2
    SUSPICIOUS_LOW_WIN_RATE = 0.1
    SUSPICIOUS_HIGH_WIN_RATE = 0.9

    def calculate(
        self,
        signals: Sequence[HistoricalSignal],
        timeframe: Timeframe,
    ) -> BacktestMetrics:
        """Calculate all metrics for the signals with an outcome at timeframe."""
        if not signals:
            return BacktestMetrics.empty()

        returns, wins, losses = extract_timeframe_data(signals, timeframe)
        if not returns:
            logger.warning(
                "No valid returns for %s metrics (%d signals)", timeframe.value, len(signals)
            )
            return BacktestMetrics.empty()

        total = len(returns)
        win_rate = len(wins) / total
        avg_return = float(np.mean(wins)) if wins else 0.0
        avg_loss = abs(float(np.mean(losses))) if losses else 0.0

        if avg_loss > 0:
            risk_reward = avg_return / avg_loss
        elif wins:
            risk_reward = float("inf")
        else:
            risk_reward = 0.0

        return BacktestMetrics(
            win_rate=win_rate,
            avg_return=avg_return,
            avg_loss=avg_loss,
            risk_reward_ratio=risk_reward,
            sample_size=total,
            sharpe_ratio=sharpe_ratio(returns),
            max_drawdown=max_drawdown(returns),
            confidence_interval=wilson_interval(win_rate, total),
            total_return=total_return(returns),
        )

    def calculate_signal_type_metrics(
        self,
        signals: Sequence[HistoricalSignal],
        signal_type: str,
        direction: Direction,
        timeframes: Sequence[Timeframe],
    ) -> List[SignalTypeMetrics]:
        """Metrics for one (signal type, direction) at every timeframe."""
        subset = [
            s for s in signals
            if s.signal_type == signal_type and s.direction == direction
        ]
        return [
            SignalTypeMetrics(
                signal_type=signal_type,
                direction=direction,
                timeframe=tf,
                metrics=self.calculate(subset, tf),
            )
            for tf in timeframes
        ]

    def validate_significance(
        self,
        metrics: BacktestMetrics,
        min_sample_size: Optional[int] = None,
        returns: Optional[Sequence[float]] = None,
    ) -> SignificanceCheck:
        """
        Check whether metrics are trustworthy.

        Args:
            min_sample_size: Required sample size (default 30).
            returns: Optional realized returns; adds a one-tailed t-test of
                mean return > 0.
        """
        required = self.MIN_SAMPLE_SIZE if min_sample_size is None else min_sample_size
        warnings: List[str] = []
        is_significant = True

        if metrics.sample_size < required:
            warnings.append(
                f"Sample size ({metrics.sample_size}) is below recommended minimum ({required})"
            )
            is_significant = False

        lo, hi = metrics.confidence_interval
        ci_width = hi - lo
        if ci_width > self.MAX_CI_WIDTH:
            warnings.append(
                f"Wide confidence interval (±{ci_width / 2 * 100:.1f}%) indicates low precision"
            )

        if metrics.win_rate < self.SUSPICIOUS_LOW_WIN_RATE:
            warnings.append("Extremely low win rate may indicate systematic issues")

        if metrics.win_rate > self.SUSPICIOUS_HIGH_WIN_RATE:
            warnings.append("Extremely high win rate may indicate data leakage or overfitting")

        t_stat, p_value = self._significance_test(returns or [])

        return SignificanceCheck(
            is_significant=is_significant,
            warnings=warnings,
            t_statistic=t_stat,
            p_value=p_value,
        )

    @staticmethod
    def _significance_test(returns: Sequence[float]) -> Tuple[float, float]:
        """One-tailed t-test: is mean return significantly > 0?"""
        if len(returns) < 2 or float(np.std(returns, ddof=1)) == 0:
            return 0.0, 1.0

        t_stat, p_two = sp_stats.ttest_1samp(returns, 0)
        p_one = p_two / 2 if t_stat > 0 else 1 - p_two / 2
        return float(t_stat), float(p_one)
