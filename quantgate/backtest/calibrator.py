"""
Confidence calibration.

Compares the confidence a signal claimed with how often signals in that
confidence range actually won, and searches for the confidence threshold
that reaches a target win rate.
"""

import logging
from typing import List, Optional, Sequence

from quantgate.backtest.models import (
    BacktestConfig,
    ConfidenceBucket,
    HistoricalSignal,
    ThresholdResult,
    default_confidence_buckets,
)
from quantgate.backtest.statistics import win_rate_for_timeframe
from quantgate.core.enums import Timeframe

logger = logging.getLogger(__name__)

# Threshold search grid: 0.95 down to 0.50
THRESHOLD_CANDIDATES = tuple(round(0.95 - i * 0.05, 2) for i in range(10))
FALLBACK_THRESHOLD = 0.7

# Recommendation rules
MAX_MEAN_CALIBRATION_ERROR = 0.1
LOW_SAMPLE_BUCKET_SIZE = 20
LOWER_THRESHOLD_WIN_RATE = 0.65
RAISE_THRESHOLD_WIN_RATE = 0.85
CONFIDENCE_PATTERN_MIN_SAMPLES = 10
CONFIDENCE_PATTERN_MARGIN = 0.05

__all__ = [
    "calibrate",
    "find_optimal_threshold",
    "recommend",
    "default_confidence_buckets",
]


def calibrate(
    signals: Sequence[HistoricalSignal],
    config: BacktestConfig,
    timeframe: Timeframe,
) -> List[ConfidenceBucket]:
    """Predicted (bucket midpoint) vs actual win rate per confidence range."""
    config.validate()

    logger.info(
        "Starting confidence calibration (%d signals, %s, %d buckets)",
        len(signals), timeframe.value, len(config.confidence_buckets),
    )

    results: List[ConfidenceBucket] = []
    for bucket in config.confidence_buckets:
        in_bucket = [s for s in signals if bucket.min <= s.confidence <= bucket.max]
        predicted = bucket.midpoint

        if not in_bucket:
            logger.warning("No signals found for confidence bucket %.2f-%.2f", bucket.min, bucket.max)
            results.append(ConfidenceBucket(
                min_confidence=bucket.min,
                max_confidence=bucket.max,
                predicted_win_rate=predicted,
                actual_win_rate=0.0,
                sample_size=0,
                calibration_error=0.0,
            ))
            continue

        actual = win_rate_for_timeframe(in_bucket, timeframe)
        error = abs(predicted - actual)
        results.append(ConfidenceBucket(
            min_confidence=bucket.min,
            max_confidence=bucket.max,
            predicted_win_rate=predicted,
            actual_win_rate=actual,
            sample_size=len(in_bucket),
            calibration_error=error,
        ))

        logger.info(
            "Confidence bucket %.2f-%.2f: actual=%.1f%% predicted=%.1f%% error=%.1f%% n=%d",
            bucket.min, bucket.max, actual * 100, predicted * 100, error * 100, len(in_bucket),
        )

    return results


def find_optimal_threshold(
    signals: Sequence[HistoricalSignal],
    timeframe: Timeframe,
    target_win_rate: float = 0.7,
    min_sample_size: int = 30,
) -> ThresholdResult:
    """
    Highest confidence threshold whose signals reach target_win_rate.

    Scans from strict to loose and returns the first qualifying threshold
    with target_met=True. If none qualifies, returns the best win rate seen
    among thresholds with enough samples (ties go to the higher threshold)
    with target_met=False. If no threshold has enough samples at all, the
    result is the 0.7 fallback with zero win rate and sample size.
    """
    best: Optional[ThresholdResult] = None

    for threshold in THRESHOLD_CANDIDATES:
        eligible = [s for s in signals if s.confidence >= threshold]
        if len(eligible) < min_sample_size:
            continue

        win_rate = win_rate_for_timeframe(eligible, timeframe)
        if win_rate >= target_win_rate:
            logger.info(
                "Optimal confidence threshold %.2f (win rate %.1f%%, n=%d, target %.1f%%)",
                threshold, win_rate * 100, len(eligible), target_win_rate * 100,
            )
            return ThresholdResult(
                threshold=threshold,
                actual_win_rate=win_rate,
                sample_size=len(eligible),
                target_met=True,
            )

        if best is None or win_rate > best.actual_win_rate or (
            win_rate == best.actual_win_rate and threshold > best.threshold
        ):
            best = ThresholdResult(
                threshold=threshold,
                actual_win_rate=win_rate,
                sample_size=len(eligible),
                target_met=False,
            )

    if best is None:
        logger.info(
            "No threshold has %d+ signals; falling back to %.2f",
            min_sample_size, FALLBACK_THRESHOLD,
        )
        return ThresholdResult(
            threshold=FALLBACK_THRESHOLD, actual_win_rate=0.0, sample_size=0, target_met=False
        )

    logger.info(
        "Target win rate %.1f%% not reached; best effort threshold %.2f "
        "(win rate %.1f%%, n=%d)",
        target_win_rate * 100, best.threshold, best.actual_win_rate * 100, best.sample_size,
    )
    return best


def recommend(
    buckets: Sequence[ConfidenceBucket],
    optimal: ThresholdResult,
) -> List[str]:
    """Advisory hints from calibration quality and the threshold search."""
    recommendations: List[str] = []

    if buckets:
        mean_error = sum(b.calibration_error for b in buckets) / len(buckets)
        if mean_error > MAX_MEAN_CALIBRATION_ERROR:
            recommendations.append(
                f"High calibration error ({mean_error * 100:.1f}%) - consider retraining confidence model"
            )

    low_sample = [b for b in buckets if b.sample_size < LOW_SAMPLE_BUCKET_SIZE]
    if low_sample:
        recommendations.append(
            f"{len(low_sample)} confidence buckets have insufficient samples "
            f"(<{LOW_SAMPLE_BUCKET_SIZE}) - collect more data"
        )

    if not optimal.target_met:
        recommendations.append(
            f"No confidence threshold reached the target win rate - "
            f"{optimal.threshold:.2f} is a best-effort threshold "
            f"({optimal.actual_win_rate * 100:.1f}% win rate, n={optimal.sample_size})"
        )

    if optimal.actual_win_rate < LOWER_THRESHOLD_WIN_RATE:
        recommendations.append("Consider lowering confidence threshold to increase signal frequency")
    elif optimal.actual_win_rate > RAISE_THRESHOLD_WIN_RATE:
        recommendations.append("Consider raising confidence threshold to improve signal quality")

    trusted = [b for b in buckets if b.sample_size > CONFIDENCE_PATTERN_MIN_SAMPLES]
    overconfident = sum(
        1 for b in trusted if b.predicted_win_rate > b.actual_win_rate + CONFIDENCE_PATTERN_MARGIN
    )
    underconfident = sum(
        1 for b in trusted if b.actual_win_rate > b.predicted_win_rate + CONFIDENCE_PATTERN_MARGIN
    )

    if overconfident > underconfident:
        recommendations.append("Model tends to be overconfident - consider lowering confidence scores")
    elif underconfident > overconfident:
        recommendations.append("Model tends to be underconfident - consider raising confidence scores")

    return recommendations
