"""
Signal performance collector.

Joins every signal in the lookback window with realized prices:
- Entry: closest bar to the signal timestamp (+/- 5 min)
- Exits: closest bars to +1h (+/- 30 min), +4h (+/- 1h), +24h (+/- 2h)

Signals are processed in batches; lookups inside a batch run concurrently.
A failure on one signal drops that signal only.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from quantgate.backtest.models import BacktestConfig, HistoricalSignal
from quantgate.config.settings import settings
from quantgate.core.enums import ENTRY_TOLERANCE_SECONDS, Direction, Timeframe
from quantgate.core.exceptions import QuantGateDataError
from quantgate.core.models import UTC, PersistedSignal, PriceBar, as_utc
from quantgate.data.base import PriceHistorySource, SignalHistoryStore

logger = logging.getLogger(__name__)

PROGRESS_LOG_EVERY = 50


def calculate_return(entry_price: float, exit_price: float, direction: Direction) -> float:
    """
    Directional forward return.

    BUY profits from a rise, SELL from a fall. NEUTRAL has no directional
    bet, so it measures the size of the move.
    """
    if entry_price == 0:
        logger.warning("Entry price is zero, cannot calculate return")
        return 0.0

    if direction == Direction.BUY:
        return (exit_price - entry_price) / entry_price
    if direction == Direction.SELL:
        return (entry_price - exit_price) / entry_price
    return abs(exit_price - entry_price) / entry_price


def filter_signals_by_timeframe(
    signals: List[HistoricalSignal], timeframe: Timeframe
) -> List[HistoricalSignal]:
    """Keep signals with a realized return and win flag at this timeframe."""
    return [s for s in signals if s.has_outcome(timeframe)]


class SignalPerformanceCollector:
    """
    Build HistoricalSignal records from the signal store and price history.

    Usage:
        collector = SignalPerformanceCollector(signal_repo, price_repo)
        signals = await collector.collect(BacktestConfig())
    """

    HORIZONS = (Timeframe.H1, Timeframe.H4, Timeframe.H24)

    def __init__(
        self,
        signal_store: SignalHistoryStore,
        price_source: PriceHistorySource,
        batch_size: Optional[int] = None,
    ):
        self.signal_store = signal_store
        self.price_source = price_source
        self.batch_size = max(1, batch_size or settings.backtest_batch_size)

    async def collect(
        self,
        config: BacktestConfig,
        now: Optional[datetime] = None,
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> List[HistoricalSignal]:
        """
        Collect performance data for all signals newer than the lookback cutoff.

        Args:
            should_continue: Checked between batches; returning False stops
                collection early and returns what was gathered so far.
        """
        config.validate()
        now = as_utc(now) if now else datetime.now(UTC)
        cutoff = now - timedelta(days=config.lookback_days)

        logger.info(
            "Collecting signal performance data (lookback=%d days, cutoff=%s)",
            config.lookback_days, cutoff.isoformat(),
        )

        try:
            persisted = await self.signal_store.get_signals_since(cutoff)
        except Exception as e:
            logger.error("Failed to load signals since %s: %s", cutoff.isoformat(), e)
            raise QuantGateDataError(f"Failed to load signals: {e}") from e

        logger.info("Found %d signals to analyze", len(persisted))
        if not persisted:
            return []

        results: List[HistoricalSignal] = []
        total = len(persisted)

        for start in range(0, total, self.batch_size):
            if should_continue is not None and not should_continue():
                logger.info("Collection stopped after %d/%d signals", start, total)
                break

            batch = persisted[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self._signal_performance(sig, config) for sig in batch),
                return_exceptions=True,
            )

            for sig, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                    raise outcome
                if isinstance(outcome, Exception):
                    logger.warning(
                        "Failed to calculate performance for signal %s: %s",
                        sig.id, outcome,
                    )
                elif outcome is not None:
                    results.append(outcome)

            if start % PROGRESS_LOG_EVERY == 0:
                logger.info("Processed %d/%d signals", min(start + self.batch_size, total), total)

        logger.info("Collected performance data for %d/%d signals", len(results), total)
        return results

    async def _signal_performance(
        self, sig: PersistedSignal, config: BacktestConfig
    ) -> Optional[HistoricalSignal]:
        """Join one signal with its entry and exit bars. None if unusable."""
        if sig.direction is None or sig.confidence is None:
            logger.debug("Skipping signal %s without direction/confidence", sig.id)
            return None

        signal_ts = int(as_utc(sig.timestamp).timestamp())

        entry = await self.price_source.get_closest_bar(
            sig.asset, signal_ts, ENTRY_TOLERANCE_SECONDS
        )
        if entry is None:
            logger.debug("No entry bar for signal %s (%s)", sig.id, sig.asset)
            return None

        exit_bars = await asyncio.gather(
            *(self._exit_bar(sig, signal_ts, tf) for tf in self.HORIZONS)
        )

        fields: Dict[str, object] = {}
        for tf, bar in zip(self.HORIZONS, exit_bars):
            if bar is None:
                fields[f"exit_price_{tf.value}"] = None
                fields[f"return_{tf.value}"] = None
                fields[f"is_win_{tf.value}"] = None
                continue
            ret = calculate_return(entry.price, bar.price, sig.direction)
            fields[f"exit_price_{tf.value}"] = bar.price
            fields[f"return_{tf.value}"] = ret
            fields[f"is_win_{tf.value}"] = ret >= config.win_threshold

        return HistoricalSignal(
            signal_id=sig.id,
            asset=sig.asset,
            direction=sig.direction,
            confidence=sig.confidence,
            signal_type=sig.signal_type,
            timestamp=sig.timestamp,
            entry_price=entry.price,
            **fields,
        )

    async def _exit_bar(
        self, sig: PersistedSignal, signal_ts: int, timeframe: Timeframe
    ) -> Optional[PriceBar]:
        """Exit bar for one horizon; a failed lookup means no data for it."""
        try:
            return await self.price_source.get_closest_bar(
                sig.asset,
                signal_ts + timeframe.horizon_seconds,
                timeframe.tolerance_seconds,
            )
        except Exception as e:
            logger.warning(
                "Exit price lookup failed for signal %s at %s: %s",
                sig.id, timeframe.value, e,
            )
            return None
