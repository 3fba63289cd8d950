"""
QuantGate Data Repositories

SQLAlchemy implementations of the signal store, last-signal lookup and
price source. Each call opens its own session so lookups can run
concurrently.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import and_, desc, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from quantgate.core.enums import Direction
from quantgate.core.models import PersistedSignal, PriceBar, as_utc, parse_reading
from quantgate.data.base import LastSignalTimeLookup, PriceHistorySource, SignalHistoryStore
from quantgate.storage.database import get_async_session_factory
from quantgate.storage.models import PriceBarRecord, SignalRecord

logger = logging.getLogger(__name__)


class _Repository:
    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory

    async def _factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            self._session_factory = await get_async_session_factory()
        return self._session_factory


def _parse_direction(value: Optional[str]) -> Optional[Direction]:
    if value is None:
        return None
    try:
        return Direction(value.upper())
    except ValueError:
        return None


# =============================================================================
# SIGNAL REPOSITORY
# =============================================================================

class SignalRepository(_Repository, SignalHistoryStore, LastSignalTimeLookup):
    """Repository for emitted signals."""

    async def save(self, signal: PersistedSignal) -> SignalRecord:
        """Insert one signal."""
        record = SignalRecord(
            id=signal.id,
            asset=signal.asset,
            direction=signal.direction.value if signal.direction else None,
            confidence=signal.confidence,
            signal_type=signal.signal_type,
            timestamp=as_utc(signal.timestamp),
        )
        factory = await self._factory()
        async with factory() as session:
            session.add(record)
            await session.commit()
        logger.debug("Saved signal %s (%s)", signal.id, signal.asset)
        return record

    async def get_signals_since(self, cutoff: datetime) -> List[PersistedSignal]:
        """All signals at or after cutoff, newest first."""
        factory = await self._factory()
        async with factory() as session:
            result = await session.execute(
                select(SignalRecord)
                .where(SignalRecord.timestamp >= as_utc(cutoff))
                .order_by(desc(SignalRecord.timestamp))
            )
            records = list(result.scalars().all())

        return [
            PersistedSignal(
                id=r.id,
                asset=r.asset,
                direction=_parse_direction(r.direction),
                confidence=r.confidence,
                signal_type=r.signal_type,
                timestamp=as_utc(r.timestamp),
            )
            for r in records
        ]

    async def get_last_signal_time(self, asset: str) -> Optional[datetime]:
        factory = await self._factory()
        async with factory() as session:
            result = await session.execute(
                select(func.max(SignalRecord.timestamp)).where(SignalRecord.asset == asset)
            )
            last = result.scalar_one_or_none()
        return as_utc(last) if last is not None else None


# =============================================================================
# PRICE BAR REPOSITORY
# =============================================================================

class PriceBarRepository(_Repository, PriceHistorySource):
    """Repository for historical price bars."""

    async def save_bars(self, asset: str, bars: Iterable[Tuple[int, str]]) -> int:
        """Insert (epoch seconds, close) bars; returns the count written."""
        records = [
            PriceBarRecord(asset=asset, timestamp=int(ts), close=str(close))
            for ts, close in bars
        ]
        factory = await self._factory()
        async with factory() as session:
            session.add_all(records)
            await session.commit()
        return len(records)

    async def get_closest_bar(
        self,
        asset: str,
        target_timestamp: int,
        tolerance_seconds: int,
    ) -> Optional[PriceBar]:
        factory = await self._factory()
        async with factory() as session:
            result = await session.execute(
                select(PriceBarRecord)
                .where(
                    and_(
                        PriceBarRecord.asset == asset,
                        PriceBarRecord.timestamp.between(
                            target_timestamp - tolerance_seconds,
                            target_timestamp + tolerance_seconds,
                        ),
                    )
                )
                .order_by(func.abs(PriceBarRecord.timestamp - target_timestamp))
                .limit(1)
            )
            record = result.scalar_one_or_none()

        if record is None:
            return None

        price = parse_reading(record.close)
        if price is None:
            logger.warning(
                "Unparsable close %r for %s at %d", record.close, asset, record.timestamp
            )
            return None
        return PriceBar(price=price, timestamp=record.timestamp)
