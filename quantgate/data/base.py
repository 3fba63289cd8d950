"""
QuantGate Base Data Sources

Abstract interfaces for the external stores this package reads from.
Concrete SQLAlchemy implementations live in quantgate.storage.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from quantgate.core.models import PersistedSignal, PriceBar


class PriceHistorySource(ABC):
    """Historical price bars per asset."""

    @abstractmethod
    async def get_closest_bar(
        self,
        asset: str,
        target_timestamp: int,
        tolerance_seconds: int,
    ) -> Optional[PriceBar]:
        """
        Return the bar closest to target_timestamp (epoch seconds) within
        +/- tolerance_seconds, or None when no bar falls in the window.
        """
        pass


class SignalHistoryStore(ABC):
    """Previously emitted signals."""

    @abstractmethod
    async def get_signals_since(self, cutoff: datetime) -> List[PersistedSignal]:
        """Return all signals with timestamp >= cutoff."""
        pass


class LastSignalTimeLookup(ABC):
    """Timestamp of the most recent signal per asset (for cooldown)."""

    @abstractmethod
    async def get_last_signal_time(self, asset: str) -> Optional[datetime]:
        """Return the last signal time for asset, or None if never signalled."""
        pass
