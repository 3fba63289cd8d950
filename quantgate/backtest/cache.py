"""
Caller-owned TTL cache for backtest results.

The engine uses it to reuse collected signals between ad-hoc queries
(analyze_signal_type, get_best_performing_signals) instead of hitting the
stores every time. Expired entries are evicted when read.
"""

import logging
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from quantgate.config.settings import settings

logger = logging.getLogger(__name__)


class MetricsCache:
    """
    Dict of key -> (stored_at, value) with a fixed time-to-live
    (QUANTGATE_BACKTEST_CACHE_TTL_SECONDS by default).

    Usage:
        cache = MetricsCache(ttl_seconds=900)
        cache.set(("signals", 30), signals)
        signals = cache.get(("signals", 30))  # None once expired
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.ttl_seconds = settings.backtest_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            logger.debug("Cache entry %s expired", key)
            return None
        return value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one entry, or everything when key is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
