from .base import LastSignalTimeLookup, PriceHistorySource, SignalHistoryStore

__all__ = [
    "LastSignalTimeLookup",
    "PriceHistorySource",
    "SignalHistoryStore",
]
