"""QuantGate Storage Layer - Database models and repositories."""

from quantgate.storage.models import (
    Base,
    PriceBarRecord,
    SignalRecord,
)
from quantgate.storage.database import (
    get_async_engine,
    get_async_session,
    get_async_session_factory,
    get_database_url,
    init_db_async,
    make_session_factory,
    reset_engines,
)
from quantgate.storage.repositories import PriceBarRepository, SignalRepository

__all__ = [
    "Base",
    "PriceBarRecord",
    "SignalRecord",
    "get_async_engine",
    "get_async_session",
    "get_async_session_factory",
    "get_database_url",
    "init_db_async",
    "make_session_factory",
    "reset_engines",
    "PriceBarRepository",
    "SignalRepository",
]
