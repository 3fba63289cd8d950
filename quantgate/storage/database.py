"""
QuantGate Database Connection and Session Management

SQLAlchemy 2.0 async. PostgreSQL (asyncpg) in production, SQLite
(aiosqlite) for tests and local replays.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from quantgate.config.settings import settings
from quantgate.storage.models import Base

logger = logging.getLogger(__name__)

# sync scheme -> async scheme
ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


# =============================================================================
# DATABASE URL
# =============================================================================

def get_database_url(async_mode: bool = True) -> str:
    """
    Database URL from QUANTGATE_DATABASE_URL or settings.

    Args:
        async_mode: Rewrite the scheme to the async driver (asyncpg,
            aiosqlite); False rewrites it back to the plain scheme.
    """
    url = os.getenv("QUANTGATE_DATABASE_URL") or settings.database_url

    for plain, driver in ASYNC_DRIVERS.items():
        source, target = (plain, driver) if async_mode else (driver, plain)
        if url.startswith(source):
            return target + url[len(source):]
    return url


def _engine_options(db_url: str) -> Dict[str, Any]:
    if db_url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live in one connection
        if ":memory:" in db_url or db_url.rstrip("/").endswith(":"):
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


# =============================================================================
# ENGINE / SESSION FACTORY
# =============================================================================

_async_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker] = None


async def get_async_engine(url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    """Shared async engine. Passing a url replaces the current one."""
    global _async_engine

    if url is not None:
        await reset_engines()

    if _async_engine is None:
        db_url = url or get_database_url(async_mode=True)
        _async_engine = create_async_engine(db_url, echo=echo, **_engine_options(db_url))
        logger.debug("Created async engine for %s", db_url.split("://", 1)[0])

    return _async_engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


async def get_async_session_factory() -> async_sessionmaker:
    """Session factory bound to the shared engine."""
    global _async_session_factory

    if _async_session_factory is None:
        _async_session_factory = make_session_factory(await get_async_engine())
    return _async_session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Unit of work on the shared engine.

    Usage:
        async with get_async_session() as session:
            session.add(record)

    Commits when the block exits cleanly, rolls back when it raises.
    """
    factory = await get_async_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# =============================================================================
# INITIALIZATION / CLEANUP
# =============================================================================

async def init_db_async(url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    """Create the signals and price_bars tables; returns the engine used."""
    engine = await get_async_engine(url=url, echo=echo)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready (%s)", ", ".join(sorted(Base.metadata.tables)))
    return engine


async def reset_engines() -> None:
    """Dispose the shared engine; the next call rebuilds it from settings."""
    global _async_engine, _async_session_factory

    if _async_engine is not None:
        await _async_engine.dispose()

    _async_engine = None
    _async_session_factory = None
