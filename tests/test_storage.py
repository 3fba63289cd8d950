"""Tests for the SQLAlchemy storage layer (aiosqlite)."""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from quantgate.backtest.data_collector import SignalPerformanceCollector
from quantgate.backtest.models import BacktestConfig
from quantgate.core.enums import Direction
from quantgate.core.models import PersistedSignal
from quantgate.storage import (
    PriceBarRepository,
    SignalRecord,
    SignalRepository,
    get_async_engine,
    get_async_session,
    get_database_url,
    init_db_async,
    make_session_factory,
    reset_engines,
)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = await init_db_async(url=f"sqlite+aiosqlite:///{tmp_path / 'quantgate.db'}")
    yield make_session_factory(engine)
    await reset_engines()


@pytest.fixture
def signals(session_factory):
    return SignalRepository(session_factory)


@pytest.fixture
def prices(session_factory):
    return PriceBarRepository(session_factory)


def signal(signal_id, ts, asset="SOL", direction=Direction.BUY, confidence=0.8):
    return PersistedSignal(
        id=signal_id,
        asset=asset,
        direction=direction,
        confidence=confidence,
        signal_type="RSI_OVERSOLD",
        timestamp=ts,
    )


class TestDatabaseUrl:
    def test_env_override_to_async(self, monkeypatch):
        monkeypatch.setenv("QUANTGATE_DATABASE_URL", "postgresql://u:p@db:5432/quantgate")
        assert get_database_url() == "postgresql+asyncpg://u:p@db:5432/quantgate"
        assert get_database_url(async_mode=False) == "postgresql://u:p@db:5432/quantgate"

    def test_sqlite_drivers(self, monkeypatch):
        monkeypatch.setenv("QUANTGATE_DATABASE_URL", "sqlite:///signals.db")
        assert get_database_url() == "sqlite+aiosqlite:///signals.db"

        monkeypatch.setenv("QUANTGATE_DATABASE_URL", "sqlite+aiosqlite:///signals.db")
        assert get_database_url(async_mode=False) == "sqlite:///signals.db"


class TestSharedEngine:
    @pytest.mark.asyncio
    async def test_engine_is_reused(self, session_factory):
        assert await get_async_engine() is await get_async_engine()

    @pytest.mark.asyncio
    async def test_session_context_commits(self, session_factory, now):
        async with get_async_session() as session:
            session.add(SignalRecord(asset="SOL", signal_type="VOLUME_SPIKE", timestamp=now))

        async with get_async_session() as session:
            rows = (await session.execute(select(SignalRecord))).scalars().all()
        assert len(rows) == 1
        assert len(rows[0].id) == 36

    @pytest.mark.asyncio
    async def test_session_context_rolls_back(self, session_factory, now):
        with pytest.raises(RuntimeError):
            async with get_async_session() as session:
                session.add(SignalRecord(asset="SOL", signal_type="VOLUME_SPIKE", timestamp=now))
                await session.flush()
                raise RuntimeError("abort")

        async with get_async_session() as session:
            assert (await session.execute(select(SignalRecord))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_repository_uses_shared_factory(self, session_factory, now):
        await SignalRepository().save(signal("a", now))
        assert await SignalRepository(session_factory).get_last_signal_time("SOL") == now


class TestSignalRepository:
    @pytest.mark.asyncio
    async def test_signals_since_newest_first(self, signals, now):
        for signal_id, age in (("old", 3), ("mid", 1), ("new", 0)):
            await signals.save(signal(signal_id, now - timedelta(days=age, hours=1)))

        result = await signals.get_signals_since(now - timedelta(days=2))

        assert [s.id for s in result] == ["new", "mid"]
        assert result[0].timestamp == now - timedelta(hours=1)
        assert result[0].timestamp.tzinfo is not None
        assert result[0].direction == Direction.BUY

    @pytest.mark.asyncio
    async def test_nullable_fields_round_trip(self, signals, now):
        await signals.save(signal("a", now, direction=None, confidence=None))

        (loaded,) = await signals.get_signals_since(now - timedelta(minutes=1))

        assert loaded.direction is None
        assert loaded.confidence is None

    @pytest.mark.asyncio
    async def test_unknown_direction_reads_as_none(self, session_factory, signals, now):
        async with session_factory() as session:
            session.add(SignalRecord(
                id="x", asset="SOL", direction="hold", confidence=0.5,
                signal_type="RSI_OVERSOLD", timestamp=now,
            ))
            await session.commit()

        (loaded,) = await signals.get_signals_since(now - timedelta(minutes=1))
        assert loaded.direction is None

    @pytest.mark.asyncio
    async def test_last_signal_time(self, signals, now):
        await signals.save(signal("a", now - timedelta(hours=2)))
        await signals.save(signal("b", now - timedelta(minutes=10)))
        await signals.save(signal("c", now, asset="BONK"))

        assert await signals.get_last_signal_time("SOL") == now - timedelta(minutes=10)
        assert await signals.get_last_signal_time("WIF") is None


class TestPriceBarRepository:
    @pytest.mark.asyncio
    async def test_closest_bar_within_window(self, prices):
        count = await prices.save_bars("SOL", [(1000, "100.5"), (1300, "101"), (2000, "99")])
        assert count == 3

        bar = await prices.get_closest_bar("SOL", 1250, 300)

        assert bar.timestamp == 1300
        assert bar.price == 101.0

    @pytest.mark.asyncio
    async def test_window_is_inclusive(self, prices):
        await prices.save_bars("SOL", [(1300, "101")])
        assert (await prices.get_closest_bar("SOL", 1000, 300)).timestamp == 1300
        assert await prices.get_closest_bar("SOL", 999, 300) is None

    @pytest.mark.asyncio
    async def test_other_asset_ignored(self, prices):
        await prices.save_bars("BONK", [(1000, "0.00002")])
        assert await prices.get_closest_bar("SOL", 1000, 300) is None

    @pytest.mark.asyncio
    async def test_unparsable_close(self, prices):
        await prices.save_bars("SOL", [(1000, "n/a")])
        assert await prices.get_closest_bar("SOL", 1000, 300) is None


@pytest.mark.asyncio
async def test_collector_over_sql_store(signals, prices, now):
    t0 = now - timedelta(days=1)
    ts = int(t0.timestamp())
    await signals.save(signal("a", t0))
    await signals.save(signal("b", t0 - timedelta(minutes=20), direction=Direction.SELL))
    await prices.save_bars("SOL", [
        (ts - 1200, "100"),
        (ts, "100"),
        (ts + 3600, "103"),
        (ts + 14400, "97"),
    ])

    collected = await SignalPerformanceCollector(signals, prices).collect(BacktestConfig(), now=now)

    by_id = {s.signal_id: s for s in collected}
    assert set(by_id) == {"a", "b"}
    assert by_id["a"].return_1h == pytest.approx(0.03)
    assert by_id["a"].is_win_1h is True
    assert by_id["a"].is_win_4h is False
    assert by_id["a"].return_24h is None
    assert by_id["b"].return_1h == pytest.approx(-0.03)
    assert by_id["b"].is_win_4h is True
