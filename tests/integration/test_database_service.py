"""
Integration Tests for DatabaseService and the Player Store
===========================================================

Purpose
-------
Run the persistence layer against a real PostgreSQL using testcontainers:
schema creation, row locking, compare-and-swap saves and full engine
operations on the production driver (asyncpg).

Test Coverage
-------------
- Connection, health check and schema tables
- Transaction rollback on error
- CAS save advances the version; a stale version conflicts
- Concurrent taps on one player serialise without lost updates

Testing Strategy
----------------
- One container per module; skipped when Docker is unavailable
- Schema dropped and recreated per test (clean slate)
"""

from __future__ import annotations

import asyncio
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from sqlalchemy import text

from tests.conftest import FakeClock
from warthug.core.config.config import Config
from warthug.core.database.service import DatabaseService
from warthug.core.event.bus import EventBus
from warthug.engine import EconomyEngine
from warthug.modules.shared.exceptions import VersionConflictError

testcontainers_postgres = pytest.importorskip("testcontainers.postgres")


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture(scope="module")
def postgres_url() -> Generator[str, None, None]:
    """
    Start a PostgreSQL container for this module.

    Scope: module (container persists across the module's tests)
    """
    container = testcontainers_postgres.PostgresContainer(
        image="postgres:17-alpine",
        driver="asyncpg",
    )
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker unavailable for PostgreSQL container: {exc}")

    try:
        yield container.get_connection_url()
    finally:
        container.stop()


@pytest_asyncio.fixture
async def pg_engine(
    postgres_url: str, monkeypatch
) -> AsyncGenerator[EconomyEngine, None]:
    """Engine bound to the container with a freshly created schema."""
    monkeypatch.setattr(Config, "DATABASE_URL", postgres_url)

    await DatabaseService.shutdown()
    await DatabaseService.initialize()
    await DatabaseService.drop_schema()

    engine = EconomyEngine(event_bus=EventBus(), clock=FakeClock())
    await engine.start(create_schema=True)
    yield engine
    await engine.stop()


# ============================================================================
# CONNECTION & SCHEMA
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
class TestDatabaseConnection:
    async def test_health_check_and_tables(self, pg_engine):
        # Act
        healthy = await pg_engine.health_check()
        async with DatabaseService.get_session() as session:
            result = await session.execute(
                text(
                    """
                    SELECT table_name
                    FROM information_schema.tables
                    WHERE table_schema = 'public'
                    """
                )
            )
            tables = {row.table_name for row in result.fetchall()}

        # Assert
        assert healthy is True
        assert {"players", "card_templates", "tasks", "vote_events"} <= tables

    async def test_transaction_rolls_back_on_error(self, pg_engine):
        await pg_engine.register_player("u-1", "alice")

        with pytest.raises(RuntimeError):
            async with DatabaseService.get_transaction() as session:
                await session.execute(
                    text("UPDATE players SET tap_points = 500 WHERE user_id = 'u-1'")
                )
                raise RuntimeError("abort")

        assert (await pg_engine.get_player("u-1")).tap_points == 0


# ============================================================================
# COMPARE-AND-SWAP
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
class TestCompareAndSwap:
    async def test_save_advances_version(self, pg_engine):
        await pg_engine.register_player("u-1", "alice")

        async with DatabaseService.get_transaction() as session:
            player = await pg_engine.players.load(session, "u-1", for_update=True)
            player.tap_points = 42
            await pg_engine.players.save(session, player)

        stored = await pg_engine.get_player("u-1")
        assert stored.version == 1
        assert stored.tap_points == 42

    async def test_stale_version_conflicts(self, pg_engine):
        await pg_engine.register_player("u-1", "alice")
        async with DatabaseService.get_session() as session:
            stale = await pg_engine.players.load(session, "u-1")
        await pg_engine.tap("u-1")

        with pytest.raises(VersionConflictError):
            async with DatabaseService.get_transaction() as session:
                stale.tap_points = 1_000_000
                await pg_engine.players.save(session, stale)

        stored = await pg_engine.get_player("u-1")
        assert stored.tap_points == 1
        assert stored.version == 1

    async def test_concurrent_taps_lose_no_updates(self, pg_engine):
        await pg_engine.register_player("u-1", "alice")

        await asyncio.gather(*(pg_engine.tap("u-1") for _ in range(10)))

        stored = await pg_engine.get_player("u-1")
        assert stored.tap_points == 10
        assert stored.energy == 990
        assert stored.version == 10
