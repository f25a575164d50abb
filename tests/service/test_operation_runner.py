"""
Service Tests for PlayerOperationRunner
========================================

Purpose
-------
Verify the load -> mutate -> compare-and-swap write path: retries after a
lost version race, rollback of failed actions and post-commit event
publication.

Test Coverage
-------------
- Version conflict retried from a fresh load, applied exactly once
- Retries exhausted surface VersionConflictError
- Domain failure rolls the attempt back and publishes nothing
- Async actions receive the live session
- apply_to_all / read
- Real compare-and-swap: stale saves conflict, concurrent taps all land

Testing Strategy
----------------
- Real SQLite database through the engine fixture
- pytest-mock wraps the repository's save to inject conflicts
"""

import asyncio

import pytest

from warthug.core.database.service import DatabaseService
from warthug.modules.shared.exceptions import (
    InsufficientResourcesError,
    VersionConflictError,
)


@pytest.mark.service
@pytest.mark.asyncio
class TestConflictRetry:
    async def test_lost_race_is_retried_once_and_applied_once(self, engine, event_bus, mocker):
        # Arrange
        await engine.register_player("u-1", "alice")
        original_save = engine.players.save
        attempts = []

        async def flaky_save(session, player):
            attempts.append(player.version)
            if len(attempts) == 1:
                raise VersionConflictError(player.user_id, player.version)
            await original_save(session, player)

        mocker.patch.object(engine.players, "save", side_effect=flaky_save)
        taps = []
        event_bus.subscribe("player.tapped", taps.append)

        # Act
        result = await engine.tap("u-1")

        # Assert
        assert result["points_earned"] == 1
        assert attempts == [0, 0]
        assert len(taps) == 1
        mocker.stopall()
        player = await engine.get_player("u-1")
        assert player.tap_points == 1
        assert player.version == 1

    async def test_exhausted_retries_raise_conflict(self, engine, event_bus, mocker):
        await engine.register_player("u-1", "alice")

        async def always_conflict(session, player):
            raise VersionConflictError(player.user_id, player.version)

        save = mocker.patch.object(engine.players, "save", side_effect=always_conflict)
        taps = []
        event_bus.subscribe("player.tapped", taps.append)

        with pytest.raises(VersionConflictError):
            await engine.tap("u-1")

        assert save.await_count == engine.config.VERSION_CONFLICT_MAX_ATTEMPTS
        assert taps == []
        mocker.stopall()
        player = await engine.get_player("u-1")
        assert player.tap_points == 0
        assert player.version == 0


@pytest.mark.service
@pytest.mark.asyncio
class TestRunSemantics:
    async def test_failed_action_rolls_back_and_publishes_nothing(self, engine, event_bus):
        await engine.register_player("u-1", "alice")
        seen = []
        event_bus.subscribe("player.*", seen.append)

        def half_done(_session, player):
            player.tap_points = 999
            player.add_domain_event("player.tampered", {"user_id": player.user_id})
            raise InsufficientResourcesError("energy", 1, 0)

        with pytest.raises(InsufficientResourcesError):
            await engine.runner.run("u-1", "test.half_done", half_done)

        player = await engine.get_player("u-1")
        assert player.tap_points == 0
        assert player.version == 0
        assert seen == []

    async def test_async_action_gets_the_session(self, engine):
        await engine.register_player("u-1", "alice")
        await engine.register_player("u-2", "bob")

        async def rename_check(session, player):
            other = await engine.players.load(session, "u-2")
            return other.username

        assert await engine.runner.run("u-1", "test.peek", rename_check) == "bob"

    async def test_apply_to_all_counts_players(self, engine):
        for index in range(3):
            await engine.register_player(f"u-{index}", f"player{index}")

        def mark(_session, player):
            player.is_verified = True

        processed = await engine.runner.apply_to_all("test.verify_all", mark)

        assert processed == 3
        for index in range(3):
            assert (await engine.get_player(f"u-{index}")).is_verified is True

    async def test_read_does_not_write(self, engine):
        await engine.register_player("u-1", "alice")

        username = await engine.runner.read("u-1", lambda player: player.username)

        assert username == "alice"
        assert (await engine.get_player("u-1")).version == 0


@pytest.mark.service
@pytest.mark.asyncio
class TestCompareAndSwap:
    async def test_stale_version_save_conflicts(self, engine):
        # Arrange
        await engine.register_player("u-1", "alice")
        async with DatabaseService.get_session() as session:
            stale = await engine.players.load(session, "u-1")
        await engine.tap("u-1")

        # Act
        with pytest.raises(VersionConflictError):
            async with DatabaseService.get_transaction() as session:
                stale.tap_points = 1_000_000
                await engine.players.save(session, stale)

        # Assert
        player = await engine.get_player("u-1")
        assert player.tap_points == 1
        assert player.version == 1

    async def test_concurrent_taps_lose_no_updates(self, engine):
        await engine.register_player("u-1", "alice")
        taps = 20

        results = await asyncio.gather(*(engine.tap("u-1") for _ in range(taps)))

        player = await engine.get_player("u-1")
        assert len(results) == taps
        assert player.tap_points == taps * player.per_tap
        assert player.energy == 1000 - taps
        assert player.version == taps
