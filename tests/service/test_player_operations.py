"""
Service Tests for Player, Energy and Currency Operations
=========================================================

Purpose
-------
Drive the engine facade end to end against a real (SQLite) database:
registration, referral attribution, status, taps, upgrades, production and
conversion.

Test Coverage
-------------
- Registration defaults, duplicate identities, unknown referral code
- Two-level referral attribution, committed with the registration itself
- Status settles energy without claiming auto-mine points
- Tap / refill / upgrades persist across reads
- Hourly award and hug-point conversion
- Domain events published after commit

Testing Strategy
----------------
- Fresh SQLite file per test (database fixture)
- Injected FakeClock; time moves only when the test advances it
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from tests.conftest import card_payload
from warthug.modules.shared.exceptions import (
    CooldownActiveError,
    InsufficientResourcesError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)


@pytest.mark.service
@pytest.mark.asyncio
class TestRegistration:
    async def test_register_returns_starting_status(self, engine):
        # Act
        status = await engine.register_player("u-1", "alice")

        # Assert
        assert status["user_id"] == "u-1"
        assert status["username"] == "alice"
        assert status["energy"] == 1000
        assert status["max_energy"] == 1000
        assert status["per_tap"] == 1
        assert status["tap_points"] == 0
        assert status["level"] == 0
        assert status["upgrade_costs"] == {"per_tap": 1024, "max_energy": 1024}

    async def test_duplicate_user_id_or_username_is_rejected(self, engine):
        await engine.register_player("u-1", "alice")

        with pytest.raises(ValidationError) as exc_info:
            await engine.register_player("u-1", "someone_else")
        assert exc_info.value.field == "user_id"

        with pytest.raises(ValidationError) as exc_info:
            await engine.register_player("u-2", "alice")
        assert exc_info.value.field == "username"

    async def test_unknown_referral_code_registers_nobody(self, engine):
        with pytest.raises(NotFoundError):
            await engine.register_player("u-1", "alice", referral_code="ghost")

        with pytest.raises(NotFoundError):
            await engine.get_player("u-1")

    async def test_referral_chain_records_direct_and_indirect(self, engine):
        # Arrange
        await engine.register_player("u-1", "alice")
        await engine.register_player("u-2", "bob", referral_code="alice", is_verified=True)

        # Act
        await engine.register_player("u-3", "carol", referral_code="bob")

        # Assert
        alice = await engine.get_referral_details("u-1")
        bob = await engine.get_referral_details("u-2")
        assert [r["username"] for r in alice["direct_referrals"]] == ["bob"]
        assert alice["indirect_referrals"][0]["username"] == "carol"
        assert alice["indirect_referrals"][0]["referred_by"] == "bob"
        assert [r["username"] for r in bob["direct_referrals"]] == ["carol"]
        assert bob["indirect_referrals"] == []
        assert (await engine.get_player("u-3")).referral == "bob"

    async def test_failed_referrer_update_registers_nobody(self, engine, mocker):
        # Arrange
        await engine.register_player("u-1", "alice")
        original_save = engine.players.save

        async def alice_always_conflicts(session, player):
            if player.user_id == "u-1":
                raise VersionConflictError(player.user_id, player.version)
            await original_save(session, player)

        mocker.patch.object(engine.players, "save", side_effect=alice_always_conflicts)

        # Act
        with pytest.raises(VersionConflictError):
            await engine.register_player("u-2", "bob", referral_code="alice")

        # Assert
        mocker.stopall()
        with pytest.raises(NotFoundError):
            await engine.get_player("u-2")
        assert (await engine.get_player("u-1")).direct_referrals == []

        await engine.register_player("u-2", "bob", referral_code="alice")
        alice = await engine.get_referral_details("u-1")
        assert [r["user_id"] for r in alice["direct_referrals"]] == ["u-2"]

    async def test_lost_race_on_second_level_records_each_edge_once(self, engine, mocker):
        await engine.register_player("u-1", "alice")
        await engine.register_player("u-2", "bob", referral_code="alice")
        original_save = engine.players.save
        conflicts = []

        async def alice_conflicts_once(session, player):
            if player.user_id == "u-1" and not conflicts:
                conflicts.append(player.version)
                raise VersionConflictError(player.user_id, player.version)
            await original_save(session, player)

        mocker.patch.object(engine.players, "save", side_effect=alice_conflicts_once)

        await engine.register_player("u-3", "carol", referral_code="bob")

        mocker.stopall()
        alice = await engine.get_referral_details("u-1")
        bob = await engine.get_referral_details("u-2")
        assert len(conflicts) == 1
        assert [r["user_id"] for r in bob["direct_referrals"]] == ["u-3"]
        assert [r["user_id"] for r in alice["indirect_referrals"]] == ["u-3"]

    async def test_registration_event_is_published(self, engine, event_bus):
        seen = []
        event_bus.subscribe("player.registered", seen.append)

        await engine.register_player("u-1", "alice")

        assert len(seen) == 1
        assert seen[0]["username"] == "alice"
        assert "occurred_at" in seen[0]


@pytest.mark.service
@pytest.mark.asyncio
class TestEnergyOperations:
    async def test_taps_spend_energy_and_persist(self, engine):
        await engine.register_player("u-1", "alice")

        for _ in range(3):
            result = await engine.tap("u-1")

        assert result["points_earned"] == 1
        assert result["energy"] == 997
        player = await engine.get_player("u-1")
        assert player.tap_points == 3
        assert player.version == 3

    async def test_energy_regenerates_lazily(self, engine, clock):
        await engine.register_player("u-1", "alice")
        for _ in range(10):
            await engine.tap("u-1")

        clock.advance(seconds=4)

        assert (await engine.get_energy("u-1"))["energy"] == 994

    async def test_tap_with_no_energy_fails_without_side_effects(self, engine):
        await engine.register_player("u-1", "alice")
        player = await engine.get_player("u-1")
        version = player.version

        # Drain directly through the runner so the test stays fast
        def drain(_session, p):
            p.energy = 0

        await engine.runner.run("u-1", "test.drain", drain)

        with pytest.raises(InsufficientResourcesError):
            await engine.tap("u-1")

        player = await engine.get_player("u-1")
        assert player.version == version + 1
        assert player.tap_points == 0

    async def test_refill_cooldown(self, engine, clock):
        await engine.register_player("u-1", "alice")
        await engine.tap("u-1")

        refill = await engine.refill_energy("u-1")
        assert refill["energy"] == 1000

        clock.advance(seconds=120)
        with pytest.raises(CooldownActiveError):
            await engine.refill_energy("u-1")

        clock.advance(seconds=180)
        assert (await engine.refill_energy("u-1"))["total_energy_refills"] == 2

    async def test_upgrades_double_their_cost(self, engine):
        await engine.register_player("u-1", "alice")
        await engine.claim_starter_bonus("u-1")

        tap_power = await engine.upgrade_tap_power("u-1")
        energy_limit = await engine.upgrade_energy_limit("u-1")

        assert tap_power["per_tap"] == 2
        assert energy_limit["max_energy"] == 1500
        assert energy_limit["upgrade_costs"] == {"per_tap": 2048, "max_energy": 2048}
        assert energy_limit["tap_points"] == 10_000 - 2048


@pytest.mark.service
@pytest.mark.asyncio
class TestStatusAndCurrency:
    async def test_status_reports_pending_auto_mine_without_claiming(self, engine, clock):
        await engine.register_player("u-1", "alice")
        await engine.start_auto_mine("u-1", 7_200_000)

        clock.advance(minutes=61)
        status = await engine.get_status("u-1")

        assert status["auto_mine"]["pending_points"] == 500
        assert status["tap_points"] == 0
        assert status["last_active"] == clock()

    async def test_points_info_reports_conversion_availability(self, engine):
        await engine.register_player("u-1", "alice")
        await engine.claim_starter_bonus("u-1")

        info = await engine.get_points_info("u-1")

        assert info["available_for_conversion"] == {
            "raw_points": 10_000,
            "hug_points": Decimal("1.0000"),
        }
        assert info["next_level_threshold"] == 25_000

    async def test_conversion_is_bounded_by_the_ledger(self, engine):
        await engine.register_player("u-1", "alice")
        await engine.claim_starter_bonus("u-1")

        result = await engine.convert_to_hug_points("u-1", "7500")

        assert result["received_hug_points"] == Decimal("0.7500")
        assert result["available_for_conversion"] == 2_500
        with pytest.raises(InsufficientResourcesError):
            await engine.convert_to_hug_points("u-1", 2_501)
        with pytest.raises(ValidationError):
            await engine.convert_to_hug_points("u-1", 0)

        player = await engine.get_player("u-1")
        assert player.hug_points == Decimal("0.7500")
        assert player.tap_points == 10_000

    async def test_hourly_award_uses_card_production(self, engine, clock):
        await engine.create_card("finance", card_payload())
        await engine.register_player("u-1", "alice")
        await engine.claim_starter_bonus("u-1")
        await engine.upgrade_card("u-1", "finance", "Gold Mine")

        clock.advance(hours=3, minutes=10)
        result = await engine.award_hourly_points("u-1")

        assert result["per_hour"] == 11
        assert result["points_awarded"] == 33
        assert result["last_hourly_award"] == clock()

    async def test_unknown_player_is_not_found(self, engine):
        with pytest.raises(NotFoundError):
            await engine.tap("nobody")

        with pytest.raises(NotFoundError):
            await engine.get_status("nobody")

    async def test_health_check(self, engine):
        assert await engine.health_check() is True

    async def test_clock_can_be_advanced_between_calls(self, engine, clock):
        await engine.register_player("u-1", "alice")
        start = clock()

        clock.advance(days=1)
        status = await engine.get_status("u-1")

        assert status["last_active"] - start == timedelta(days=1)
