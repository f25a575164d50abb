"""
Service Tests for Rewards, Referrals and Leaderboards
======================================================

Purpose
-------
Exercise the reward subsystems through the engine: daily streaks, auto-mine,
starter bonus, referral payouts, the weekly referral-rank reward and the
leaderboards that rank depends on.

Test Coverage
-------------
- Daily claim across days, same-day rejection, streak reset
- Auto-mine start / accrue / claim cycle
- Starter bonus status and one-time claim
- Referral reward amounts by verification, double-claim rejection
- Leaderboard ordering, ties by registration order, caller position
- Referral rank reward eligibility and cooldown

Testing Strategy
----------------
- Fresh SQLite file per test
- FakeClock advanced across calendar days
"""

from decimal import Decimal

import pytest

from warthug.modules.shared.exceptions import (
    AlreadyClaimedError,
    CooldownActiveError,
    NotEligibleError,
    NotFoundError,
    NothingToClaimError,
    TooEarlyError,
    ValidationError,
)


async def _referrer_with(engine, username: str, user_id: str, referrals: int) -> None:
    """Register a player and `referrals` direct referrals under them."""
    await engine.register_player(user_id, username)
    for index in range(referrals):
        await engine.register_player(
            f"{user_id}-ref-{index}", f"{username}_ref_{index}", referral_code=username
        )


@pytest.mark.service
@pytest.mark.asyncio
class TestDailyClaim:
    async def test_claims_on_consecutive_days(self, engine, clock):
        await engine.register_player("u-1", "alice")

        first = await engine.process_daily_claim("u-1")
        clock.advance(hours=24)
        second = await engine.process_daily_claim("u-1")

        assert first["claimed_amount"] == 1_000
        assert second["current_streak"] == 2
        assert (await engine.get_player("u-1")).tap_points == 2_000

    async def test_same_day_and_too_early(self, engine, clock):
        await engine.register_player("u-1", "alice")
        await engine.process_daily_claim("u-1")

        clock.advance(hours=6)
        with pytest.raises(AlreadyClaimedError):
            await engine.process_daily_claim("u-1")

        clock.advance(hours=7)  # 01:00 next day, 13 h after the claim
        with pytest.raises(TooEarlyError):
            await engine.process_daily_claim("u-1")

        info = await engine.get_daily_claim_info("u-1")
        assert info["can_claim"] is False
        assert info["has_claimed_today"] is False
        assert info["hours_until_next_claim"] == 11

    async def test_long_gap_resets_streak(self, engine, clock):
        await engine.register_player("u-1", "alice")
        for _ in range(8):
            await engine.process_daily_claim("u-1")
            clock.advance(hours=24)

        clock.advance(hours=25)  # 49 h since the last claim
        result = await engine.process_daily_claim("u-1")

        assert result["current_streak"] == 1
        assert result["claimed_amount"] == 1_000


@pytest.mark.service
@pytest.mark.asyncio
class TestAutoMine:
    async def test_start_accrue_claim(self, engine, clock):
        # Arrange
        await engine.register_player("u-1", "alice")
        started = await engine.start_auto_mine("u-1")
        assert started["duration"] == 7_200_000

        # Act
        clock.advance(milliseconds=3_700_000)
        processed = await engine.process_auto_mine("u-1")
        claimed = await engine.claim_auto_mine_rewards("u-1")

        # Assert
        assert processed["pending_points"] == 500
        assert claimed["points_claimed"] == 500
        assert claimed["tap_points"] == 500
        status = await engine.get_auto_mine_status("u-1")
        assert status["is_active"] is True
        assert status["pending_points"] == 0
        assert len(status["claim_history"]) == 2

    async def test_start_while_running_restarts_the_session(self, engine, clock):
        await engine.register_player("u-1", "alice")
        await engine.start_auto_mine("u-1", 3_600_000)

        clock.advance(minutes=30)
        restarted = await engine.start_auto_mine("u-1", 3_600_000)
        assert restarted["is_active"] is True
        assert restarted["time_remaining"] == 3_600_000

        # The first session would have ended here; the restarted one runs on
        clock.advance(minutes=31)
        processed = await engine.process_auto_mine("u-1")
        assert processed["status"]["is_active"] is True

        clock.advance(minutes=30)
        processed = await engine.process_auto_mine("u-1")
        assert processed["pending_points"] == 0
        assert processed["status"]["is_active"] is False

    async def test_nothing_to_claim_and_bad_duration(self, engine):
        await engine.register_player("u-1", "alice")

        with pytest.raises(NothingToClaimError):
            await engine.claim_auto_mine_rewards("u-1")
        with pytest.raises(ValidationError):
            await engine.start_auto_mine("u-1", -5)


@pytest.mark.service
@pytest.mark.asyncio
class TestStarterBonus:
    async def test_one_time_bonus(self, engine):
        await engine.register_player("u-1", "alice")

        assert (await engine.get_starter_bonus_status("u-1"))["eligible"] is True
        assert (await engine.claim_starter_bonus("u-1"))["bonus_amount"] == 10_000
        with pytest.raises(AlreadyClaimedError):
            await engine.claim_starter_bonus("u-1")
        assert (await engine.get_starter_bonus_status("u-1"))["eligible"] is False


@pytest.mark.service
@pytest.mark.asyncio
class TestReferralRewards:
    async def test_reward_depends_on_referred_players_verification(self, engine):
        # Arrange
        await engine.register_player("u-1", "alice")
        await engine.register_player("u-2", "bob", referral_code="alice", is_verified=True)
        await engine.register_player("u-3", "carol", referral_code="alice")

        pending = await engine.get_pending_referral_rewards("u-1")
        assert pending["total_referrals"] == 2
        assert pending["total_reward"] == 70_000

        # Act
        verified = await engine.claim_referral_reward("u-1", "u-2")
        unverified = await engine.claim_referral_reward("u-1", "u-3")

        # Assert
        assert verified["reward_amount"] == 50_000
        assert unverified["reward_amount"] == 20_000
        assert unverified["referral_points"] == 70_000
        player = await engine.get_player("u-1")
        assert player.tap_points == 0
        assert player.level == 2
        details = await engine.get_referral_details("u-1")
        assert details["my_referral_code"] == "alice"
        assert details["total_referral_points"] == 70_000

    async def test_pending_amount_matches_claim_after_verification(self, engine):
        # Arrange
        await engine.register_player("u-1", "alice")
        await engine.register_player("u-2", "bob", referral_code="alice")

        def verify(_session, player):
            player.is_verified = True

        await engine.runner.run("u-2", "test.verify", verify)

        # Act
        pending = await engine.get_pending_referral_rewards("u-1")
        claimed = await engine.claim_referral_reward("u-1", "u-2")

        # Assert
        assert pending["referrals"][0]["is_verified"] is True
        assert pending["referrals"][0]["reward"] == 50_000
        assert claimed["reward_amount"] == pending["total_reward"] == 50_000

    async def test_double_claim_and_non_referral(self, engine):
        await engine.register_player("u-1", "alice")
        await engine.register_player("u-2", "bob", referral_code="alice")
        await engine.register_player("u-3", "carol")
        await engine.claim_referral_reward("u-1", "u-2")

        with pytest.raises(AlreadyClaimedError):
            await engine.claim_referral_reward("u-1", "u-2")
        with pytest.raises(NotEligibleError):
            await engine.claim_referral_reward("u-1", "u-3")
        with pytest.raises(NotFoundError):
            await engine.claim_referral_reward("u-1", "ghost")

        assert (await engine.get_player("u-1")).referral_points == 20_000


@pytest.mark.service
@pytest.mark.asyncio
class TestLeaderboards:
    async def test_points_board_orders_and_breaks_ties_by_registration(self, engine):
        # Arrange
        await engine.register_player("u-1", "alice")
        await engine.register_player("u-2", "bob")
        await engine.register_player("u-3", "carol")
        await engine.claim_starter_bonus("u-3")
        await engine.tap("u-2")

        # Act
        board = await engine.get_leaderboard("points", user_id="u-1")

        # Assert
        assert [entry["username"] for entry in board["leaderboard"]] == ["carol", "bob", "alice"]
        assert [entry["position"] for entry in board["leaderboard"]] == [1, 2, 3]
        assert board["user_position"]["position"] == 3
        assert board["total"] == 3

    async def test_tied_players_keep_registration_order(self, engine):
        for index, name in enumerate(["dora", "eve", "finn"]):
            await engine.register_player(f"u-{index}", name)

        board = await engine.get_leaderboard("streak")

        assert [entry["username"] for entry in board["leaderboard"]] == ["dora", "eve", "finn"]

    async def test_hug_points_board_and_limit(self, engine):
        await engine.register_player("u-1", "alice")
        await engine.register_player("u-2", "bob")
        await engine.claim_starter_bonus("u-2")
        await engine.convert_to_hug_points("u-2", 5_000)

        board = await engine.get_leaderboard("hugPoints", limit=1)

        assert len(board["leaderboard"]) == 1
        assert board["leaderboard"][0]["username"] == "bob"
        assert Decimal(board["leaderboard"][0]["hug_points"]) == Decimal("0.5")
        assert board["user_position"] is None

    async def test_invalid_board_or_limit(self, engine):
        with pytest.raises(ValidationError):
            await engine.get_leaderboard("gems")
        with pytest.raises(ValidationError):
            await engine.get_leaderboard("points", limit=0)
        with pytest.raises(ValidationError):
            await engine.get_leaderboard("points", limit=101)


@pytest.mark.service
@pytest.mark.asyncio
class TestReferralRankReward:
    async def test_top_referrer_claims_weekly(self, engine, clock):
        # Arrange
        await _referrer_with(engine, "alice", "u-1", referrals=2)
        await _referrer_with(engine, "bob", "u-2", referrals=1)

        status = await engine.get_referral_rank_status("u-2")
        assert status["position"] == 2
        assert status["reward_amount"] == 100_000

        # Act
        result = await engine.claim_referral_rank_reward("u-1")

        # Assert
        assert result["current_position"] == 1
        assert result["reward_amount"] == 100_000
        assert result["tap_points"] == 100_000

        clock.advance(days=6)
        with pytest.raises(CooldownActiveError):
            await engine.claim_referral_rank_reward("u-1")

        clock.advance(days=1)
        assert (await engine.claim_referral_rank_reward("u-1"))["reward_amount"] == 100_000

    async def test_rank_between_eleven_and_thirty_pays_less(self, engine):
        # Twelve referrers with one referral each; the twelfth ranks 12th
        for index in range(12):
            await _referrer_with(engine, f"ref{index}", f"r-{index}", referrals=1)

        result = await engine.claim_referral_rank_reward("r-11")

        assert result["current_position"] == 12
        assert result["reward_amount"] == 50_000
