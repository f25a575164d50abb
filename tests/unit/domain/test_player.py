"""
Unit Tests for Player Domain Model
===================================

Purpose
-------
Test the economy rules held by the Player aggregate without any database.

Test Coverage
-------------
- Registration defaults and identity validation
- Lazy energy regeneration, taps and refills
- Tap-power / energy-limit upgrades with doubling costs
- Card upgrades: precondition order and atomicity
- Hourly production and hug-point conversion ledger
- Daily claim streaks (same-day, too-early, reset)
- Auto-mine sessions
- Starter bonus, referral rewards and referral rank reward
- Level derivation and domain event emission

Testing Strategy
----------------
- Unit tests (fast, no database)
- Every time-dependent call receives an explicit instant
- AAA pattern (Arrange, Act, Assert)
- Failed actions are checked for leaving the aggregate untouched
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from tests.conftest import T0, assert_domain_event_emitted, get_domain_event_payload, make_card
from warthug.domain.models.player import AutoClaimEntry, Player, PlayerIdentity
from warthug.modules.shared.exceptions import (
    AlreadyClaimedError,
    CooldownActiveError,
    InsufficientResourcesError,
    InvalidOperationError,
    LevelTooLowError,
    NotEligibleError,
    NotFoundError,
    NothingToClaimError,
    TooEarlyError,
    ValidationError,
)


def _player(**overrides) -> Player:
    identity = PlayerIdentity(
        user_id=overrides.pop("user_id", "u-1"), username=overrides.pop("username", "hoggy")
    )
    overrides.setdefault("last_tap_time", T0)
    return Player(identity, **overrides)


def _with_card(card, section: str = "finance", **overrides) -> Player:
    return _player(cards={section: {card.key: card}}, **overrides)


# ============================================================================
# IDENTITY & REGISTRATION
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestRegistration:
    def test_new_player_defaults(self):
        """Full energy, per_tap 1, upgrade costs 1024, nothing earned."""
        # Arrange & Act
        player = Player.create("u-1", "hoggy", T0)

        # Assert
        assert player.energy == 1000
        assert player.max_energy == 1000
        assert player.per_tap == 1
        assert player.upgrade_costs() == {"per_tap": 1024, "max_energy": 1024}
        assert player.tap_points == 0
        assert player.hug_points == Decimal("0.0000")
        assert player.level == 0
        assert player.referral is None
        assert assert_domain_event_emitted(player, "player.registered")

    def test_identity_requires_user_id_and_username(self):
        with pytest.raises(ValidationError):
            PlayerIdentity(user_id="  ", username="hoggy")
        with pytest.raises(ValidationError):
            PlayerIdentity(user_id="u-1", username="")

    def test_starting_cards_are_cloned_into_sections(self):
        card = make_card("gold")

        player = Player.create("u-1", "hoggy", T0, cards={"finance": {"gold": card}})

        assert player.find_card("finance", "Gold") is not None
        assert player.cards["predators"] == {}
        assert player.cards["hogPower"] == {}


# ============================================================================
# ENERGY
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestEnergy:
    def test_tap_after_regeneration(self):
        """0 energy at per_tap 5, ten seconds later: 50 regenerated, tap leaves 49."""
        # Arrange
        player = _player(energy=0, per_tap=5, last_tap_time=T0 - timedelta(seconds=10))

        # Act
        earned = player.tap(T0)

        # Assert
        assert earned == 5
        assert player.energy == 49
        assert player.tap_points == 5
        assert player.last_tap_time == T0
        assert get_domain_event_payload(player, "player.tapped")["points_earned"] == 5

    def test_tap_without_energy_fails_and_changes_nothing(self):
        player = _player(energy=0, per_tap=1, last_tap_time=T0)
        before = player.to_db_updates()

        with pytest.raises(InsufficientResourcesError) as exc_info:
            player.tap(T0 + timedelta(milliseconds=999))

        assert exc_info.value.resource == "energy"
        assert player.to_db_updates() == before
        assert player.get_pending_events() == []

    def test_current_energy_never_exceeds_max(self):
        player = _player(energy=900, max_energy=1000, per_tap=3)

        assert player.current_energy(T0 + timedelta(hours=1)) == 1000

    def test_settle_energy_keeps_partial_second(self):
        player = _player(energy=0, per_tap=2)
        later = T0 + timedelta(milliseconds=2_500)

        assert player.settle_energy(later) == 4
        assert player.current_energy(T0 + timedelta(milliseconds=3_000)) == 6

    def test_refill_has_five_minute_cooldown(self):
        # Arrange
        player = _player(energy=10)
        player.refill_energy(T0)
        player.energy = 0

        # Act & Assert
        with pytest.raises(CooldownActiveError) as exc_info:
            player.refill_energy(T0 + timedelta(seconds=299))
        assert exc_info.value.remaining_seconds == pytest.approx(1.0)
        assert player.energy == 0

        assert player.refill_energy(T0 + timedelta(seconds=300)) == player.max_energy
        assert player.total_energy_refills == 2


# ============================================================================
# PLAYER UPGRADES
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestPlayerUpgrades:
    def test_tap_power_cost_doubles_each_upgrade(self):
        # Arrange
        player = _player(tap_points=10_000)

        # Act
        costs = [player.upgrade_tap_power()["cost"] for _ in range(3)]

        # Assert
        assert costs == [1024, 2048, 4096]
        assert player.per_tap == 4
        assert player.tap_power_cost == 8192
        assert player.tap_points == 10_000 - 7168

    def test_energy_limit_adds_five_hundred(self):
        player = _player(tap_points=1024)

        result = player.upgrade_energy_limit()

        assert result == {"cost": 1024, "max_energy": 1500, "next_cost": 2048}
        assert player.tap_points == 0

    def test_upgrade_without_points_fails_atomically(self):
        player = _player(tap_points=1023)

        with pytest.raises(InsufficientResourcesError):
            player.upgrade_tap_power()

        assert player.per_tap == 1
        assert player.tap_power_cost == 1024
        assert player.tap_points == 1023


# ============================================================================
# CARDS
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestCardUpgrades:
    def test_upgrade_charges_current_price_and_raises_per_hour(self):
        # Arrange
        player = _with_card(make_card("gold"), tap_points=1_000)

        # Act
        card = player.upgrade_card("finance", "Gold", T0)

        # Assert
        assert card.upgrade_count == 1
        assert card.is_unlocked is True
        assert player.tap_points == 900
        assert player.per_hour == 11  # floor(10 * 1.1)
        assert assert_domain_event_emitted(player, "card.upgraded")

    def test_missing_card_is_not_found(self):
        player = _player(tap_points=1_000)

        with pytest.raises(NotFoundError):
            player.upgrade_card("finance", "ghost", T0)

    def test_level_is_checked_before_price(self):
        """A card the player can neither afford nor unlock reports the level gate."""
        player = _with_card(make_card("vault", required_level=2, base_price=10**9), tap_points=0)

        with pytest.raises(LevelTooLowError):
            player.upgrade_card("finance", "vault", T0)

    def test_price_is_checked_before_cooldown(self):
        card = make_card("gold", base_price=100, upgrade_count=1, last_upgrade_time=T0)
        player = _with_card(card, tap_points=10)

        with pytest.raises(InsufficientResourcesError):
            player.upgrade_card("finance", "gold", T0 + timedelta(minutes=1))

    def test_cooldown_blocks_until_it_elapses(self):
        # Arrange: one upgrade done at T0, cooldown now floor(10 * 1.2) = 12 min
        card = make_card("gold", upgrade_count=1, last_upgrade_time=T0)
        player = _with_card(card, tap_points=10_000)
        before = player.to_db_updates()

        # Act & Assert
        with pytest.raises(CooldownActiveError):
            player.upgrade_card("finance", "gold", T0 + timedelta(minutes=11, seconds=59))
        assert player.to_db_updates() == before

        player.upgrade_card("finance", "gold", T0 + timedelta(minutes=12))
        assert player.find_card("finance", "gold").upgrade_count == 2

    def test_add_card_skips_existing_key(self):
        player = _with_card(make_card("gold", upgrade_count=3))

        assert player.add_card("finance", make_card("gold")) is False
        assert player.find_card("finance", "gold").upgrade_count == 3
        assert player.add_card("predators", make_card("boar")) is True


# ============================================================================
# PRODUCTION & CONVERSION
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestCurrency:
    def test_hourly_award_pays_whole_hours(self):
        player = _player(per_hour=100, last_hourly_award=T0 - timedelta(hours=2, minutes=30))

        assert player.award_hourly_points(T0) == 200
        assert player.tap_points == 200
        assert player.last_hourly_award == T0

    def test_hourly_award_under_an_hour_is_noop(self):
        player = _player(per_hour=100, last_hourly_award=T0 - timedelta(minutes=59))

        assert player.award_hourly_points(T0) == 0
        assert player.last_hourly_award == T0 - timedelta(minutes=59)

    def test_conversion_uses_the_ledger(self):
        """15,000 tap + 10,000 referral: 20,000 converts, a further 6,000 does not."""
        # Arrange
        player = _player(tap_points=15_000, referral_points=10_000)

        # Act
        received = player.convert_to_hug_points(20_000, T0)

        # Assert
        assert received == Decimal("2.0000")
        assert player.hug_points == Decimal("2.0000")
        assert player.points_converted == 20_000
        assert player.tap_points == 15_000
        assert player.available_for_conversion == 5_000

        with pytest.raises(InsufficientResourcesError):
            player.convert_to_hug_points(6_000, T0)
        assert player.points_converted == 20_000

    @pytest.mark.parametrize("amount", [0, -5, 1.5, "100", True])
    def test_conversion_rejects_non_positive_or_non_integer(self, amount):
        player = _player(tap_points=50_000)

        with pytest.raises(ValidationError):
            player.convert_to_hug_points(amount, T0)

    def test_level_follows_total_points(self):
        player = _player(tap_points=24_999, energy=10)

        player.tap(T0)

        assert player.level == 1
        payload = get_domain_event_payload(player, "player.level_changed")
        assert payload == {"user_id": "u-1", "old_level": 0, "new_level": 1}


# ============================================================================
# DAILY CLAIM
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestDailyClaim:
    def test_first_claim_pays_first_tier(self):
        player = _player()

        result = player.process_daily_claim(T0)

        assert result["claimed_amount"] == 1_000
        assert result["current_streak"] == 1
        assert player.tap_points == 1_000

    def test_same_utc_day_is_already_claimed(self):
        player = _player(daily_claim_streak=3, last_daily_claim=T0 - timedelta(hours=1))

        with pytest.raises(AlreadyClaimedError):
            player.process_daily_claim(T0)

    def test_next_day_within_24h_is_too_early(self):
        # Claimed 23:00 yesterday, now 10:00
        last = T0.replace(hour=23) - timedelta(days=1)
        now = T0.replace(hour=10)
        player = _player(daily_claim_streak=3, last_daily_claim=last)

        with pytest.raises(TooEarlyError) as exc_info:
            player.process_daily_claim(now)

        assert isinstance(exc_info.value, CooldownActiveError)
        assert exc_info.value.remaining_seconds == pytest.approx(13 * 3600)
        assert player.daily_claim_streak == 3

    def test_streak_continues_and_changes_tier(self):
        """Streak 8 is week 1: claim pays 5,000."""
        player = _player(daily_claim_streak=8, last_daily_claim=T0 - timedelta(hours=25))

        result = player.process_daily_claim(T0)

        assert result["claimed_amount"] == 5_000
        assert result["current_streak"] == 9

    def test_gap_over_48_hours_resets_streak(self):
        player = _player(daily_claim_streak=10, last_daily_claim=T0 - timedelta(hours=49))

        result = player.process_daily_claim(T0)

        assert result["claimed_amount"] == 1_000
        assert result["current_streak"] == 1
        assert player.next_daily_claim_amount == 1_000


# ============================================================================
# AUTO-MINE
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestAutoMine:
    def test_session_accrues_once_per_hour_then_ends(self):
        # Arrange
        player = _player()
        player.start_auto_mine(7_200_000, T0)

        # Act
        first = player.process_auto_mine(T0 + timedelta(milliseconds=3_700_000))
        again = player.process_auto_mine(T0 + timedelta(milliseconds=3_800_000))
        ended = player.process_auto_mine(T0 + timedelta(milliseconds=7_300_000))

        # Assert
        assert first == 500
        assert again == 500
        assert ended == 0
        assert player.is_auto_mining is False
        assert player.pending_auto_mine_points == 500
        assert assert_domain_event_emitted(player, "auto_mine.ended")

    def test_start_while_running_restarts_the_session(self):
        # Arrange
        player = _player()
        player.start_auto_mine(7_200_000, T0)
        player.process_auto_mine(T0 + timedelta(hours=1, minutes=5))
        player.clear_domain_events()
        restart_at = T0 + timedelta(hours=1, minutes=10)

        # Act
        status = player.start_auto_mine(3_600_000, restart_at)

        # Assert
        assert status["is_active"] is True
        assert status["start_time"] == restart_at
        assert status["duration"] == 3_600_000
        assert status["pending_points"] == 0
        payload = get_domain_event_payload(player, "auto_mine.started")
        assert payload["restarted"] is True
        assert payload["forfeited_points"] == 500
        assert not assert_domain_event_emitted(player, "auto_mine.ended")

    def test_restart_after_expiry_forfeits_pending(self):
        player = _player(
            is_auto_mining=True,
            auto_mine_start_time=T0 - timedelta(hours=3),
            auto_mine_duration=7_200_000,
            pending_auto_mine_points=500,
        )

        status = player.start_auto_mine(3_600_000, T0)

        assert status["is_active"] is True
        assert status["pending_points"] == 0
        assert get_domain_event_payload(player, "auto_mine.started")["forfeited_points"] == 500

    def test_claim_moves_pending_into_tap_points(self):
        player = _player(pending_auto_mine_points=1_000)

        assert player.claim_auto_mine_rewards(T0) == 1_000
        assert player.tap_points == 1_000
        assert player.pending_auto_mine_points == 0

        with pytest.raises(NothingToClaimError):
            player.claim_auto_mine_rewards(T0)

    def test_duration_must_be_positive_int(self):
        with pytest.raises(ValidationError):
            _player().start_auto_mine(0, T0)

    def test_history_entry_without_time_is_rejected(self):
        with pytest.raises(ValidationError):
            AutoClaimEntry.from_dict({"points_claimed": 500})


# ============================================================================
# BONUSES & REFERRALS
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestBonusesAndReferrals:
    def test_starter_bonus_is_one_time(self):
        player = _player()

        assert player.claim_starter_bonus() == 10_000
        assert player.tap_points == 10_000

        with pytest.raises(AlreadyClaimedError):
            player.claim_starter_bonus()
        assert player.tap_points == 10_000

    def test_referrer_is_set_once_and_never_self(self):
        player = _player()

        with pytest.raises(InvalidOperationError):
            player.attribute_referrer("hoggy")

        player.attribute_referrer("boss_hog")
        with pytest.raises(InvalidOperationError):
            player.attribute_referrer("other")
        assert player.referral == "boss_hog"

    def test_referral_reward_credits_referral_points(self):
        # Arrange
        player = _player()
        player.add_direct_referral("piglet", "u-2", True, T0)
        player.add_direct_referral("runt", "u-3", False, T0)

        # Act
        verified = player.claim_referral_reward("u-2", True)
        unverified = player.claim_referral_reward("u-3", False)

        # Assert
        assert (verified, unverified) == (50_000, 20_000)
        assert player.referral_points == 70_000
        assert player.tap_points == 0
        assert player.total_points == 70_000
        assert player.direct_referrals[0].points_earned == 50_000
        assert player.pending_referral_rewards()["total_referrals"] == 0

    def test_referral_reward_cannot_be_claimed_twice(self):
        player = _player()
        player.add_direct_referral("piglet", "u-2", True, T0)
        player.claim_referral_reward("u-2", True)

        with pytest.raises(AlreadyClaimedError):
            player.claim_referral_reward("u-2", True)

    def test_referral_reward_requires_direct_referral(self):
        player = _player()
        player.add_indirect_referral("grandpiglet", "u-4", "piglet", True, T0)

        with pytest.raises(NotEligibleError):
            player.claim_referral_reward("u-4", True)

    def test_duplicate_referral_edges_are_ignored(self):
        player = _player()

        assert player.add_direct_referral("piglet", "u-2", False, T0) is True
        assert player.add_direct_referral("piglet", "u-2", False, T0) is False
        assert player.total_referrals == 1

    def test_rank_reward_tiers_and_weekly_cooldown(self):
        # Arrange
        player = _player()

        # Act
        amount = player.claim_referral_rank_reward(5, T0)

        # Assert
        assert amount == 100_000
        with pytest.raises(CooldownActiveError):
            player.claim_referral_rank_reward(5, T0 + timedelta(days=6, hours=23))
        assert player.claim_referral_rank_reward(20, T0 + timedelta(days=7)) == 50_000
        assert player.tap_points == 150_000

    def test_rank_outside_top_thirty_is_not_eligible(self):
        with pytest.raises(NotEligibleError):
            _player().claim_referral_rank_reward(31, T0)


# ============================================================================
# TASKS & VOTES
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestTaskAndVoteRewards:
    def test_task_reward_checks_level_then_points(self):
        player = _player(tap_points=100)

        with pytest.raises(LevelTooLowError):
            player.ensure_task_requirements(1, required_level=1, required_points=0)
        with pytest.raises(NotEligibleError):
            player.ensure_task_requirements(1, required_level=0, required_points=101)

    def test_task_reward_credits_points_and_hug_points(self):
        player = _player()

        player.receive_task_reward(
            7,
            required_level=0,
            required_points=0,
            reward_points=2_500,
            reward_hug_points=Decimal("0.5"),
        )

        assert player.tap_points == 2_500
        assert player.hug_points == Decimal("0.5000")
        assert get_domain_event_payload(player, "task.completed")["task_id"] == 7

    def test_vote_reward(self):
        player = _player()

        player.receive_vote_reward(3, 1, 500_000)

        assert player.tap_points == 500_000
        assert player.level == 4
