"""
Unit Tests for Economy Formulas
================================

Purpose
-------
Pin the pure calculations every economy rule is built on.

Test Coverage
-------------
- Lazy energy regeneration and its cap
- Geometric card curves (decimal exactness, flooring)
- Level thresholds
- Daily-claim tiers by streak week
- Hug-point conversion and rounding
- Referral and referral-rank reward tables
- Card key normalisation

Testing Strategy
----------------
- Pure functions only, no fixtures
- Boundary values on both sides of each threshold
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from warthug.modules.shared.formulas import (
    daily_claim_amount,
    doubled_cost,
    elapsed_ms,
    geometric_value,
    hours_elapsed,
    level_for_points,
    normalize_card_key,
    points_to_hug_points,
    quantize_hug_points,
    referral_rank_reward,
    referral_reward,
    regenerated_energy,
)


@pytest.mark.unit
class TestEnergyFormulas:
    def test_elapsed_ms_floors_and_treats_none_as_zero(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)

        assert elapsed_ms(start, start + timedelta(seconds=1, microseconds=999)) == 1000
        assert elapsed_ms(None, start) == 0

    def test_regeneration_counts_whole_seconds_only(self):
        """Ten seconds at per_tap 5 regenerates 50 energy; 9.999 s gives 45."""
        assert regenerated_energy(0, 1000, 5, 10_000) == 50
        assert regenerated_energy(0, 1000, 5, 9_999) == 45

    def test_regeneration_is_capped_at_max_energy(self):
        assert regenerated_energy(990, 1000, 5, 60_000) == 1000

    def test_negative_elapsed_regenerates_nothing(self):
        """A clock that moved backwards never drains energy."""
        assert regenerated_energy(10, 1000, 5, -5_000) == 10


@pytest.mark.unit
class TestGeometricCurves:
    def test_card_price_after_three_upgrades(self):
        """floor(100 * 1.15^3) = floor(152.0875) = 152."""
        assert geometric_value(100, Decimal("1.15"), 3) == 152

    def test_zero_steps_returns_base(self):
        assert geometric_value(250, Decimal("1.5"), 0) == 250

    def test_decimal_math_avoids_float_underflow(self):
        """100 * 1.1^2 is exactly 121 and must not floor to 120."""
        assert geometric_value(100, "1.1", 2) == 121

    def test_player_upgrade_cost_doubles(self):
        assert doubled_cost(1024) == 2048
        assert doubled_cost(doubled_cost(1024)) == 4096


@pytest.mark.unit
class TestLevels:
    @pytest.mark.parametrize(
        "points,expected",
        [
            (0, 0),
            (24_999, 0),
            (25_000, 1),
            (49_999, 1),
            (50_000, 2),
            (300_000, 3),
            (999_999_999, 8),
            (1_000_000_000, 9),
            (5_000_000_000, 9),
        ],
    )
    def test_level_for_points(self, points, expected):
        assert level_for_points(points) == expected


@pytest.mark.unit
class TestDailyClaimTiers:
    @pytest.mark.parametrize(
        "streak,expected",
        [
            (0, 1_000),
            (6, 1_000),
            (7, 5_000),
            (8, 5_000),
            (14, 10_000),
            (21, 20_000),
            (28, 35_000),
            (35, 50_000),
            (36, 50_000),
            (365, 50_000),
        ],
    )
    def test_reward_by_streak_week(self, streak, expected):
        assert daily_claim_amount(streak) == expected


@pytest.mark.unit
class TestHugPointConversion:
    def test_ten_thousand_points_make_one_hug_point(self):
        assert points_to_hug_points(20_000) == Decimal("2.0000")

    def test_single_point_is_the_smallest_unit(self):
        assert points_to_hug_points(1) == Decimal("0.0001")

    def test_result_has_four_decimal_places(self):
        assert points_to_hug_points(12_345).as_tuple().exponent == -4

    def test_quantize_rounds_half_up(self):
        assert quantize_hug_points("0.00005") == Decimal("0.0001")
        assert quantize_hug_points(Decimal("1.23444")) == Decimal("1.2344")

    def test_hours_elapsed_is_whole_hours(self):
        assert hours_elapsed(3 * 3_600_000 - 1) == 2
        assert hours_elapsed(-1) == 0


@pytest.mark.unit
class TestReferralRewards:
    def test_direct_referral_reward_depends_on_verification(self):
        assert referral_reward(True) == 50_000
        assert referral_reward(False) == 20_000

    @pytest.mark.parametrize(
        "rank,expected",
        [(1, 100_000), (10, 100_000), (11, 50_000), (30, 50_000), (31, None), (0, None)],
    )
    def test_rank_reward_table(self, rank, expected):
        assert referral_rank_reward(rank) == expected


@pytest.mark.unit
class TestCardKeys:
    def test_key_is_lowercase_with_underscores(self):
        assert normalize_card_key("Golden  Hog Bank") == "golden_hog_bank"

    def test_key_strips_outer_whitespace(self):
        assert normalize_card_key("  Tusk\tFund ") == "tusk_fund"
