"""
Warthug Economy Constants

Purpose
-------
Gameplay constants that define how the economy behaves from a player's
perspective: energy, upgrades, conversion, levels, daily streaks, auto-mine,
referrals, and card sections.

IMPORTANT:
Infrastructure tuning (pool sizes, retry backoff, log levels) belongs in
warthug.core.config. Values here are balance rules, not deployment settings.

Design Notes
------------
- Values are annotated with typing.Final to signal immutability
- Grouped by subsystem
- Durations are milliseconds unless the name says otherwise
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Final, Tuple

# ============================================================================
# TIME
# ============================================================================

MS_PER_SECOND: Final[int] = 1_000
MS_PER_MINUTE: Final[int] = 60_000
MS_PER_HOUR: Final[int] = 3_600_000
MS_PER_DAY: Final[int] = 86_400_000

# ============================================================================
# ENERGY
# ============================================================================

STARTING_ENERGY: Final[int] = 1_000
STARTING_MAX_ENERGY: Final[int] = 1_000
MIN_MAX_ENERGY: Final[int] = 1_000
STARTING_PER_TAP: Final[int] = 1
TAP_ENERGY_COST: Final[int] = 1
ENERGY_REFILL_COOLDOWN_MS: Final[int] = 300_000  # 5 minutes

# ============================================================================
# PLAYER UPGRADES
# ============================================================================

STARTING_TAP_POWER_COST: Final[int] = 1_024
STARTING_ENERGY_LIMIT_COST: Final[int] = 1_024
TAP_POWER_UPGRADE_STEP: Final[int] = 1
ENERGY_LIMIT_UPGRADE_STEP: Final[int] = 500
UPGRADE_COST_MULTIPLIER: Final[int] = 2

# ============================================================================
# CURRENCY CONVERSION
# ============================================================================

POINTS_PER_HUG_POINT: Final[int] = 10_000  # 1 point = 0.0001 hug points
MIN_CONVERSION_POINTS: Final[int] = 1
HUG_POINT_QUANTUM: Final[Decimal] = Decimal("0.0001")

# ============================================================================
# LEVELS
# ============================================================================

LEVEL_THRESHOLDS: Final[Tuple[int, ...]] = (
    0,
    25_000,
    50_000,
    300_000,
    500_000,
    1_000_000,
    10_000_000,
    100_000_000,
    500_000_000,
    1_000_000_000,
)

# ============================================================================
# DAILY CLAIM
# ============================================================================

DAILY_CLAIM_MIN_INTERVAL_MS: Final[int] = 24 * MS_PER_HOUR
DAILY_STREAK_RESET_MS: Final[int] = 48 * MS_PER_HOUR
DAYS_PER_STREAK_WEEK: Final[int] = 7

# Week index (streak // 7) -> reward
DAILY_CLAIM_TIERS: Final[Dict[int, int]] = {
    0: 1_000,
    1: 5_000,
    2: 10_000,
    3: 20_000,
    4: 35_000,
}
DAILY_CLAIM_MAX_REWARD: Final[int] = 50_000

# ============================================================================
# AUTO-MINE
# ============================================================================

AUTO_MINE_DEFAULT_DURATION_MS: Final[int] = 7_200_000  # 2 hours
AUTO_MINE_POINTS_PER_HOUR: Final[int] = 500
AUTO_MINE_ACCRUAL_INTERVAL_MS: Final[int] = MS_PER_HOUR

# ============================================================================
# BONUSES & REFERRALS
# ============================================================================

STARTER_BONUS_POINTS: Final[int] = 10_000

REFERRAL_REWARD_VERIFIED: Final[int] = 50_000
REFERRAL_REWARD_UNVERIFIED: Final[int] = 20_000

REFERRAL_RANK_MAX_ELIGIBLE: Final[int] = 30
REFERRAL_RANK_TOP_TIER: Final[int] = 10
REFERRAL_RANK_TOP_REWARD: Final[int] = 100_000
REFERRAL_RANK_REWARD: Final[int] = 50_000
REFERRAL_RANK_COOLDOWN_MS: Final[int] = 7 * MS_PER_DAY

# ============================================================================
# CARDS
# ============================================================================

CARD_SECTIONS: Final[Tuple[str, ...]] = ("finance", "predators", "hogPower")

# ============================================================================
# TASKS & VOTES
# ============================================================================

TASK_TYPES: Final[Tuple[str, ...]] = ("daily", "weekly", "special", "event")
DEFAULT_VOTE_REWARD: Final[int] = 500_000

# ============================================================================
# LEADERBOARD
# ============================================================================

LEADERBOARD_TYPES: Final[Tuple[str, ...]] = (
    "points",
    "hugPoints",
    "referrals",
    "hourly",
    "streak",
)
