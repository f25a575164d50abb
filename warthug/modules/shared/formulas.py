"""
Warthug Economy Formulas

Purpose
-------
Pure calculation functions for the economy: lazy energy regeneration, the
geometric growth curve shared by upgrade costs and card stats, level
derivation, daily-claim tiers, hug-point conversion and reward tables.

Design Notes
------------
All formulas:
- Accept parameters explicitly (no config access, no clock access)
- Return calculated values with no side effects
- Use Decimal where fractional money is involved; plain floats never touch
  hug points

Usage
-----
    from warthug.modules.shared.formulas import geometric_value, level_for_points

    price = geometric_value(100, 1.15, 3)   # 152
    level = level_for_points(60_000)        # 2
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, localcontext
from typing import Optional, Sequence, Union

from warthug.modules.shared.constants import (
    DAILY_CLAIM_MAX_REWARD,
    DAILY_CLAIM_TIERS,
    DAYS_PER_STREAK_WEEK,
    HUG_POINT_QUANTUM,
    LEVEL_THRESHOLDS,
    MS_PER_HOUR,
    MS_PER_SECOND,
    POINTS_PER_HUG_POINT,
    REFERRAL_RANK_MAX_ELIGIBLE,
    REFERRAL_RANK_REWARD,
    REFERRAL_RANK_TOP_REWARD,
    REFERRAL_RANK_TOP_TIER,
    REFERRAL_REWARD_UNVERIFIED,
    REFERRAL_REWARD_VERIFIED,
)

Number = Union[int, float, Decimal, str]

_WHITESPACE = re.compile(r"\s+")


def elapsed_ms(since: Optional[datetime], now: datetime) -> int:
    """
    Whole milliseconds between two instants, floored. None means "never".

    Example:
        >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
        >>> elapsed_ms(t, t + timedelta(seconds=1.5))
        1500
    """
    if since is None:
        return 0
    return (now - since) // timedelta(milliseconds=1)


def regenerated_energy(
    stored_energy: int, max_energy: int, per_tap: int, elapsed: int
) -> int:
    """
    Lazy energy regeneration: perTap energy per whole elapsed second, capped.

    Args:
        stored_energy: Energy persisted at the last tap
        max_energy: Energy cap
        per_tap: Regeneration rate (energy per second)
        elapsed: Milliseconds since the last tap

    Returns:
        Current energy, never above max_energy

    Example:
        >>> regenerated_energy(0, 1000, 5, 10_000)
        50
    """
    seconds = max(elapsed, 0) // MS_PER_SECOND
    return min(stored_energy + seconds * per_tap, max_energy)


def geometric_value(base: Number, rate: Number, steps: int) -> int:
    """
    floor(base * rate^steps), computed in decimal arithmetic.

    The same curve drives card price, card per-hour output and card cooldown.
    Decimal keeps results like 100 * 1.1^2 = 121 from flooring to 120.

    Example:
        >>> geometric_value(100, 1.15, 3)
        152
    """
    with localcontext() as ctx:
        ctx.prec = 60
        value = Decimal(str(base)) * (Decimal(str(rate)) ** steps)
        return int(value.to_integral_value(rounding=ROUND_FLOOR))


def doubled_cost(cost: int, multiplier: int = 2) -> int:
    """Next player-upgrade cost; grows without bound."""
    return cost * multiplier


def level_for_points(
    total_points: int, thresholds: Sequence[int] = LEVEL_THRESHOLDS
) -> int:
    """
    Largest index i with total_points >= thresholds[i].

    Example:
        >>> level_for_points(24_999)
        0
        >>> level_for_points(25_000)
        1
    """
    for index in range(len(thresholds) - 1, -1, -1):
        if total_points >= thresholds[index]:
            return index
    return 0


def daily_claim_amount(streak: int) -> int:
    """
    Reward for the next daily claim given the current streak.

    Example:
        >>> daily_claim_amount(8)
        5000
        >>> daily_claim_amount(36)
        50000
    """
    week = max(streak, 0) // DAYS_PER_STREAK_WEEK
    return DAILY_CLAIM_TIERS.get(week, DAILY_CLAIM_MAX_REWARD)


def hours_elapsed(elapsed: int) -> int:
    """Whole hours in a millisecond span."""
    return max(elapsed, 0) // MS_PER_HOUR


def points_to_hug_points(raw_points: int) -> Decimal:
    """
    Convert raw points to hug points at 10,000:1, rounded half-up to 4 places.

    Example:
        >>> points_to_hug_points(20_000)
        Decimal('2.0000')
        >>> points_to_hug_points(1)
        Decimal('0.0001')
    """
    return (Decimal(raw_points) / Decimal(POINTS_PER_HUG_POINT)).quantize(
        HUG_POINT_QUANTUM, rounding=ROUND_HALF_UP
    )


def quantize_hug_points(value: Number) -> Decimal:
    """Normalise any numeric input to a 4-place hug-point Decimal."""
    return Decimal(str(value)).quantize(HUG_POINT_QUANTUM, rounding=ROUND_HALF_UP)


def referral_reward(is_verified: bool) -> int:
    """Payout for one direct referral."""
    return REFERRAL_REWARD_VERIFIED if is_verified else REFERRAL_REWARD_UNVERIFIED


def referral_rank_reward(rank: int) -> Optional[int]:
    """
    Weekly reward for a referral-leaderboard rank, or None when ineligible.

    Example:
        >>> referral_rank_reward(10)
        100000
        >>> referral_rank_reward(31) is None
        True
    """
    if rank < 1 or rank > REFERRAL_RANK_MAX_ELIGIBLE:
        return None
    if rank <= REFERRAL_RANK_TOP_TIER:
        return REFERRAL_RANK_TOP_REWARD
    return REFERRAL_RANK_REWARD


def normalize_card_key(name: str) -> str:
    """
    Card key used at creation and lookup: lowercase, whitespace runs -> "_".

    Example:
        >>> normalize_card_key("Golden  Hog Bank")
        'golden_hog_bank'
    """
    return _WHITESPACE.sub("_", name.strip().lower())
