"""
Player Record Model
===================

One row per player holding the whole economy aggregate.

Schema-only representation of:
- Identity (external user_id, unique username, verification flag)
- Energy, currencies, production and upgrade costs
- Card sections, referral lists and auto-mine history as JSON documents
- Denormalised ranking columns (total_points, level, total_referrals)
- Optimistic-lock `version`, bumped by every compare-and-swap save

All behavior and game rules live in the `Player` domain aggregate.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Final, List, Optional

from sqlalchemy import JSON, BigInteger, Index, Numeric
from sqlmodel import Field

from warthug.core.database.base import UTC_TIMESTAMP, TimestampedModel

# Card section name -> JSON column holding that section
SECTION_COLUMNS: Final[Dict[str, str]] = {
    "finance": "finance_cards",
    "predators": "predators_cards",
    "hogPower": "hog_power_cards",
}


class PlayerRecord(TimestampedModel, table=True):
    """Persistent state of one player's economy."""

    # ========================================================================
    # TABLE CONFIGURATION
    # ========================================================================

    __tablename__ = "players"
    __table_args__ = (
        Index("ix_players_user_id", "user_id", unique=True),
        Index("ix_players_username", "username", unique=True),
        Index("ix_players_total_points", "total_points"),
        Index("ix_players_hug_points", "hug_points"),
        Index("ix_players_per_hour", "per_hour"),
        Index("ix_players_daily_claim_streak", "daily_claim_streak"),
        Index("ix_players_total_referrals", "total_referrals"),
    )

    # ========================================================================
    # IDENTITY
    # ========================================================================

    user_id: str = Field(max_length=128, nullable=False)
    username: str = Field(max_length=100, nullable=False)
    is_verified: bool = Field(default=False, nullable=False)

    # Optimistic locking version for compare-and-swap saves
    version: int = Field(default=0, nullable=False)

    # ========================================================================
    # ENERGY
    # ========================================================================

    energy: int = Field(default=1000, nullable=False)
    max_energy: int = Field(default=1000, nullable=False)
    per_tap: int = Field(default=1, nullable=False)
    last_tap_time: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    last_energy_refill: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    total_energy_refills: int = Field(default=0, nullable=False)

    # ========================================================================
    # CURRENCIES
    # ========================================================================

    tap_points: int = Field(default=0, sa_type=BigInteger, nullable=False)
    referral_points: int = Field(default=0, sa_type=BigInteger, nullable=False)
    # Fixed-point secondary currency, 4 decimal places
    hug_points: Decimal = Field(default=Decimal("0"), sa_type=Numeric(20, 4), nullable=False)
    # Ledger of raw points ever converted to hug points
    points_converted: int = Field(default=0, sa_type=BigInteger, nullable=False)
    last_conversion_time: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    total_points: int = Field(default=0, sa_type=BigInteger, nullable=False)
    level: int = Field(default=0, nullable=False)

    # ========================================================================
    # PRODUCTION & UPGRADES
    # ========================================================================

    per_hour: int = Field(default=0, sa_type=BigInteger, nullable=False)
    last_hourly_award: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    tap_power_cost: int = Field(default=1024, sa_type=BigInteger, nullable=False)
    energy_limit_cost: int = Field(default=1024, sa_type=BigInteger, nullable=False)

    finance_cards: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON, nullable=False)
    predators_cards: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON, nullable=False)
    hog_power_cards: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON, nullable=False)

    # ========================================================================
    # DAILY CLAIM
    # ========================================================================

    daily_claim_streak: int = Field(default=0, nullable=False)
    last_daily_claim: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    next_daily_claim_amount: int = Field(default=1000, nullable=False)

    # ========================================================================
    # AUTO-MINE
    # ========================================================================

    is_auto_mining: bool = Field(default=False, nullable=False)
    auto_mine_start_time: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    auto_mine_duration: int = Field(default=0, sa_type=BigInteger, nullable=False)
    pending_auto_mine_points: int = Field(default=0, sa_type=BigInteger, nullable=False)
    last_auto_mine_end: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    auto_claim_history: List[Dict[str, Any]] = Field(
        default_factory=list, sa_type=JSON, nullable=False
    )

    # ========================================================================
    # REFERRALS
    # ========================================================================

    # Referrer username, set once at registration
    referral: Optional[str] = Field(default=None, max_length=100)
    direct_referrals: List[Dict[str, Any]] = Field(
        default_factory=list, sa_type=JSON, nullable=False
    )
    indirect_referrals: List[Dict[str, Any]] = Field(
        default_factory=list, sa_type=JSON, nullable=False
    )
    claimed_referrals: List[str] = Field(default_factory=list, sa_type=JSON, nullable=False)
    total_referrals: int = Field(default=0, nullable=False)
    last_referral_reward_claim: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    has_claimed_starter_bonus: bool = Field(default=False, nullable=False)
    is_active: bool = Field(default=True, nullable=False)
    last_active: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)

    def __repr__(self) -> str:
        return (
            f"<PlayerRecord(user_id={self.user_id!r}, username={self.username!r}, "
            f"version={self.version})>"
        )
