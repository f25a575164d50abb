"""
Player Domain Model for the Warthug economy.

Purpose
-------
Rich aggregate holding one player's entire economy state and every rule
that changes it: energy regeneration and taps, upgrades, cards and passive
production, hug-point conversion, daily streaks, auto-mine sessions,
starter bonus, referrals and task / vote rewards.

This is separate from the database model (`PlayerRecord`), which is an
anemic row schema. Repositories convert between the two.

Responsibilities
----------------
- Enforce every economy rule and invariant
- Derive time-based effects lazily from stored instants and an explicit
  `now` (no timers, no background jobs)
- Validate all preconditions before the first mutation, so a failed action
  leaves the aggregate exactly as loaded
- Keep `total_points` and `level` in step with the balances
- Record domain events for every state change

Non-Responsibilities
--------------------
- Persistence and optimistic locking (PlayerRepository)
- Transactions and retries (PlayerOperationRunner)
- Cross-player lookups such as rank or referrer resolution (services)

Invariants
----------
- total_points == tap_points + referral_points
- 0 <= energy <= max_energy
- level == largest i with total_points >= LEVEL_THRESHOLDS[i]
- points_converted never exceeds points ever earned
- `referral` is set at most once

Usage Example
-------------
>>> player = Player.create("u-1", "hoggy", now)
>>> player.tap(now)
1
>>> events = player.clear_domain_events()
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional

from warthug.domain.models.base import AggregateRoot, ValueObject, from_iso, to_iso
from warthug.domain.models.card import Card
from warthug.modules.shared.constants import (
    AUTO_MINE_ACCRUAL_INTERVAL_MS,
    AUTO_MINE_POINTS_PER_HOUR,
    CARD_SECTIONS,
    DAILY_CLAIM_MIN_INTERVAL_MS,
    DAILY_CLAIM_TIERS,
    DAILY_CLAIM_MAX_REWARD,
    DAILY_STREAK_RESET_MS,
    DAYS_PER_STREAK_WEEK,
    ENERGY_LIMIT_UPGRADE_STEP,
    ENERGY_REFILL_COOLDOWN_MS,
    HUG_POINT_QUANTUM,
    LEVEL_THRESHOLDS,
    MIN_CONVERSION_POINTS,
    MS_PER_HOUR,
    MS_PER_SECOND,
    POINTS_PER_HUG_POINT,
    REFERRAL_RANK_COOLDOWN_MS,
    STARTER_BONUS_POINTS,
    STARTING_ENERGY,
    STARTING_ENERGY_LIMIT_COST,
    STARTING_MAX_ENERGY,
    STARTING_PER_TAP,
    STARTING_TAP_POWER_COST,
    TAP_ENERGY_COST,
    TAP_POWER_UPGRADE_STEP,
    UPGRADE_COST_MULTIPLIER,
)
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
from warthug.modules.shared.formulas import (
    daily_claim_amount,
    doubled_cost,
    elapsed_ms,
    hours_elapsed,
    level_for_points,
    normalize_card_key,
    points_to_hug_points,
    quantize_hug_points,
    referral_rank_reward,
    referral_reward,
    regenerated_energy,
)

if TYPE_CHECKING:
    from warthug.database.models.player import PlayerRecord


def _remaining_seconds(remaining_ms: int) -> float:
    return max(remaining_ms, 0) / MS_PER_SECOND


# ============================================================================
# VALUE OBJECTS
# ============================================================================


@dataclass(frozen=True)
class PlayerIdentity(ValueObject):
    """Immutable identity: opaque external user id and unique username."""

    user_id: str
    username: str

    def __post_init__(self) -> None:
        if not self.user_id or not str(self.user_id).strip():
            raise ValidationError("user_id", "user_id cannot be empty")
        if not self.username or not self.username.strip():
            raise ValidationError("username", "username cannot be empty")


@dataclass(frozen=True)
class ReferralEntry(ValueObject):
    """
    One edge of the referral tree as seen from the referrer.

    `referred_by` is set on indirect (second-level) entries and names the
    direct referrer in between.
    """

    username: str
    user_id: str
    is_verified: bool = False
    points_earned: int = 0
    joined_at: Optional[datetime] = None
    referred_by: Optional[str] = None

    def with_points(self, amount: int) -> ReferralEntry:
        return replace(self, points_earned=self.points_earned + amount)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "username": self.username,
            "user_id": self.user_id,
            "is_verified": self.is_verified,
            "points_earned": self.points_earned,
            "joined_at": to_iso(self.joined_at),
        }
        if self.referred_by is not None:
            data["referred_by"] = self.referred_by
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ReferralEntry:
        return cls(
            username=data["username"],
            user_id=data["user_id"],
            is_verified=bool(data.get("is_verified", False)),
            points_earned=int(data.get("points_earned", 0)),
            joined_at=from_iso(data.get("joined_at")),
            referred_by=data.get("referred_by"),
        )


@dataclass(frozen=True)
class AutoClaimEntry(ValueObject):
    """Auto-mine history entry: an hourly accrual or a claim."""

    claim_time: datetime
    points_claimed: int

    def to_dict(self) -> Dict[str, Any]:
        return {"claim_time": to_iso(self.claim_time), "points_claimed": self.points_claimed}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AutoClaimEntry:
        claim_time = from_iso(data.get("claim_time"))
        if claim_time is None:
            raise ValidationError("auto_claim_history", "History entry has no claim_time")
        return cls(claim_time=claim_time, points_claimed=int(data.get("points_claimed", 0)))


# ============================================================================
# PLAYER AGGREGATE ROOT
# ============================================================================


class Player(AggregateRoot):
    """
    Player aggregate root.

    Every method that depends on time takes `now` explicitly; the aggregate
    never reads the clock.

    Domain Events
    -------------
    player.registered, player.tapped, energy.refilled, upgrade.tap_power,
    upgrade.energy_limit, card.upgraded, hourly.awarded,
    hug_points.converted, daily.claimed, auto_mine.started, auto_mine.ended,
    auto_mine.accrued, auto_mine.claimed, starter_bonus.claimed,
    referral.attributed, referral.reward_claimed,
    referral_rank.reward_claimed, task.completed, vote.cast,
    player.level_changed
    """

    def __init__(
        self,
        identity: PlayerIdentity,
        *,
        is_verified: bool = False,
        # Energy
        energy: int = STARTING_ENERGY,
        max_energy: int = STARTING_MAX_ENERGY,
        per_tap: int = STARTING_PER_TAP,
        last_tap_time: Optional[datetime] = None,
        last_energy_refill: Optional[datetime] = None,
        total_energy_refills: int = 0,
        # Currencies
        tap_points: int = 0,
        referral_points: int = 0,
        hug_points: Decimal = Decimal("0.0000"),
        points_converted: int = 0,
        last_conversion_time: Optional[datetime] = None,
        level: Optional[int] = None,
        # Production
        per_hour: Optional[int] = None,
        last_hourly_award: Optional[datetime] = None,
        # Upgrades
        tap_power_cost: int = STARTING_TAP_POWER_COST,
        energy_limit_cost: int = STARTING_ENERGY_LIMIT_COST,
        # Cards
        cards: Optional[Mapping[str, Mapping[str, Card]]] = None,
        # Daily claim
        daily_claim_streak: int = 0,
        last_daily_claim: Optional[datetime] = None,
        next_daily_claim_amount: Optional[int] = None,
        # Auto-mine
        is_auto_mining: bool = False,
        auto_mine_start_time: Optional[datetime] = None,
        auto_mine_duration: int = 0,
        pending_auto_mine_points: int = 0,
        last_auto_mine_end: Optional[datetime] = None,
        auto_claim_history: Optional[Iterable[AutoClaimEntry]] = None,
        # Referral
        referral: Optional[str] = None,
        direct_referrals: Optional[Iterable[ReferralEntry]] = None,
        indirect_referrals: Optional[Iterable[ReferralEntry]] = None,
        claimed_referrals: Optional[Iterable[str]] = None,
        last_referral_reward_claim: Optional[datetime] = None,
        # Lifecycle
        has_claimed_starter_bonus: bool = False,
        is_active: bool = True,
        last_active: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        version: int = 0,
    ) -> None:
        super().__init__(identity.user_id)
        self._identity = identity
        self.is_verified = is_verified

        self.energy = energy
        self.max_energy = max_energy
        self.per_tap = per_tap
        self.last_tap_time = last_tap_time
        self.last_energy_refill = last_energy_refill
        self.total_energy_refills = total_energy_refills

        self.tap_points = tap_points
        self.referral_points = referral_points
        self.hug_points = quantize_hug_points(hug_points)
        self.points_converted = points_converted
        self.last_conversion_time = last_conversion_time

        self.last_hourly_award = last_hourly_award

        self.tap_power_cost = tap_power_cost
        self.energy_limit_cost = energy_limit_cost

        self._cards: Dict[str, Dict[str, Card]] = {section: {} for section in CARD_SECTIONS}
        for section, section_cards in (cards or {}).items():
            if section in self._cards:
                self._cards[section] = dict(section_cards)

        self.daily_claim_streak = daily_claim_streak
        self.last_daily_claim = last_daily_claim
        self.next_daily_claim_amount = (
            next_daily_claim_amount
            if next_daily_claim_amount is not None
            else daily_claim_amount(daily_claim_streak)
        )

        self.is_auto_mining = is_auto_mining
        self.auto_mine_start_time = auto_mine_start_time
        self.auto_mine_duration = auto_mine_duration
        self.pending_auto_mine_points = pending_auto_mine_points
        self.last_auto_mine_end = last_auto_mine_end
        self.auto_claim_history: List[AutoClaimEntry] = list(auto_claim_history or [])

        self.referral = referral
        self.direct_referrals: List[ReferralEntry] = list(direct_referrals or [])
        self.indirect_referrals: List[ReferralEntry] = list(indirect_referrals or [])
        self.claimed_referrals: List[str] = list(claimed_referrals or [])
        self.last_referral_reward_claim = last_referral_reward_claim

        self.has_claimed_starter_bonus = has_claimed_starter_bonus
        self.is_active = is_active
        self.last_active = last_active
        self.created_at = created_at
        self.version = version

        # Derived values are always recomputed from their sources
        self.total_points = self.tap_points + self.referral_points
        self.level = level if level is not None else level_for_points(self.total_points)
        self.per_hour = per_hour if per_hour is not None else self._calculate_total_per_hour()
        self._refresh_totals()

    # ========================================================================
    # FACTORY
    # ========================================================================

    @classmethod
    def create(
        cls,
        user_id: str,
        username: str,
        now: datetime,
        *,
        is_verified: bool = False,
        starting_tap_points: int = 0,
        cards: Optional[Mapping[str, Mapping[str, Card]]] = None,
    ) -> Player:
        """
        Build a freshly registered player.

        Starting state: full energy, perTap 1, upgrade costs 1024/1024, empty
        referral lists, card sections cloned from the supplied templates.
        """
        identity = PlayerIdentity(user_id=user_id.strip(), username=username.strip())
        player = cls(
            identity,
            is_verified=is_verified,
            tap_points=starting_tap_points,
            last_tap_time=now,
            last_hourly_award=now,
            cards=cards,
            last_active=now,
            created_at=now,
        )
        player.add_domain_event(
            "player.registered",
            {
                "user_id": player.user_id,
                "username": player.username,
                "is_verified": is_verified,
                "starting_tap_points": starting_tap_points,
            },
        )
        return player

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    @property
    def identity(self) -> PlayerIdentity:
        return self._identity

    @property
    def user_id(self) -> str:
        return self._identity.user_id

    @property
    def username(self) -> str:
        return self._identity.username

    @property
    def cards(self) -> Dict[str, Dict[str, Card]]:
        """Read-only view of the card sections (copies of the inner mappings)."""
        return {section: dict(items) for section, items in self._cards.items()}

    @property
    def available_for_conversion(self) -> int:
        """Raw points not yet converted: tap + referral - points_converted."""
        return self.tap_points + self.referral_points - self.points_converted

    @property
    def total_referrals(self) -> int:
        return len(self.direct_referrals) + len(self.indirect_referrals)

    # ========================================================================
    # DERIVED STATE
    # ========================================================================

    def _refresh_totals(self) -> None:
        """Recompute total_points and level; record a level change."""
        self.total_points = self.tap_points + self.referral_points
        new_level = level_for_points(self.total_points)
        if new_level != self.level:
            old_level = self.level
            self.level = new_level
            self.add_domain_event(
                "player.level_changed",
                {"user_id": self.user_id, "old_level": old_level, "new_level": new_level},
            )

    def _calculate_total_per_hour(self) -> int:
        return sum(
            card.current_per_hour
            for section_cards in self._cards.values()
            for card in section_cards.values()
        )

    def _credit_tap_points(self, amount: int) -> None:
        self.tap_points += amount
        self._refresh_totals()

    def _debit_tap_points(self, amount: int) -> None:
        self.tap_points -= amount
        self._refresh_totals()

    def touch(self, now: datetime) -> None:
        self.last_active = now

    # ========================================================================
    # ENERGY
    # ========================================================================

    def current_energy(self, now: datetime) -> int:
        """Stored energy plus lazy regeneration, capped at max_energy."""
        return regenerated_energy(
            self.energy,
            self.max_energy,
            self.per_tap,
            elapsed_ms(self.last_tap_time, now),
        )

    def settle_energy(self, now: datetime) -> int:
        """
        Persist regenerated energy without losing the partial second.

        `last_tap_time` advances by the whole seconds already credited, so
        current_energy() reads the same before and after settling.
        """
        current = self.current_energy(now)
        if current >= self.max_energy or self.last_tap_time is None:
            self.last_tap_time = now
        else:
            whole_seconds = max(elapsed_ms(self.last_tap_time, now), 0) // MS_PER_SECOND
            self.last_tap_time = self.last_tap_time + timedelta(seconds=whole_seconds)
        self.energy = current
        return current

    def tap(self, now: datetime) -> int:
        """
        Spend one energy for `per_tap` points.

        Raises:
            InsufficientResourcesError: If regenerated energy is 0
        """
        current = self.current_energy(now)
        if current < TAP_ENERGY_COST:
            raise InsufficientResourcesError("energy", TAP_ENERGY_COST, current)

        self.energy = current - TAP_ENERGY_COST
        self.last_tap_time = now
        earned = self.per_tap
        self._credit_tap_points(earned)

        self.add_domain_event(
            "player.tapped",
            {"user_id": self.user_id, "points_earned": earned, "energy": self.energy},
        )
        return earned

    def refill_energy(self, now: datetime) -> int:
        """
        Refill energy to max; allowed once every five minutes.

        Raises:
            CooldownActiveError: Within 300 s of the previous refill
        """
        if self.last_energy_refill is not None:
            since = elapsed_ms(self.last_energy_refill, now)
            if since < ENERGY_REFILL_COOLDOWN_MS:
                raise CooldownActiveError(
                    "energy_refill", _remaining_seconds(ENERGY_REFILL_COOLDOWN_MS - since)
                )

        self.energy = self.max_energy
        self.last_energy_refill = now
        self.total_energy_refills += 1

        self.add_domain_event(
            "energy.refilled",
            {
                "user_id": self.user_id,
                "energy": self.energy,
                "total_energy_refills": self.total_energy_refills,
            },
        )
        return self.energy

    # ========================================================================
    # PLAYER UPGRADES
    # ========================================================================

    def upgrade_tap_power(self) -> Dict[str, int]:
        """
        Pay the tap-power cost for +1 per_tap; the cost then doubles.

        Raises:
            InsufficientResourcesError: If tap_points < cost
        """
        cost = self.tap_power_cost
        if self.tap_points < cost:
            raise InsufficientResourcesError("tap_points", cost, self.tap_points)

        self._debit_tap_points(cost)
        self.per_tap += TAP_POWER_UPGRADE_STEP
        self.tap_power_cost = doubled_cost(cost, UPGRADE_COST_MULTIPLIER)

        self.add_domain_event(
            "upgrade.tap_power",
            {
                "user_id": self.user_id,
                "cost": cost,
                "per_tap": self.per_tap,
                "next_cost": self.tap_power_cost,
            },
        )
        return {"cost": cost, "per_tap": self.per_tap, "next_cost": self.tap_power_cost}

    def upgrade_energy_limit(self) -> Dict[str, int]:
        """
        Pay the energy-limit cost for +500 max_energy; the cost then doubles.

        Raises:
            InsufficientResourcesError: If tap_points < cost
        """
        cost = self.energy_limit_cost
        if self.tap_points < cost:
            raise InsufficientResourcesError("tap_points", cost, self.tap_points)

        self._debit_tap_points(cost)
        self.max_energy += ENERGY_LIMIT_UPGRADE_STEP
        self.energy_limit_cost = doubled_cost(cost, UPGRADE_COST_MULTIPLIER)

        self.add_domain_event(
            "upgrade.energy_limit",
            {
                "user_id": self.user_id,
                "cost": cost,
                "max_energy": self.max_energy,
                "next_cost": self.energy_limit_cost,
            },
        )
        return {"cost": cost, "max_energy": self.max_energy, "next_cost": self.energy_limit_cost}

    # ========================================================================
    # CARDS
    # ========================================================================

    def find_card(self, section: str, name_or_key: str) -> Optional[Card]:
        return self._cards.get(section, {}).get(normalize_card_key(name_or_key))

    def get_card(self, section: str, name_or_key: str) -> Card:
        card = self.find_card(section, name_or_key)
        if card is None:
            raise NotFoundError("Card", f"{section}/{normalize_card_key(name_or_key)}")
        return card

    def card_info(self, section: str, name_or_key: str, now: datetime) -> Optional[Dict[str, Any]]:
        """Computed card info, or None when the card does not exist."""
        card = self.find_card(section, name_or_key)
        if card is None:
            return None
        return card.info(now, self.level, self.tap_points)

    def cards_info(self, now: datetime) -> Dict[str, Dict[str, Dict[str, Any]]]:
        return {
            section: {
                key: card.info(now, self.level, self.tap_points)
                for key, card in section_cards.items()
            }
            for section, section_cards in self._cards.items()
        }

    def add_card(self, section: str, card: Card) -> bool:
        """
        Add a freshly created catalog card. Returns False when the player
        already holds a card under that key.
        """
        if section not in self._cards:
            raise ValidationError("section", f"Unknown card section '{section}'")
        if card.key in self._cards[section]:
            return False
        self._cards[section][card.key] = replace(card)
        return True

    def upgrade_card(self, section: str, name_or_key: str, now: datetime) -> Card:
        """
        Buy the next upgrade of a card.

        Raises:
            NotFoundError: Card absent
            LevelTooLowError: Player level below the card's required level
            InsufficientResourcesError: tap_points below the current price
            CooldownActiveError: Still within the card's current cooldown
        """
        card = self.get_card(section, name_or_key)

        if self.level < card.required_level:
            raise LevelTooLowError("upgrade_card", card.required_level, self.level)

        price = card.current_price
        if self.tap_points < price:
            raise InsufficientResourcesError("tap_points", price, self.tap_points)

        remaining = card.cooldown_remaining_ms(now)
        if remaining > 0:
            raise CooldownActiveError(f"card_upgrade:{card.key}", _remaining_seconds(remaining))

        card.apply_upgrade(now)
        self._debit_tap_points(price)
        self.per_hour = self._calculate_total_per_hour()

        self.add_domain_event(
            "card.upgraded",
            {
                "user_id": self.user_id,
                "section": section,
                "card_key": card.key,
                "cost": price,
                "upgrade_count": card.upgrade_count,
                "per_hour": self.per_hour,
            },
        )
        return card

    # ========================================================================
    # CURRENCY & CONVERSION
    # ========================================================================

    def award_hourly_points(self, now: datetime) -> int:
        """Credit per_hour for every whole hour since the last award."""
        hours = hours_elapsed(elapsed_ms(self.last_hourly_award, now))
        if hours < 1:
            return 0

        awarded = self.per_hour * hours
        self.last_hourly_award = now
        self._credit_tap_points(awarded)

        self.add_domain_event(
            "hourly.awarded",
            {"user_id": self.user_id, "hours": hours, "points_awarded": awarded},
        )
        return awarded

    def convert_to_hug_points(self, raw_points: int, now: datetime) -> Decimal:
        """
        Convert raw points to hug points through the conversion ledger.

        Balances are not debited; `points_converted` records what has been
        converted and bounds what remains.

        Raises:
            ValidationError: raw_points not a whole number >= 1
            InsufficientResourcesError: raw_points above the unconverted balance
        """
        if isinstance(raw_points, bool) or not isinstance(raw_points, int):
            raise ValidationError("amount", "Conversion amount must be a whole number")
        if raw_points < MIN_CONVERSION_POINTS:
            raise ValidationError(
                "amount", f"Minimum {MIN_CONVERSION_POINTS} point required for conversion"
            )

        available = self.available_for_conversion
        if raw_points > available:
            raise InsufficientResourcesError("convertible_points", raw_points, max(available, 0))

        converted = points_to_hug_points(raw_points)
        self.hug_points = quantize_hug_points(self.hug_points + converted)
        self.points_converted += raw_points
        self.last_conversion_time = now

        self.add_domain_event(
            "hug_points.converted",
            {
                "user_id": self.user_id,
                "raw_points": raw_points,
                "hug_points": str(converted),
                "points_converted": self.points_converted,
            },
        )
        return converted

    # ========================================================================
    # DAILY CLAIM
    # ========================================================================

    def has_claimed_today(self, now: datetime) -> bool:
        if self.last_daily_claim is None:
            return False
        last_day = self.last_daily_claim.astimezone(timezone.utc).date()
        return last_day == now.astimezone(timezone.utc).date()

    def can_claim_daily(self, now: datetime) -> bool:
        if self.last_daily_claim is None:
            return True
        return (
            not self.has_claimed_today(now)
            and elapsed_ms(self.last_daily_claim, now) >= DAILY_CLAIM_MIN_INTERVAL_MS
        )

    def next_daily_claim_time(self) -> Optional[datetime]:
        if self.last_daily_claim is None:
            return None
        return self.last_daily_claim + timedelta(milliseconds=DAILY_CLAIM_MIN_INTERVAL_MS)

    def process_daily_claim(self, now: datetime) -> Dict[str, Any]:
        """
        Claim today's streak reward.

        A gap above 48 h resets the streak to 0 before the reward is chosen.

        Raises:
            AlreadyClaimedError: Already claimed on this UTC calendar day
            TooEarlyError: Less than 24 h since the previous claim
        """
        streak = self.daily_claim_streak
        if self.last_daily_claim is not None:
            if self.has_claimed_today(now):
                raise AlreadyClaimedError("daily_claim", now.astimezone(timezone.utc).date().isoformat())

            since = elapsed_ms(self.last_daily_claim, now)
            if since > DAILY_STREAK_RESET_MS:
                streak = 0
            elif since < DAILY_CLAIM_MIN_INTERVAL_MS:
                raise TooEarlyError(
                    "daily_claim", _remaining_seconds(DAILY_CLAIM_MIN_INTERVAL_MS - since)
                )

        reward = daily_claim_amount(streak)
        self.daily_claim_streak = streak + 1
        self.last_daily_claim = now
        self.next_daily_claim_amount = daily_claim_amount(self.daily_claim_streak)
        self._credit_tap_points(reward)

        self.add_domain_event(
            "daily.claimed",
            {
                "user_id": self.user_id,
                "amount": reward,
                "streak": self.daily_claim_streak,
                "next_claim_amount": self.next_daily_claim_amount,
            },
        )
        return {
            "claimed_amount": reward,
            "current_streak": self.daily_claim_streak,
            "next_claim_amount": self.next_daily_claim_amount,
            "tap_points": self.tap_points,
            "next_claim_available": self.next_daily_claim_time(),
        }

    def daily_claim_info(self, now: datetime) -> Dict[str, Any]:
        next_claim_time = self.next_daily_claim_time() or now
        until_next = max(0, elapsed_ms(now, next_claim_time))
        return {
            "can_claim": self.can_claim_daily(now),
            "has_claimed_today": self.has_claimed_today(now),
            "current_streak": self.daily_claim_streak,
            "next_claim_amount": self.next_daily_claim_amount,
            "last_claim": self.last_daily_claim,
            "next_claim_time": next_claim_time,
            "hours_until_next_claim": -(-until_next // MS_PER_HOUR),
            "streak_week": self.daily_claim_streak // DAYS_PER_STREAK_WEEK + 1,
            "day_in_week": self.daily_claim_streak % DAYS_PER_STREAK_WEEK + 1,
            "reward_tiers": {**DAILY_CLAIM_TIERS, "default": DAILY_CLAIM_MAX_REWARD},
        }

    # ========================================================================
    # AUTO-MINE
    # ========================================================================

    def _auto_mine_session_ms(self, now: datetime) -> int:
        return elapsed_ms(self.auto_mine_start_time, now)

    def _accrual_reference(self) -> Optional[datetime]:
        """Latest of session start and the last history entry."""
        reference = self.auto_mine_start_time
        if self.auto_claim_history:
            last_entry = self.auto_claim_history[-1].claim_time
            if reference is None or last_entry > reference:
                reference = last_entry
        return reference

    def _end_auto_mine(self, now: datetime) -> None:
        self.is_auto_mining = False
        self.auto_mine_start_time = None
        self.last_auto_mine_end = now
        self.add_domain_event(
            "auto_mine.ended",
            {"user_id": self.user_id, "pending_points": self.pending_auto_mine_points},
        )

    def start_auto_mine(self, duration_ms: int, now: datetime) -> Dict[str, Any]:
        """
        Start a timed passive-earning session. Pending points reset to 0.

        A session that is still running is replaced: its clock restarts and
        its unclaimed points are forfeited.

        Raises:
            ValidationError: duration_ms not a positive whole number
        """
        if isinstance(duration_ms, bool) or not isinstance(duration_ms, int) or duration_ms <= 0:
            raise ValidationError("duration", "Auto-mine duration must be a positive number of ms")

        restarted = False
        if self.is_auto_mining:
            if self._auto_mine_session_ms(now) >= self.auto_mine_duration:
                self._end_auto_mine(now)
            else:
                restarted = True

        forfeited = self.pending_auto_mine_points
        self.is_auto_mining = True
        self.auto_mine_start_time = now
        self.auto_mine_duration = duration_ms
        self.pending_auto_mine_points = 0

        self.add_domain_event(
            "auto_mine.started",
            {
                "user_id": self.user_id,
                "duration": duration_ms,
                "forfeited_points": forfeited,
                "restarted": restarted,
            },
        )
        return self.auto_mine_status(now)

    def process_auto_mine(self, now: datetime) -> int:
        """
        Lazily settle the running session.

        Ends the session once its duration has elapsed (returning 0);
        otherwise accrues one fixed increment when at least an hour has passed
        since the last history entry or session start, and returns the pending
        balance. At most one increment is added per call.
        """
        if not self.is_auto_mining:
            return 0

        if self._auto_mine_session_ms(now) >= self.auto_mine_duration:
            self._end_auto_mine(now)
            return 0

        if elapsed_ms(self._accrual_reference(), now) >= AUTO_MINE_ACCRUAL_INTERVAL_MS:
            self.pending_auto_mine_points += AUTO_MINE_POINTS_PER_HOUR
            self.auto_claim_history.append(
                AutoClaimEntry(claim_time=now, points_claimed=AUTO_MINE_POINTS_PER_HOUR)
            )
            self.add_domain_event(
                "auto_mine.accrued",
                {
                    "user_id": self.user_id,
                    "points": AUTO_MINE_POINTS_PER_HOUR,
                    "pending_points": self.pending_auto_mine_points,
                },
            )

        return self.pending_auto_mine_points

    def claim_auto_mine_rewards(self, now: datetime) -> int:
        """
        Move pending auto-mine points into tap_points.

        Raises:
            NothingToClaimError: Nothing pending
        """
        pending = self.pending_auto_mine_points
        if pending <= 0:
            raise NothingToClaimError("auto_mine_points")

        self.pending_auto_mine_points = 0
        self.auto_claim_history.append(AutoClaimEntry(claim_time=now, points_claimed=pending))
        self._credit_tap_points(pending)

        self.add_domain_event(
            "auto_mine.claimed",
            {"user_id": self.user_id, "points_claimed": pending, "tap_points": self.tap_points},
        )
        return pending

    def auto_mine_status(self, now: datetime) -> Dict[str, Any]:
        if self.is_auto_mining and self.auto_mine_start_time is not None:
            end_time: Optional[datetime] = self.auto_mine_start_time + timedelta(
                milliseconds=self.auto_mine_duration
            )
            remaining = max(0, self.auto_mine_duration - self._auto_mine_session_ms(now))
        else:
            end_time = self.last_auto_mine_end
            remaining = 0

        return {
            "is_active": self.is_auto_mining,
            "rate_per_hour": AUTO_MINE_POINTS_PER_HOUR,
            "pending_points": self.pending_auto_mine_points,
            "start_time": self.auto_mine_start_time,
            "end_time": end_time,
            "duration": self.auto_mine_duration,
            "time_remaining": remaining,
            "claim_history": [entry.to_dict() for entry in self.auto_claim_history],
        }

    # ========================================================================
    # STARTER BONUS
    # ========================================================================

    def claim_starter_bonus(self) -> int:
        """
        One-time starter credit.

        Raises:
            AlreadyClaimedError: Bonus already taken
        """
        if self.has_claimed_starter_bonus:
            raise AlreadyClaimedError("starter_bonus")

        self.has_claimed_starter_bonus = True
        self._credit_tap_points(STARTER_BONUS_POINTS)

        self.add_domain_event(
            "starter_bonus.claimed",
            {"user_id": self.user_id, "amount": STARTER_BONUS_POINTS},
        )
        return STARTER_BONUS_POINTS

    def starter_bonus_status(self) -> Dict[str, Any]:
        return {
            "has_claimed_starter_bonus": self.has_claimed_starter_bonus,
            "eligible": not self.has_claimed_starter_bonus,
            "bonus_amount": STARTER_BONUS_POINTS,
        }

    # ========================================================================
    # REFERRALS
    # ========================================================================

    def attribute_referrer(self, referrer_username: str) -> None:
        """
        Record who referred this player. Allowed exactly once.

        Raises:
            InvalidOperationError: Referrer already set, or self-referral
        """
        if self.referral is not None:
            raise InvalidOperationError("attribute_referral", "Referrer is already set")
        if referrer_username == self.username:
            raise InvalidOperationError("attribute_referral", "A player cannot refer themselves")
        self.referral = referrer_username

    def _has_referral(self, entries: List[ReferralEntry], user_id: str) -> bool:
        return any(entry.user_id == user_id for entry in entries)

    def add_direct_referral(
        self, username: str, user_id: str, is_verified: bool, now: datetime
    ) -> bool:
        """Append a direct referral edge; False when it is already recorded."""
        if self._has_referral(self.direct_referrals, user_id):
            return False
        self.direct_referrals.append(
            ReferralEntry(username=username, user_id=user_id, is_verified=is_verified, joined_at=now)
        )
        self.add_domain_event(
            "referral.attributed",
            {
                "user_id": self.user_id,
                "referred_user_id": user_id,
                "referred_username": username,
                "tier": "direct",
            },
        )
        return True

    def add_indirect_referral(
        self,
        username: str,
        user_id: str,
        referred_by: str,
        is_verified: bool,
        now: datetime,
    ) -> bool:
        """Append a second-level referral edge; False when already recorded."""
        if self._has_referral(self.indirect_referrals, user_id):
            return False
        self.indirect_referrals.append(
            ReferralEntry(
                username=username,
                user_id=user_id,
                is_verified=is_verified,
                joined_at=now,
                referred_by=referred_by,
            )
        )
        self.add_domain_event(
            "referral.attributed",
            {
                "user_id": self.user_id,
                "referred_user_id": user_id,
                "referred_username": username,
                "referred_by": referred_by,
                "tier": "indirect",
            },
        )
        return True

    def claim_referral_reward(self, referral_user_id: str, is_verified: bool) -> int:
        """
        Claim the one-time reward for a direct referral.

        The reward is credited to referral_points and to the referral entry.

        Raises:
            AlreadyClaimedError: Reward for this referral already paid
            NotEligibleError: The user is not one of this player's direct referrals
        """
        if referral_user_id in self.claimed_referrals:
            raise AlreadyClaimedError("referral_reward", referral_user_id)

        index = next(
            (i for i, entry in enumerate(self.direct_referrals) if entry.user_id == referral_user_id),
            None,
        )
        if index is None:
            raise NotEligibleError(
                "referral_reward",
                "User is not a direct referral of this player",
                referral_user_id=referral_user_id,
            )

        amount = referral_reward(is_verified)
        self.direct_referrals[index] = self.direct_referrals[index].with_points(amount)
        self.claimed_referrals.append(referral_user_id)
        self.referral_points += amount
        self._refresh_totals()

        self.add_domain_event(
            "referral.reward_claimed",
            {
                "user_id": self.user_id,
                "referral_user_id": referral_user_id,
                "is_verified": is_verified,
                "amount": amount,
            },
        )
        return amount

    def pending_referral_rewards(
        self, verified: Optional[Mapping[str, bool]] = None
    ) -> Dict[str, Any]:
        """
        Unclaimed direct referrals with the reward each would pay.

        `verified` maps referral user ids to their current verification, the
        same flag a claim is priced with. Referrals missing from it fall back
        to the flag recorded at registration.
        """
        verified = verified or {}
        unclaimed = [
            (entry, verified.get(entry.user_id, entry.is_verified))
            for entry in self.direct_referrals
            if entry.user_id not in self.claimed_referrals
        ]
        return {
            "total_referrals": len(unclaimed),
            "total_reward": sum(referral_reward(is_verified) for _, is_verified in unclaimed),
            "referrals": [
                {
                    "username": entry.username,
                    "user_id": entry.user_id,
                    "is_verified": is_verified,
                    "reward": referral_reward(is_verified),
                }
                for entry, is_verified in unclaimed
            ],
        }

    def referral_details(self) -> Dict[str, Any]:
        return {
            "direct_referrals": [entry.to_dict() for entry in self.direct_referrals],
            "indirect_referrals": [entry.to_dict() for entry in self.indirect_referrals],
            "total_referral_points": self.referral_points,
            "my_referral_code": self.username,
        }

    # ========================================================================
    # REFERRAL RANK REWARD
    # ========================================================================

    def next_referral_rank_claim_time(self) -> Optional[datetime]:
        if self.last_referral_reward_claim is None:
            return None
        return self.last_referral_reward_claim + timedelta(milliseconds=REFERRAL_RANK_COOLDOWN_MS)

    def claim_referral_rank_reward(self, rank: int, now: datetime) -> int:
        """
        Weekly reward for a top-30 referral rank (top 10 earn more).

        Raises:
            NotEligibleError: Rank outside the top 30
            CooldownActiveError: Less than 7 days since the previous claim
        """
        amount = referral_rank_reward(rank)
        if amount is None:
            raise NotEligibleError(
                "referral_rank_reward", "Must be in the top 30 referrers", current_position=rank
            )

        if self.last_referral_reward_claim is not None:
            since = elapsed_ms(self.last_referral_reward_claim, now)
            if since < REFERRAL_RANK_COOLDOWN_MS:
                raise CooldownActiveError(
                    "referral_rank_reward", _remaining_seconds(REFERRAL_RANK_COOLDOWN_MS - since)
                )

        self.last_referral_reward_claim = now
        self._credit_tap_points(amount)

        self.add_domain_event(
            "referral_rank.reward_claimed",
            {"user_id": self.user_id, "rank": rank, "amount": amount},
        )
        return amount

    def referral_rank_status(self, rank: Optional[int], now: datetime) -> Dict[str, Any]:
        amount = referral_rank_reward(rank) if rank is not None else None
        next_claim = self.next_referral_rank_claim_time()
        return {
            "eligible": amount is not None,
            "position": rank,
            "reward_amount": amount or 0,
            "can_claim": next_claim is None or now >= next_claim,
            "next_claim_time": next_claim,
        }

    # ========================================================================
    # TASKS & VOTES
    # ========================================================================

    def ensure_task_requirements(
        self, task_id: int, required_level: int, required_points: int
    ) -> None:
        """
        Raises:
            LevelTooLowError: Level below the task's required level
            NotEligibleError: total_points below the task's required points
        """
        if self.level < required_level:
            raise LevelTooLowError("complete_task", required_level, self.level)
        if self.total_points < required_points:
            raise NotEligibleError(
                "task",
                f"Requires {required_points:,} total points",
                task_id=task_id,
                required_points=required_points,
                current_points=self.total_points,
            )

    def receive_task_reward(
        self,
        task_id: int,
        *,
        required_level: int,
        required_points: int,
        reward_points: int,
        reward_hug_points: Decimal,
    ) -> None:
        """Credit a completed task after checking the player-side requirements."""
        self.ensure_task_requirements(task_id, required_level, required_points)

        hug_reward = quantize_hug_points(reward_hug_points)
        if hug_reward > 0:
            self.hug_points = quantize_hug_points(self.hug_points + hug_reward)
        self._credit_tap_points(reward_points)

        self.add_domain_event(
            "task.completed",
            {
                "user_id": self.user_id,
                "task_id": task_id,
                "reward_points": reward_points,
                "reward_hug_points": str(hug_reward),
            },
        )

    def receive_vote_reward(self, vote_event_id: int, choice_index: int, amount: int) -> None:
        self._credit_tap_points(amount)
        self.add_domain_event(
            "vote.cast",
            {
                "user_id": self.user_id,
                "vote_event_id": vote_event_id,
                "choice_index": choice_index,
                "reward": amount,
            },
        )

    # ========================================================================
    # SUMMARIES
    # ========================================================================

    def points_info(self, now: datetime) -> Dict[str, Any]:
        available = max(self.available_for_conversion, 0)
        return {
            "tap_points": self.tap_points,
            "referral_points": self.referral_points,
            "hug_points": self.hug_points,
            "total_points": self.total_points,
            "points_converted": self.points_converted,
            "available_for_conversion": {
                "raw_points": available,
                "hug_points": points_to_hug_points(available),
            },
            "minimum_conversion": {
                "raw_points": MIN_CONVERSION_POINTS,
                "hug_points": HUG_POINT_QUANTUM,
            },
            "conversion_rate": f"{POINTS_PER_HUG_POINT} points = 1 hug point",
            "per_tap": self.per_tap,
            "per_hour": self.per_hour,
            "energy": self.current_energy(now),
            "max_energy": self.max_energy,
            "level": self.level,
            "next_level_threshold": self.next_level_threshold(),
            "upgrade_costs": self.upgrade_costs(),
        }

    def upgrade_costs(self) -> Dict[str, int]:
        return {"per_tap": self.tap_power_cost, "max_energy": self.energy_limit_cost}

    def next_level_threshold(self) -> int:
        for threshold in LEVEL_THRESHOLDS:
            if self.total_points < threshold:
                return threshold
        return LEVEL_THRESHOLDS[-1]

    def status_summary(self, now: datetime) -> Dict[str, Any]:
        info = self.points_info(now)
        info.update(
            {
                "user_id": self.user_id,
                "username": self.username,
                "last_hourly_award": self.last_hourly_award,
                "daily_claim_info": {
                    "streak": self.daily_claim_streak,
                    "next_claim_amount": self.next_daily_claim_amount,
                    "can_claim": self.can_claim_daily(now),
                    "last_claim": self.last_daily_claim,
                    "streak_week": self.daily_claim_streak // DAYS_PER_STREAK_WEEK + 1,
                    "day_in_week": self.daily_claim_streak % DAYS_PER_STREAK_WEEK + 1,
                },
                "auto_mine": self.auto_mine_status(now),
                "referral_info": {
                    "direct_count": len(self.direct_referrals),
                    "indirect_count": len(self.indirect_referrals),
                    "total_referral_points": self.referral_points,
                },
                "has_claimed_starter_bonus": self.has_claimed_starter_bonus,
                "last_active": self.last_active,
            }
        )
        return info

    # ========================================================================
    # CONVERSION FROM / TO DATABASE MODELS
    # ========================================================================

    @classmethod
    def from_db(cls, record: PlayerRecord) -> Player:
        """
        Create the aggregate from its database row.

        Derived columns (total_points, per_hour) are recomputed rather than
        trusted; the stored level is kept so a change is still detected.
        """
        from warthug.core.database.base import as_utc
        from warthug.database.models.player import SECTION_COLUMNS

        cards = {
            section: {
                key: Card.from_dict(data)
                for key, data in (getattr(record, column) or {}).items()
            }
            for section, column in SECTION_COLUMNS.items()
        }

        return cls(
            PlayerIdentity(user_id=record.user_id, username=record.username),
            is_verified=record.is_verified,
            energy=record.energy,
            max_energy=record.max_energy,
            per_tap=record.per_tap,
            last_tap_time=as_utc(record.last_tap_time),
            last_energy_refill=as_utc(record.last_energy_refill),
            total_energy_refills=record.total_energy_refills,
            tap_points=record.tap_points,
            referral_points=record.referral_points,
            hug_points=Decimal(record.hug_points or 0),
            points_converted=record.points_converted,
            last_conversion_time=as_utc(record.last_conversion_time),
            level=record.level,
            last_hourly_award=as_utc(record.last_hourly_award),
            tap_power_cost=record.tap_power_cost,
            energy_limit_cost=record.energy_limit_cost,
            cards=cards,
            daily_claim_streak=record.daily_claim_streak,
            last_daily_claim=as_utc(record.last_daily_claim),
            next_daily_claim_amount=record.next_daily_claim_amount,
            is_auto_mining=record.is_auto_mining,
            auto_mine_start_time=as_utc(record.auto_mine_start_time),
            auto_mine_duration=record.auto_mine_duration,
            pending_auto_mine_points=record.pending_auto_mine_points,
            last_auto_mine_end=as_utc(record.last_auto_mine_end),
            auto_claim_history=[AutoClaimEntry.from_dict(e) for e in record.auto_claim_history or []],
            referral=record.referral,
            direct_referrals=[ReferralEntry.from_dict(e) for e in record.direct_referrals or []],
            indirect_referrals=[ReferralEntry.from_dict(e) for e in record.indirect_referrals or []],
            claimed_referrals=list(record.claimed_referrals or []),
            last_referral_reward_claim=as_utc(record.last_referral_reward_claim),
            has_claimed_starter_bonus=record.has_claimed_starter_bonus,
            is_active=record.is_active,
            last_active=as_utc(record.last_active),
            created_at=as_utc(record.created_at),
            version=record.version,
        )

    def to_db_updates(self) -> Dict[str, Any]:
        """Column values for the player row (excluding identity and version)."""
        from warthug.database.models.player import SECTION_COLUMNS

        updates: Dict[str, Any] = {
            "is_verified": self.is_verified,
            "energy": self.energy,
            "max_energy": self.max_energy,
            "per_tap": self.per_tap,
            "last_tap_time": self.last_tap_time,
            "last_energy_refill": self.last_energy_refill,
            "total_energy_refills": self.total_energy_refills,
            "tap_points": self.tap_points,
            "referral_points": self.referral_points,
            "hug_points": self.hug_points,
            "points_converted": self.points_converted,
            "last_conversion_time": self.last_conversion_time,
            "total_points": self.total_points,
            "level": self.level,
            "per_hour": self.per_hour,
            "last_hourly_award": self.last_hourly_award,
            "tap_power_cost": self.tap_power_cost,
            "energy_limit_cost": self.energy_limit_cost,
            "daily_claim_streak": self.daily_claim_streak,
            "last_daily_claim": self.last_daily_claim,
            "next_daily_claim_amount": self.next_daily_claim_amount,
            "is_auto_mining": self.is_auto_mining,
            "auto_mine_start_time": self.auto_mine_start_time,
            "auto_mine_duration": self.auto_mine_duration,
            "pending_auto_mine_points": self.pending_auto_mine_points,
            "last_auto_mine_end": self.last_auto_mine_end,
            "auto_claim_history": [entry.to_dict() for entry in self.auto_claim_history],
            "referral": self.referral,
            "direct_referrals": [entry.to_dict() for entry in self.direct_referrals],
            "indirect_referrals": [entry.to_dict() for entry in self.indirect_referrals],
            "claimed_referrals": list(self.claimed_referrals),
            "total_referrals": self.total_referrals,
            "last_referral_reward_claim": self.last_referral_reward_claim,
            "has_claimed_starter_bonus": self.has_claimed_starter_bonus,
            "is_active": self.is_active,
            "last_active": self.last_active,
        }
        for section, column in SECTION_COLUMNS.items():
            updates[column] = {
                key: card.to_dict() for key, card in self._cards[section].items()
            }
        return updates

    def __repr__(self) -> str:
        return (
            f"Player(user_id={self.user_id!r}, username={self.username!r}, "
            f"level={self.level}, total_points={self.total_points}, version={self.version})"
        )
