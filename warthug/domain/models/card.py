"""
Card domain model.

Purpose
-------
A production card owned by one player. Each card follows three geometric
curves driven by its upgrade count:

    price(n)    = floor(base_price      * price_increase_rate^n)
    per_hour(n) = floor(per_hour_increase * per_hour_increase_rate^n)   (0 while n == 0)
    cooldown(n) = floor(base_cooldown   * cooldown_increase_rate^n)     (minutes)

The current values are derived from `upgrade_count` on every read and are
never stored independently, so they can never drift from the curve.

Cards are cloned from catalog templates into every player's collection;
per-player progress (upgrade count, last upgrade time, unlock flag) is
isolated to that player's copy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from warthug.domain.models.base import from_iso, to_iso
from warthug.modules.shared.constants import MS_PER_MINUTE
from warthug.modules.shared.formulas import geometric_value


@dataclass
class Card:
    """
    A player's copy of a catalog card.

    Attributes
    ----------
    key : str
        Normalised card key (lowercase, whitespace runs replaced by "_")
    base_price, per_hour_increase, base_cooldown : int
        Curve bases; base_cooldown is in minutes
    price_increase_rate, per_hour_increase_rate, cooldown_increase_rate : Decimal
        Curve growth rates, each >= 1
    required_level : int
        Minimum player level to upgrade the card
    upgrade_count : int
        Upgrades applied so far
    last_upgrade_time : Optional[datetime]
        Instant of the last upgrade, None before the first
    is_unlocked : bool
        True once the card has been upgraded at least once
    """

    key: str
    name: str
    base_price: int
    price_increase_rate: Decimal
    per_hour_increase: int
    per_hour_increase_rate: Decimal
    base_cooldown: int
    cooldown_increase_rate: Decimal
    required_level: int
    image_url: str = ""
    upgrade_count: int = 0
    last_upgrade_time: Optional[datetime] = field(default=None)
    is_unlocked: bool = False

    # ------------------------------------------------------------------ #
    # Curves
    # ------------------------------------------------------------------ #

    def price_at(self, upgrades: int) -> int:
        return geometric_value(self.base_price, self.price_increase_rate, upgrades)

    def per_hour_at(self, upgrades: int) -> int:
        if upgrades <= 0:
            return 0
        return geometric_value(self.per_hour_increase, self.per_hour_increase_rate, upgrades)

    def cooldown_at(self, upgrades: int) -> int:
        return geometric_value(self.base_cooldown, self.cooldown_increase_rate, upgrades)

    @property
    def current_price(self) -> int:
        return self.price_at(self.upgrade_count)

    @property
    def current_per_hour(self) -> int:
        return self.per_hour_at(self.upgrade_count)

    @property
    def current_cooldown(self) -> int:
        """Cooldown in minutes that applies after the most recent upgrade."""
        return self.cooldown_at(self.upgrade_count)

    # ------------------------------------------------------------------ #
    # Cooldown
    # ------------------------------------------------------------------ #

    def cooldown_ends(self) -> Optional[datetime]:
        if self.last_upgrade_time is None:
            return None
        return self.last_upgrade_time + timedelta(milliseconds=self.current_cooldown * MS_PER_MINUTE)

    def cooldown_remaining_ms(self, now: datetime) -> int:
        ends = self.cooldown_ends()
        if ends is None:
            return 0
        return max(0, (ends - now) // timedelta(milliseconds=1))

    # ------------------------------------------------------------------ #
    # Mutation
    # ------------------------------------------------------------------ #

    def apply_upgrade(self, now: datetime) -> None:
        """Advance the curves by one step. Preconditions are checked by Player."""
        self.upgrade_count += 1
        self.last_upgrade_time = now
        self.is_unlocked = True

    # ------------------------------------------------------------------ #
    # Presentation
    # ------------------------------------------------------------------ #

    def info(self, now: datetime, player_level: int, tap_points: int) -> Dict[str, Any]:
        """Card state plus next-step projections and upgrade availability."""
        remaining = self.cooldown_remaining_ms(now)
        next_count = self.upgrade_count + 1
        return {
            **self.to_dict(),
            "next_price": self.price_at(next_count),
            "next_per_hour": self.per_hour_at(next_count),
            "next_cooldown": self.cooldown_at(next_count),
            "cooldown_remaining": remaining,
            "cooldown_ends": self.cooldown_ends(),
            "time_to_next_upgrade": -(-remaining // MS_PER_MINUTE),
            "can_upgrade": (
                remaining == 0
                and player_level >= self.required_level
                and tap_points >= self.current_price
            ),
        }

    # ------------------------------------------------------------------ #
    # Serialisation (JSON column)
    # ------------------------------------------------------------------ #

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "base_price": self.base_price,
            "price_increase_rate": str(self.price_increase_rate),
            "per_hour_increase": self.per_hour_increase,
            "per_hour_increase_rate": str(self.per_hour_increase_rate),
            "base_cooldown": self.base_cooldown,
            "cooldown_increase_rate": str(self.cooldown_increase_rate),
            "required_level": self.required_level,
            "image_url": self.image_url,
            "upgrade_count": self.upgrade_count,
            "last_upgrade_time": to_iso(self.last_upgrade_time),
            "is_unlocked": self.is_unlocked,
            "current_price": self.current_price,
            "current_per_hour": self.current_per_hour,
            "current_cooldown": self.current_cooldown,
        }

    @classmethod
    def from_template(cls, template: Any) -> Card:
        """Fresh, never-upgraded card from a catalog template row."""
        return cls(
            key=template.key,
            name=template.name,
            base_price=int(template.base_price),
            price_increase_rate=Decimal(str(template.price_increase_rate)),
            per_hour_increase=int(template.per_hour_increase),
            per_hour_increase_rate=Decimal(str(template.per_hour_increase_rate)),
            base_cooldown=int(template.base_cooldown),
            cooldown_increase_rate=Decimal(str(template.cooldown_increase_rate)),
            required_level=int(template.required_level),
            image_url=template.image_url or "",
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Card:
        """Rebuild a card from its stored form; derived values are recomputed."""
        return cls(
            key=data["key"],
            name=data["name"],
            base_price=int(data["base_price"]),
            price_increase_rate=Decimal(str(data["price_increase_rate"])),
            per_hour_increase=int(data["per_hour_increase"]),
            per_hour_increase_rate=Decimal(str(data["per_hour_increase_rate"])),
            base_cooldown=int(data["base_cooldown"]),
            cooldown_increase_rate=Decimal(str(data["cooldown_increase_rate"])),
            required_level=int(data["required_level"]),
            image_url=data.get("image_url") or "",
            upgrade_count=int(data.get("upgrade_count", 0)),
            last_upgrade_time=from_iso(data.get("last_upgrade_time")),
            is_unlocked=bool(data.get("is_unlocked", False)),
        )
