"""
Card Service
============

Purpose
-------
Per-player card upgrades and computed card views.

Domain
------
Every card follows three geometric curves in its upgrade count (price,
per-hour output, cooldown minutes). An upgrade is gated, in order, by
existence, required level, price and cooldown, then raises the player's
aggregate `per_hour`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from warthug.modules.shared.base_service import BaseService
from warthug.modules.shared.constants import CARD_SECTIONS
from warthug.modules.shared.exceptions import NotFoundError
from warthug.modules.shared.validators import InputValidator

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from warthug.core.event.bus import EventBus
    from warthug.domain.models.player import Player
    from warthug.modules.player.runner import PlayerOperationRunner
    from warthug.modules.shared.base_service import Clock


class CardService(BaseService):
    """
    Public Methods
    --------------
    - upgrade_card() -> Buy the next upgrade of a card
    - get_card_info() -> Computed info for one card
    - list_cards() -> Computed info for a section, or all sections
    """

    def __init__(
        self,
        runner: PlayerOperationRunner,
        config: Any,
        event_bus: EventBus,
        logger: Logger,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(config, event_bus, logger, clock)
        self._runner = runner

    @staticmethod
    def _section(section: Any) -> str:
        return InputValidator.validate_choice(section, "section", CARD_SECTIONS)

    async def upgrade_card(self, user_id: str, section: str, card_name: str) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: Unknown section
            NotFoundError: No such card
            LevelTooLowError: Player level below the card's requirement
            InsufficientResourcesError: tap_points below the current price
            CooldownActiveError: Card still cooling down
        """
        section = self._section(section)
        card_name = InputValidator.validate_string(card_name, "card_name")
        now = self.now()
        self.log_operation("upgrade_card", user_id=user_id, section=section, card=card_name)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            card = player.upgrade_card(section, card_name, now)
            player.touch(now)
            return {
                "section": section,
                "card": card.info(now, player.level, player.tap_points),
                "tap_points": player.tap_points,
                "per_hour": player.per_hour,
            }

        return await self._runner.run(user_id, "cards.upgrade", action)

    async def get_card_info(self, user_id: str, section: str, card_name: str) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: No such card
        """
        section = self._section(section)
        now = self.now()
        info = await self._runner.read(
            user_id, lambda player: player.card_info(section, card_name, now)
        )
        if info is None:
            raise NotFoundError("Card", f"{section}/{card_name}")
        return info

    async def list_cards(
        self, user_id: str, section: Optional[str] = None
    ) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Computed info keyed by section then card key."""
        now = self.now()
        cards = await self._runner.read(user_id, lambda player: player.cards_info(now))
        if section is None:
            return cards
        section = self._section(section)
        return {section: cards[section]}
