"""
Currency Service
================

Purpose
-------
Passive hourly production and hug-point conversion.

Domain
------
- Hourly award: `per_hour` for every whole hour since the last award
- Conversion: 10,000 raw points -> 1 hug point, bounded by the
  `points_converted` ledger rather than debiting balances
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from warthug.modules.shared.base_service import BaseService
from warthug.modules.shared.validators import InputValidator

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from warthug.core.event.bus import EventBus
    from warthug.domain.models.player import Player
    from warthug.modules.player.runner import PlayerOperationRunner
    from warthug.modules.shared.base_service import Clock


class CurrencyService(BaseService):
    """
    Public Methods
    --------------
    - award_hourly_points() -> Credit elapsed whole hours of production
    - convert_to_hug_points() -> Ledger-based conversion
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

    async def award_hourly_points(self, user_id: str) -> Dict[str, Any]:
        """Returns points_awarded 0 when less than an hour has elapsed."""
        now = self.now()
        self.log_operation("award_hourly_points", user_id=user_id)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            awarded = player.award_hourly_points(now)
            return {
                "points_awarded": awarded,
                "per_hour": player.per_hour,
                "tap_points": player.tap_points,
                "last_hourly_award": player.last_hourly_award,
            }

        return await self._runner.run(user_id, "currency.award_hourly", action)

    async def convert_to_hug_points(self, user_id: str, amount: Any) -> Dict[str, Any]:
        """
        Convert `amount` raw points.

        Raises:
            ValidationError: amount is not a whole number >= 1
            InsufficientResourcesError: amount exceeds the unconverted balance
        """
        raw_points = InputValidator.validate_positive_integer(amount, "amount")
        now = self.now()
        self.log_operation("convert_to_hug_points", user_id=user_id, amount=raw_points)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            converted = player.convert_to_hug_points(raw_points, now)
            player.touch(now)
            return {
                "converted_points": raw_points,
                "received_hug_points": converted,
                "hug_points": player.hug_points,
                "points_converted": player.points_converted,
                "available_for_conversion": player.available_for_conversion,
            }

        return await self._runner.run(user_id, "currency.convert", action)
