"""
Energy Service
==============

Purpose
-------
Tap, refill, and the two player-level upgrades (tap power, energy limit).

Domain
------
- Energy regenerates lazily at `per_tap` per second up to `max_energy`
- A tap spends 1 energy for `per_tap` points
- Refill restores full energy at most once every five minutes
- Each upgrade costs its current price, which then doubles

All rules live on the Player aggregate; this service adds logging, the
clock and the per-player runner.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from warthug.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from warthug.core.event.bus import EventBus
    from warthug.domain.models.player import Player
    from warthug.modules.player.runner import PlayerOperationRunner
    from warthug.modules.shared.base_service import Clock


class EnergyService(BaseService):
    """
    Public Methods
    --------------
    - tap() -> Spend 1 energy for per_tap points
    - refill_energy() -> Restore energy to max (5 min cooldown)
    - upgrade_tap_power() -> +1 per_tap, cost doubles
    - upgrade_energy_limit() -> +500 max_energy, cost doubles
    - get_energy() -> Current regenerated energy
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

    async def tap(self, user_id: str) -> Dict[str, Any]:
        """
        Raises:
            InsufficientResourcesError: Regenerated energy is 0
        """
        now = self.now()
        self.log_operation("tap", user_id=user_id)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            earned = player.tap(now)
            player.touch(now)
            return {
                "points_earned": earned,
                "energy": player.energy,
                "max_energy": player.max_energy,
                "tap_points": player.tap_points,
                "total_points": player.total_points,
                "level": player.level,
            }

        return await self._runner.run(user_id, "energy.tap", action)

    async def refill_energy(self, user_id: str) -> Dict[str, Any]:
        """
        Raises:
            CooldownActiveError: Within five minutes of the last refill
        """
        now = self.now()
        self.log_operation("refill_energy", user_id=user_id)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            energy = player.refill_energy(now)
            player.touch(now)
            return {
                "energy": energy,
                "max_energy": player.max_energy,
                "total_energy_refills": player.total_energy_refills,
                "last_energy_refill": player.last_energy_refill,
            }

        return await self._runner.run(user_id, "energy.refill", action)

    async def upgrade_tap_power(self, user_id: str) -> Dict[str, Any]:
        now = self.now()
        self.log_operation("upgrade_tap_power", user_id=user_id)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            result = player.upgrade_tap_power()
            player.touch(now)
            return {**result, "tap_points": player.tap_points, "upgrade_costs": player.upgrade_costs()}

        return await self._runner.run(user_id, "upgrade.tap_power", action)

    async def upgrade_energy_limit(self, user_id: str) -> Dict[str, Any]:
        now = self.now()
        self.log_operation("upgrade_energy_limit", user_id=user_id)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            result = player.upgrade_energy_limit()
            player.touch(now)
            return {**result, "tap_points": player.tap_points, "upgrade_costs": player.upgrade_costs()}

        return await self._runner.run(user_id, "upgrade.energy_limit", action)

    async def get_energy(self, user_id: str) -> Dict[str, Any]:
        now = self.now()
        return await self._runner.read(
            user_id,
            lambda player: {
                "energy": player.current_energy(now),
                "max_energy": player.max_energy,
                "per_tap": player.per_tap,
            },
        )
