"""
Referral Service
================

Purpose
-------
Claim-based referral payouts and referral views.

Domain
------
- A referrer claims each direct referral exactly once
- The payout is 50,000 when the referred user is currently verified,
  20,000 otherwise, credited to referral_points
- `claimed_referrals` is the at-most-once guard per referral edge

Attribution itself happens at registration (PlayerService).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from warthug.core.database.service import DatabaseService
from warthug.modules.shared.base_service import BaseService
from warthug.modules.shared.validators import InputValidator

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from warthug.core.event.bus import EventBus
    from warthug.domain.models.player import Player
    from warthug.modules.player.runner import PlayerOperationRunner
    from warthug.modules.shared.base_service import Clock


class ReferralService(BaseService):
    """
    Public Methods
    --------------
    - claim_referral_reward() -> One-time payout for a direct referral
    - get_pending_referral_rewards() -> Unclaimed direct referrals and amounts
    - get_referral_details() -> Direct / indirect lists and referral code
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

    async def claim_referral_reward(self, user_id: str, referral_user_id: str) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Claimant or referred user does not exist
            AlreadyClaimedError: Reward for this referral already paid
            NotEligibleError: Referred user is not a direct referral
        """
        referral_user_id = InputValidator.validate_string(referral_user_id, "referral_user_id")
        now = self.now()
        self.log_operation(
            "claim_referral_reward", user_id=user_id, referral_user_id=referral_user_id
        )

        async def action(session: AsyncSession, player: Player) -> Dict[str, Any]:
            referred = await self._runner.players.load(session, referral_user_id)
            amount = player.claim_referral_reward(referral_user_id, referred.is_verified)
            player.touch(now)
            return {
                "reward_amount": amount,
                "referral_points": player.referral_points,
                "total_points": player.total_points,
            }

        return await self._runner.run(user_id, "referral.claim_reward", action)

    async def get_pending_referral_rewards(self, user_id: str) -> Dict[str, Any]:
        """Unclaimed direct referrals, priced with each referral's current verification."""
        async with DatabaseService.get_session() as session:
            player = await self._runner.players.load(session, user_id)
            verified = await self._runner.players.verification_flags(
                session, [entry.user_id for entry in player.direct_referrals]
            )
        return player.pending_referral_rewards(verified)

    async def get_referral_details(self, user_id: str) -> Dict[str, Any]:
        return await self._runner.read(user_id, lambda player: player.referral_details())
