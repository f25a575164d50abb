"""
Rewards Service
===============

Purpose
-------
Time-gated rewards: daily streak claims, auto-mine sessions, the one-time
starter bonus and the weekly referral-rank reward.

Domain
------
- Daily claim: once per UTC day and at least 24 h apart; a gap over 48 h
  resets the streak; the reward tier is chosen by streak week
- Auto-mine: a timed session accruing a fixed 500 points per elapsed hour,
  settled lazily whenever the session is inspected
- Starter bonus: 10,000 points, once
- Referral rank: top 30 on the referral board, 100,000 (top 10) or 50,000,
  at most once every 7 days

Nothing here runs on a timer; every effect is computed from stored instants
and the injected clock at request time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from warthug.core.database.service import DatabaseService
from warthug.modules.shared.base_service import BaseService
from warthug.modules.shared.exceptions import NotEligibleError
from warthug.modules.shared.validators import InputValidator

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from warthug.core.event.bus import EventBus
    from warthug.domain.models.player import Player
    from warthug.modules.leaderboard.service import LeaderboardService
    from warthug.modules.player.runner import PlayerOperationRunner
    from warthug.modules.shared.base_service import Clock


class RewardsService(BaseService):
    """
    Public Methods
    --------------
    - process_daily_claim() / get_daily_claim_info()
    - start_auto_mine() / process_auto_mine() / claim_auto_mine_rewards() /
      get_auto_mine_status()
    - claim_starter_bonus() / get_starter_bonus_status()
    - claim_referral_rank_reward() / get_referral_rank_status()
    """

    def __init__(
        self,
        runner: PlayerOperationRunner,
        leaderboard: LeaderboardService,
        config: Any,
        event_bus: EventBus,
        logger: Logger,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(config, event_bus, logger, clock)
        self._runner = runner
        self._leaderboard = leaderboard

    # ========================================================================
    # DAILY CLAIM
    # ========================================================================

    async def process_daily_claim(self, user_id: str) -> Dict[str, Any]:
        """
        Raises:
            AlreadyClaimedError: Already claimed this UTC day
            TooEarlyError: Less than 24 h since the last claim
        """
        now = self.now()
        self.log_operation("process_daily_claim", user_id=user_id)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            result = player.process_daily_claim(now)
            player.touch(now)
            return result

        return await self._runner.run(user_id, "rewards.daily_claim", action)

    async def get_daily_claim_info(self, user_id: str) -> Dict[str, Any]:
        now = self.now()
        return await self._runner.read(user_id, lambda player: player.daily_claim_info(now))

    # ========================================================================
    # AUTO-MINE
    # ========================================================================

    async def start_auto_mine(
        self, user_id: str, duration_ms: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Start a session of `duration_ms` (default AUTO_MINE_DEFAULT_DURATION_MS).

        A running session is restarted and its pending points are forfeited.

        Raises:
            ValidationError: Duration is not a positive whole number
        """
        duration = InputValidator.validate_positive_integer(
            duration_ms
            if duration_ms is not None
            else self.get_config("AUTO_MINE_DEFAULT_DURATION_MS", 7_200_000),
            "duration",
        )
        now = self.now()
        self.log_operation("start_auto_mine", user_id=user_id, duration=duration)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            status = player.start_auto_mine(duration, now)
            player.touch(now)
            return status

        return await self._runner.run(user_id, "rewards.auto_mine_start", action)

    async def process_auto_mine(self, user_id: str) -> Dict[str, Any]:
        """Settle the running session; returns the pending balance and status."""
        now = self.now()
        self.log_operation("process_auto_mine", user_id=user_id)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            pending = player.process_auto_mine(now)
            return {"pending_points": pending, "status": player.auto_mine_status(now)}

        return await self._runner.run(user_id, "rewards.auto_mine_process", action)

    async def claim_auto_mine_rewards(self, user_id: str) -> Dict[str, Any]:
        """
        Raises:
            NothingToClaimError: No pending auto-mine points
        """
        now = self.now()
        self.log_operation("claim_auto_mine_rewards", user_id=user_id)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            claimed = player.claim_auto_mine_rewards(now)
            player.touch(now)
            return {
                "points_claimed": claimed,
                "tap_points": player.tap_points,
                "auto_mine": player.auto_mine_status(now),
            }

        return await self._runner.run(user_id, "rewards.auto_mine_claim", action)

    async def get_auto_mine_status(self, user_id: str) -> Dict[str, Any]:
        now = self.now()
        return await self._runner.read(user_id, lambda player: player.auto_mine_status(now))

    # ========================================================================
    # STARTER BONUS
    # ========================================================================

    async def claim_starter_bonus(self, user_id: str) -> Dict[str, Any]:
        """
        Raises:
            AlreadyClaimedError: Bonus already taken
        """
        now = self.now()
        self.log_operation("claim_starter_bonus", user_id=user_id)

        def action(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            amount = player.claim_starter_bonus()
            player.touch(now)
            return {"bonus_amount": amount, "tap_points": player.tap_points}

        return await self._runner.run(user_id, "rewards.starter_bonus", action)

    async def get_starter_bonus_status(self, user_id: str) -> Dict[str, Any]:
        return await self._runner.read(user_id, lambda player: player.starter_bonus_status())

    # ========================================================================
    # REFERRAL RANK
    # ========================================================================

    async def claim_referral_rank_reward(self, user_id: str) -> Dict[str, Any]:
        """
        Raises:
            NotEligibleError: Not in the top 30 referrers
            CooldownActiveError: Claimed within the last 7 days
        """
        now = self.now()
        self.log_operation("claim_referral_rank_reward", user_id=user_id)

        async def action(session: AsyncSession, player: Player) -> Dict[str, Any]:
            rank = await self._leaderboard.position(session, player.user_id, "referrals")
            if rank is None:
                raise NotEligibleError("referral_rank_reward", "Player is not ranked")
            amount = player.claim_referral_rank_reward(rank, now)
            player.touch(now)
            return {
                "reward_amount": amount,
                "current_position": rank,
                "tap_points": player.tap_points,
                "next_claim_time": player.next_referral_rank_claim_time(),
            }

        return await self._runner.run(user_id, "rewards.referral_rank", action)

    async def get_referral_rank_status(self, user_id: str) -> Dict[str, Any]:
        now = self.now()
        async with DatabaseService.get_session() as session:
            player = await self._runner.players.load(session, user_id)
            rank = await self._leaderboard.position(session, user_id, "referrals")
        return player.referral_rank_status(rank, now)
