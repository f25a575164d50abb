"""
Leaderboard Service
===================

Purpose
-------
Read-only ranking projection over the player store.

Domain
------
- Five boards: points (total_points), hugPoints, referrals (direct +
  indirect), hourly (per_hour), streak (daily_claim_streak)
- Entries are ordered by the board column descending, ties by
  registration order; positions are 1-based and total
- The referral board also drives eligibility for the weekly referral-rank
  reward (RewardsService)

Design Notes
------------
- Queries run on the denormalised ranking columns of `players`; nothing is
  aggregated in process.
- No snapshots are stored; every call reflects committed state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Final, Optional

from warthug.core.database.service import DatabaseService
from warthug.database.models.player import PlayerRecord
from warthug.modules.shared.base_service import BaseService
from warthug.modules.shared.constants import LEADERBOARD_TYPES
from warthug.modules.shared.validators import InputValidator

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from warthug.core.event.bus import EventBus
    from warthug.modules.player.repository import PlayerRepository
    from warthug.modules.shared.base_service import Clock


LEADERBOARD_COLUMNS: Final[Dict[str, Any]] = {
    "points": PlayerRecord.total_points,
    "hugPoints": PlayerRecord.hug_points,
    "referrals": PlayerRecord.total_referrals,
    "hourly": PlayerRecord.per_hour,
    "streak": PlayerRecord.daily_claim_streak,
}

DEFAULT_LEADERBOARD_LIMIT: Final[int] = 50


class LeaderboardService(BaseService):
    """
    Public Methods
    --------------
    - get_leaderboard() -> Top entries, caller position, participant count
    - position() -> A player's position on one board (session-scoped)
    """

    def __init__(
        self,
        players: PlayerRepository,
        config: Any,
        event_bus: EventBus,
        logger: Logger,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(config, event_bus, logger, clock)
        self._players = players

    @staticmethod
    def _board(board_type: Any) -> str:
        return InputValidator.validate_choice(board_type, "type", LEADERBOARD_TYPES)

    @staticmethod
    def _entry(position: int, record: PlayerRecord) -> Dict[str, Any]:
        return {
            "position": position,
            "user_id": record.user_id,
            "username": record.username,
            "level": record.level,
            "per_tap": record.per_tap,
            "per_hour": record.per_hour,
            "hug_points": record.hug_points,
            "tap_points": record.tap_points,
            "referral_points": record.referral_points,
            "total_points": record.total_points,
            "total_referrals": record.total_referrals,
            "daily_claim_streak": record.daily_claim_streak,
        }

    async def position(
        self, session: AsyncSession, user_id: str, board_type: str
    ) -> Optional[int]:
        column = LEADERBOARD_COLUMNS[self._board(board_type)]
        return await self._players.position_of(session, user_id, column)

    async def get_leaderboard(
        self,
        board_type: str = "points",
        limit: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: Unknown board type or limit outside 1..LEADERBOARD_MAX_LIMIT
        """
        board = self._board(board_type)
        max_limit = int(self.get_config("LEADERBOARD_MAX_LIMIT", 100))
        limit = InputValidator.validate_positive_integer(
            limit if limit is not None else min(DEFAULT_LEADERBOARD_LIMIT, max_limit),
            "limit",
            max_value=max_limit,
        )
        column = LEADERBOARD_COLUMNS[board]

        self.log_operation("get_leaderboard", type=board, limit=limit, user_id=user_id)

        async with DatabaseService.get_session() as session:
            records = await self._players.list_players(session, column, limit)
            total = await self._players.count_players(session)

            user_position: Optional[Dict[str, Any]] = None
            if user_id is not None:
                position = await self._players.position_of(session, user_id, column)
                if position is not None:
                    record = await self._players.find_one_where(
                        session, PlayerRecord.user_id == user_id
                    )
                    if record is not None:
                        user_position = self._entry(position, record)

        return {
            "type": board,
            "leaderboard": [self._entry(i, record) for i, record in enumerate(records, start=1)],
            "user_position": user_position,
            "total": total,
        }
