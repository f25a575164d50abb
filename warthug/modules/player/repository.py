"""
Player Store
============

Purpose
-------
Persistence gateway for the `Player` aggregate. Converts between the
`PlayerRecord` row and the domain model and enforces optimistic locking.

Concurrency
-----------
`save()` is a compare-and-swap:

    UPDATE players SET ..., version = version + 1
    WHERE user_id = :user_id AND version = :loaded_version

Zero matched rows means another writer committed first; the caller gets
`VersionConflictError` and must retry the whole operation from a fresh load
(PlayerOperationRunner does this). `load(..., for_update=True)` additionally
takes a row lock on databases that support it, so on PostgreSQL concurrent
writers for one player queue instead of conflicting.

Ranking
-------
Ranking queries order by the ranking column descending and then by row id,
so positions are total and stable: `position_of()` agrees with the order of
`list_players()`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import and_, func, or_, select, update

from warthug.core.logging.logger import get_logger
from warthug.database.models.player import PlayerRecord
from warthug.domain.models.player import Player
from warthug.modules.shared.base_repository import BaseRepository
from warthug.modules.shared.exceptions import NotFoundError, VersionConflictError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute


class PlayerRepository(BaseRepository[PlayerRecord]):
    """Load, insert and CAS-save players; ranking projections for leaderboards."""

    def __init__(self, logger: Optional[Logger] = None) -> None:
        super().__init__(PlayerRecord, logger or get_logger(f"{__name__}.PlayerRepository"))

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    async def _load_where(
        self, session: AsyncSession, condition: Any, for_update: bool
    ) -> Optional[PlayerRecord]:
        stmt = select(PlayerRecord).where(condition).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def load(
        self, session: AsyncSession, user_id: str, for_update: bool = False
    ) -> Player:
        """
        Load a player by external user id.

        Raises:
            NotFoundError: No player with that user id
        """
        record = await self._load_where(session, PlayerRecord.user_id == user_id, for_update)
        if record is None:
            raise NotFoundError("Player", user_id)

        self.log.debug(
            "PlayerRepository.load",
            extra={"user_id": user_id, "for_update": for_update, "version": record.version},
        )
        return Player.from_db(record)

    async def load_by_username(
        self, session: AsyncSession, username: str, for_update: bool = False
    ) -> Player:
        record = await self._load_where(session, PlayerRecord.username == username, for_update)
        if record is None:
            raise NotFoundError("Player", username)
        return Player.from_db(record)

    async def user_id_taken(self, session: AsyncSession, user_id: str) -> bool:
        return await self.exists(session, PlayerRecord.user_id == user_id)

    async def username_taken(self, session: AsyncSession, username: str) -> bool:
        return await self.exists(session, PlayerRecord.username == username)

    # ========================================================================
    # WRITES
    # ========================================================================

    async def insert(self, session: AsyncSession, player: Player) -> PlayerRecord:
        """Insert a newly registered player at version 0."""
        record = PlayerRecord(
            user_id=player.user_id,
            username=player.username,
            version=0,
            **player.to_db_updates(),
        )
        if player.created_at is not None:
            record.created_at = player.created_at
        self.add(session, record)
        await session.flush()
        player.version = 0

        self.log.debug(
            "PlayerRepository.insert",
            extra={"user_id": player.user_id, "username": player.username},
        )
        return record

    async def save(self, session: AsyncSession, player: Player) -> None:
        """
        Compare-and-swap save of every mutable column.

        On success the aggregate's version is advanced to match the row.

        Raises:
            VersionConflictError: The row is no longer at the loaded version
        """
        expected = player.version
        stmt = (
            update(PlayerRecord)
            .where(PlayerRecord.user_id == player.user_id, PlayerRecord.version == expected)
            .values(**player.to_db_updates(), version=expected + 1)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)

        if result.rowcount != 1:
            self.log.warning(
                "PlayerRepository.save: version conflict",
                extra={"user_id": player.user_id, "expected_version": expected},
            )
            raise VersionConflictError(player.user_id, expected)

        player.version = expected + 1
        self.log.debug(
            "PlayerRepository.save",
            extra={"user_id": player.user_id, "version": player.version},
        )

    # ========================================================================
    # PROJECTIONS
    # ========================================================================

    async def list_user_ids(self, session: AsyncSession, active_only: bool = False) -> List[str]:
        stmt = select(PlayerRecord.user_id).order_by(PlayerRecord.id)
        if active_only:
            stmt = stmt.where(PlayerRecord.is_active.is_(True))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def verification_flags(
        self, session: AsyncSession, user_ids: List[str]
    ) -> Dict[str, bool]:
        """Current `is_verified` for each listed player that still exists."""
        if not user_ids:
            return {}
        result = await session.execute(
            select(PlayerRecord.user_id, PlayerRecord.is_verified).where(
                PlayerRecord.user_id.in_(user_ids)
            )
        )
        return {user_id: bool(is_verified) for user_id, is_verified in result.all()}

    async def list_players(
        self,
        session: AsyncSession,
        sort_column: InstrumentedAttribute[Any],
        limit: int,
        offset: int = 0,
        active_only: bool = False,
    ) -> List[PlayerRecord]:
        """Players ordered by `sort_column` descending, ties by registration order."""
        conditions = [PlayerRecord.is_active.is_(True)] if active_only else []
        return await self.find_many_where(
            session,
            *conditions,
            order_by=[sort_column.desc(), PlayerRecord.id.asc()],
            limit=limit,
            offset=offset,
        )

    async def position_of(
        self,
        session: AsyncSession,
        user_id: str,
        sort_column: InstrumentedAttribute[Any],
        active_only: bool = False,
    ) -> Optional[int]:
        """1-based position of a player in the `list_players()` order, None if absent."""
        row = (
            await session.execute(
                select(PlayerRecord.id, sort_column).where(PlayerRecord.user_id == user_id)
            )
        ).one_or_none()
        if row is None:
            return None
        record_id, value = row

        ahead = or_(
            sort_column > value,
            and_(sort_column == value, PlayerRecord.id < record_id),
        )
        stmt = select(func.count()).select_from(PlayerRecord).where(ahead)
        if active_only:
            stmt = stmt.where(PlayerRecord.is_active.is_(True))
        ahead_count = (await session.execute(stmt)).scalar_one()
        return int(ahead_count) + 1

    async def count_players(self, session: AsyncSession, active_only: bool = False) -> int:
        if active_only:
            return await self.count(session, PlayerRecord.is_active.is_(True))
        return await self.count(session)
