"""
Per-Player Operation Runner
===========================

Purpose
-------
Single-writer discipline for the Player aggregate. Every mutating economy
action runs through `PlayerOperationRunner.run()`:

    retry policy (VersionConflictError)
      └─ transaction
           load player FOR UPDATE -> action(session, player) -> CAS save
      └─ commit
    publish drained domain events

A failed action raises before commit, so the row is left exactly as loaded.
A lost CAS race retries the whole attempt from a fresh load; the action must
therefore be safe to call more than once (all domain methods are, because
each attempt starts from newly loaded state).

Design Notes
------------
- Domain events are published only after commit; a rolled-back attempt
  publishes nothing.
- Expected domain failures are logged at INFO; anything else at ERROR.
- Cross-player work (registration with its referral edges, the card
  fan-out) goes through `transact()`: every player it touches is loaded,
  changed and CAS-saved with `mutate()` inside one transaction, so either
  all of them change or none does.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Optional, Tuple, TypeVar, Union

from warthug.core.database.retry_policy import DatabaseRetryPolicy
from warthug.core.database.service import DatabaseService
from warthug.core.logging.logger import LogContext, get_logger
from warthug.modules.shared.exceptions import VersionConflictError, WarthugDomainError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from warthug.core.event.bus import EventBus
    from warthug.domain.models.base import DomainEvent
    from warthug.domain.models.player import Player
    from warthug.modules.player.repository import PlayerRepository

R = TypeVar("R")

PlayerAction = Callable[["AsyncSession", "Player"], Union[R, Awaitable[R]]]
TransactionWork = Callable[["AsyncSession", List["DomainEvent"]], Awaitable[R]]


class PlayerOperationRunner:
    """
    Runs load -> mutate -> save for one player with optimistic retries.

    Args:
        players: Player store
        event_bus: Bus receiving domain events after commit
        logger: Optional logger override
        retry_policy: Optional policy override (defaults to Config-driven)
    """

    def __init__(
        self,
        players: PlayerRepository,
        event_bus: EventBus,
        logger: Optional[Logger] = None,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
    ) -> None:
        self._players = players
        self._events = event_bus
        self.log = logger or get_logger(__name__)
        self._retry = retry_policy or DatabaseRetryPolicy.from_config((VersionConflictError,))

    @property
    def players(self) -> PlayerRepository:
        return self._players

    # ========================================================================
    # WRITE PATH
    # ========================================================================

    async def run(self, user_id: str, operation_name: str, action: PlayerAction[R]) -> R:
        """
        Apply `action` to the player atomically and publish its events.

        Raises:
            NotFoundError: No such player
            WarthugDomainError: Whatever the action raises
            VersionConflictError: Retries exhausted
        """

        async def work(session: AsyncSession, events: List[DomainEvent]) -> R:
            return await self.mutate(session, user_id, action, events)

        return await self.transact(operation_name, work, user_id=user_id)

    async def transact(
        self,
        operation_name: str,
        work: TransactionWork[R],
        user_id: Optional[str] = None,
    ) -> R:
        """
        Run `work(session, events)` in one transaction with conflict retries.

        `work` appends the domain events of every player it saves to `events`;
        they are published once the transaction has committed. A conflict on
        any player rolls the whole attempt back and starts it again.
        """

        async def attempt() -> Tuple[R, List[DomainEvent]]:
            events: List[DomainEvent] = []
            async with DatabaseService.get_transaction() as session:
                outcome = await work(session, events)
            return outcome, events

        async with LogContext(user_id=user_id, operation=operation_name):
            try:
                result, events = await self._retry.execute(
                    attempt,
                    operation_name=operation_name,
                    context={"user_id": user_id},
                )
            except WarthugDomainError as exc:
                self.log.info(
                    f"Player operation rejected: {operation_name}",
                    extra={
                        "user_id": user_id,
                        "operation": operation_name,
                        "error_type": type(exc).__name__,
                        "error_message": exc.message,
                        "details": exc.details,
                    },
                )
                raise
            except Exception as exc:
                self.log.error(
                    f"Player operation failed: {operation_name}",
                    extra={
                        "user_id": user_id,
                        "operation": operation_name,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                    exc_info=True,
                )
                raise

            await self.publish_events(events)
            return result

    async def mutate(
        self,
        session: AsyncSession,
        user_id: str,
        action: PlayerAction[R],
        events: List[DomainEvent],
    ) -> R:
        """Load one player FOR UPDATE, apply `action`, CAS-save, collect events."""
        player = await self._players.load(session, user_id, for_update=True)
        outcome = action(session, player)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        await self._players.save(session, player)
        events.extend(player.clear_domain_events())
        return outcome

    async def apply_to_all(
        self,
        operation_name: str,
        action: PlayerAction[Any],
        active_only: bool = False,
        prepare: Optional[Callable[[AsyncSession], Awaitable[None]]] = None,
    ) -> int:
        """
        Run `action` on every stored player inside a single transaction.

        `prepare(session)` runs first in the same transaction. Either every
        player is updated or none is.

        Returns the number of players processed.
        """

        async def work(session: AsyncSession, events: List[DomainEvent]) -> int:
            if prepare is not None:
                await prepare(session)
            user_ids = await self._players.list_user_ids(session, active_only=active_only)
            for user_id in user_ids:
                await self.mutate(session, user_id, action, events)
            return len(user_ids)

        processed = await self.transact(operation_name, work)

        self.log.info(
            f"Batch player operation complete: {operation_name}",
            extra={"operation": operation_name, "player_count": processed},
        )
        return processed

    # ========================================================================
    # READ PATH
    # ========================================================================

    async def read(self, user_id: str, view: Callable[[Player], R]) -> R:
        """Evaluate `view` on a freshly loaded player without writing anything."""
        async with DatabaseService.get_session() as session:
            player = await self._players.load(session, user_id)
            return view(player)

    # ========================================================================
    # EVENTS
    # ========================================================================

    async def publish_events(self, events: List[DomainEvent]) -> None:
        for event in events:
            await self._events.publish(
                event.event_name,
                {**event.payload, "occurred_at": event.occurred_at},
            )
