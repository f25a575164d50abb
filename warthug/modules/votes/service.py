"""
Vote Service
============

Purpose
-------
Active vote listing, ballot casting and results.

Domain
------
- An event accepts ballots while active and before `end_date`
- One ballot per user per event; each ballot pays `reward_amount` to the
  voter's tap points
- Results are counted from ballots: votes and percentage (2 dp) per choice
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from warthug.core.database.base import as_utc
from warthug.core.database.service import DatabaseService
from warthug.database.models.catalog import VoteBallot
from warthug.modules.shared.base_service import BaseService
from warthug.modules.shared.exceptions import (
    AlreadyClaimedError,
    InvalidOperationError,
    ValidationError,
)
from warthug.modules.shared.validators import InputValidator

if TYPE_CHECKING:
    from datetime import datetime
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from warthug.core.event.bus import EventBus
    from warthug.database.models.catalog import VoteEvent
    from warthug.domain.models.player import Player
    from warthug.modules.catalog.repository import CatalogRepository
    from warthug.modules.player.runner import PlayerOperationRunner
    from warthug.modules.shared.base_service import Clock


PERCENT_QUANTUM = Decimal("0.01")


def vote_event_to_dict(event: VoteEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "choices": list(event.choices or []),
        "reward_amount": event.reward_amount,
        "start_date": as_utc(event.start_date),
        "end_date": as_utc(event.end_date),
        "is_active": event.is_active,
    }


def is_vote_open(event: VoteEvent, now: datetime) -> bool:
    end_date = as_utc(event.end_date)
    return event.is_active and end_date is not None and end_date > now


class VoteService(BaseService):
    """
    Public Methods
    --------------
    - list_active_vote_events() -> Open events
    - cast_vote() -> Record a ballot and pay the reward
    - get_vote_results() -> Per-choice tallies
    """

    def __init__(
        self,
        runner: PlayerOperationRunner,
        catalog: CatalogRepository,
        config: Any,
        event_bus: EventBus,
        logger: Logger,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(config, event_bus, logger, clock)
        self._runner = runner
        self._catalog = catalog

    async def list_active_vote_events(self) -> List[Dict[str, Any]]:
        now = self.now()
        async with DatabaseService.get_session() as session:
            events = await self._catalog.list_active_vote_events(session, now)
            return [vote_event_to_dict(event) for event in events]

    async def cast_vote(
        self, user_id: str, vote_event_id: int, choice_index: int
    ) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Event or player does not exist
            InvalidOperationError: Event inactive or ended
            ValidationError: choice_index out of range
            AlreadyClaimedError: The player already voted in this event
        """
        vote_event_id = InputValidator.validate_positive_integer(vote_event_id, "vote_event_id")
        choice_index = InputValidator.validate_non_negative_integer(choice_index, "choice_index")
        now = self.now()
        self.log_operation(
            "cast_vote", user_id=user_id, vote_event_id=vote_event_id, choice_index=choice_index
        )

        async def action(session: AsyncSession, player: Player) -> Dict[str, Any]:
            event = await self._catalog.get_vote_event(session, vote_event_id, for_update=True)
            if not is_vote_open(event, now):
                raise InvalidOperationError("cast_vote", "Voting event has ended")

            choices = event.choices or []
            if choice_index >= len(choices):
                raise ValidationError(
                    "choice_index", f"Choice {choice_index} does not exist ({len(choices)} choices)"
                )

            if await self._catalog.has_voted(session, event.id, player.user_id):
                raise AlreadyClaimedError("vote", event.id)

            try:
                await self._catalog.add_ballot(
                    session,
                    VoteBallot(
                        vote_event_id=event.id,
                        user_id=player.user_id,
                        choice_index=choice_index,
                        voted_at=now,
                    ),
                )
            except IntegrityError as exc:
                raise AlreadyClaimedError("vote", event.id) from exc

            player.receive_vote_reward(event.id, choice_index, event.reward_amount)
            player.touch(now)
            counts = await self._catalog.vote_counts(session, event.id)

            return {
                "points_awarded": event.reward_amount,
                "tap_points": player.tap_points,
                "vote_event": {
                    "title": event.title,
                    "choice_voted_for": choices[choice_index].get("name"),
                    "current_votes": counts.get(choice_index, 0),
                },
            }

        return await self._runner.run(user_id, "votes.cast", action)

    async def get_vote_results(self, vote_event_id: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: No such event
        """
        vote_event_id = InputValidator.validate_positive_integer(vote_event_id, "vote_event_id")
        now = self.now()

        async with DatabaseService.get_session() as session:
            event = await self._catalog.get_vote_event(session, vote_event_id)
            counts = await self._catalog.vote_counts(session, event.id)

        total_votes = sum(counts.values())
        results = []
        for index, choice in enumerate(event.choices or []):
            votes = counts.get(index, 0)
            percentage = (
                (Decimal(votes) * 100 / Decimal(total_votes)).quantize(
                    PERCENT_QUANTUM, rounding=ROUND_HALF_UP
                )
                if total_votes
                else Decimal("0.00")
            )
            results.append({"name": choice.get("name"), "votes": votes, "percentage": percentage})

        return {
            "title": event.title,
            "description": event.description,
            "total_votes": total_votes,
            "results": results,
            "is_active": is_vote_open(event, now),
            "ends_at": as_utc(event.end_date),
        }
