"""
Catalog Store
=============

Purpose
-------
Data access for card templates, tasks, task completions, vote events and
ballots. The economy engine only reads the catalog on hot paths; the write
methods here back the administrative operations and the per-player records
written alongside a reward (completions, ballots).

Design Notes
------------
- Every method takes the caller's session, so catalog writes made during a
  player operation commit or roll back together with the player row.
- Task counters are bumped with a single atomic UPDATE.
- Vote tallies are counted from ballots; the unique (event, user) constraint
  on ballots backs the at-most-once vote rule at the database level.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select, update

from warthug.core.database.base import as_utc
from warthug.core.logging.logger import get_logger
from warthug.database.models.catalog import (
    CardTemplate,
    Task,
    TaskCompletion,
    VoteBallot,
    VoteEvent,
)
from warthug.modules.shared.base_repository import BaseRepository
from warthug.modules.shared.constants import CARD_SECTIONS
from warthug.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession


class CatalogRepository:
    """Catalog reads plus admin and per-player catalog writes."""

    def __init__(self, logger: Optional[Logger] = None) -> None:
        self.log = logger or get_logger(f"{__name__}.CatalogRepository")
        self._templates = BaseRepository(CardTemplate, self.log)
        self._tasks = BaseRepository(Task, self.log)
        self._completions = BaseRepository(TaskCompletion, self.log)
        self._events = BaseRepository(VoteEvent, self.log)
        self._ballots = BaseRepository(VoteBallot, self.log)

    # ========================================================================
    # CARD TEMPLATES
    # ========================================================================

    async def get_card_templates(self, session: AsyncSession) -> Dict[str, List[CardTemplate]]:
        """Active templates grouped by section; every section key is present."""
        templates = await self._templates.find_many_where(
            session,
            CardTemplate.is_active.is_(True),
            order_by=[CardTemplate.id.asc()],
        )
        grouped: Dict[str, List[CardTemplate]] = {section: [] for section in CARD_SECTIONS}
        for template in templates:
            grouped.setdefault(template.section, []).append(template)
        return grouped

    async def card_template_exists(self, session: AsyncSession, section: str, key: str) -> bool:
        return await self._templates.exists(
            session, CardTemplate.section == section, CardTemplate.key == key
        )

    async def add_card_template(self, session: AsyncSession, template: CardTemplate) -> CardTemplate:
        self._templates.add(session, template)
        await self._templates.flush(session)
        return template

    # ========================================================================
    # TASKS
    # ========================================================================

    async def list_active_tasks(self, session: AsyncSession, now: datetime) -> List[Task]:
        return await self._tasks.find_many_where(
            session,
            Task.is_active.is_(True),
            or_(Task.expires_at.is_(None), Task.expires_at > now),
            order_by=[Task.id.asc()],
        )

    async def get_task(self, session: AsyncSession, task_id: int, for_update: bool = False) -> Task:
        """
        Raises:
            NotFoundError: No task with that id
        """
        task = (
            await self._tasks.get_for_update(session, task_id)
            if for_update
            else await self._tasks.get(session, task_id)
        )
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def add_task(self, session: AsyncSession, task: Task) -> Task:
        self._tasks.add(session, task)
        await self._tasks.flush(session)
        return task

    async def last_completion_times(
        self, session: AsyncSession, user_id: str
    ) -> Dict[int, datetime]:
        """Latest completion instant per task for one user."""
        stmt = (
            select(TaskCompletion.task_id, func.max(TaskCompletion.completed_at))
            .where(TaskCompletion.user_id == user_id)
            .group_by(TaskCompletion.task_id)
        )
        rows = (await session.execute(stmt)).all()
        return {task_id: as_utc(completed_at) for task_id, completed_at in rows}

    async def last_completion(
        self, session: AsyncSession, user_id: str, task_id: int
    ) -> Optional[TaskCompletion]:
        completions = await self._completions.find_many_where(
            session,
            TaskCompletion.user_id == user_id,
            TaskCompletion.task_id == task_id,
            order_by=[TaskCompletion.completed_at.desc()],
            limit=1,
        )
        return completions[0] if completions else None

    async def record_completion(
        self,
        session: AsyncSession,
        user_id: str,
        task: Task,
        completed_at: datetime,
        first_completion: bool,
    ) -> TaskCompletion:
        """Insert the completion row and bump the task counters atomically."""
        completion = TaskCompletion(
            user_id=user_id,
            task_id=task.id,
            completed_at=completed_at,
            reward_points=task.reward_points,
            reward_hug_points=task.reward_hug_points,
        )
        self._completions.add(session, completion)

        await session.execute(
            update(Task)
            .where(Task.id == task.id)
            .values(
                total_completions=Task.total_completions + 1,
                unique_completions=Task.unique_completions + (1 if first_completion else 0),
            )
            .execution_options(synchronize_session=False)
        )
        await self._completions.flush(session)

        self.log.debug(
            "CatalogRepository.record_completion",
            extra={"user_id": user_id, "task_id": task.id, "first": first_completion},
        )
        return completion

    async def list_completions(
        self, session: AsyncSession, user_id: str, limit: int, offset: int
    ) -> List[Tuple[TaskCompletion, Task]]:
        """A user's completions, newest first, each with its task."""
        stmt = (
            select(TaskCompletion, Task)
            .join(Task, Task.id == TaskCompletion.task_id)
            .where(TaskCompletion.user_id == user_id)
            .order_by(TaskCompletion.completed_at.desc(), TaskCompletion.id.desc())
            .offset(offset)
            .limit(limit)
        )
        rows = (await session.execute(stmt)).all()
        return [(completion, task) for completion, task in rows]

    async def count_completions(self, session: AsyncSession, user_id: str) -> int:
        return await self._completions.count(session, TaskCompletion.user_id == user_id)

    # ========================================================================
    # VOTE EVENTS
    # ========================================================================

    async def list_active_vote_events(self, session: AsyncSession, now: datetime) -> List[VoteEvent]:
        return await self._events.find_many_where(
            session,
            VoteEvent.is_active.is_(True),
            VoteEvent.end_date > now,
            order_by=[VoteEvent.end_date.asc(), VoteEvent.id.asc()],
        )

    async def get_vote_event(
        self, session: AsyncSession, event_id: int, for_update: bool = False
    ) -> VoteEvent:
        """
        Raises:
            NotFoundError: No vote event with that id
        """
        event = (
            await self._events.get_for_update(session, event_id)
            if for_update
            else await self._events.get(session, event_id)
        )
        if event is None:
            raise NotFoundError("Vote event", event_id)
        return event

    async def add_vote_event(self, session: AsyncSession, event: VoteEvent) -> VoteEvent:
        self._events.add(session, event)
        await self._events.flush(session)
        return event

    async def has_voted(self, session: AsyncSession, event_id: int, user_id: str) -> bool:
        return await self._ballots.exists(
            session, VoteBallot.vote_event_id == event_id, VoteBallot.user_id == user_id
        )

    async def add_ballot(self, session: AsyncSession, ballot: VoteBallot) -> VoteBallot:
        self._ballots.add(session, ballot)
        await self._ballots.flush(session)
        return ballot

    async def vote_counts(self, session: AsyncSession, event_id: int) -> Dict[int, int]:
        """Ballot count per choice index (choices without votes are absent)."""
        stmt = (
            select(VoteBallot.choice_index, func.count())
            .where(VoteBallot.vote_event_id == event_id)
            .group_by(VoteBallot.choice_index)
        )
        rows = (await session.execute(stmt)).all()
        return {int(choice): int(count) for choice, count in rows}
