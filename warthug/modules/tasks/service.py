"""
Task Service
============

Purpose
-------
Task listing, completion and completion history.

Domain
------
- A task is available while active and not past `expires_at`
- Completion checks run in this order: task exists, task available,
  player level, player total points, non-repeatable already done, repeat
  cooldown
- A completion credits `reward_points` to tap points and
  `reward_hug_points` to hug points, records a TaskCompletion and bumps the
  task's counters in the same transaction as the player row
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from warthug.core.database.base import as_utc
from warthug.core.database.service import DatabaseService
from warthug.modules.shared.base_service import BaseService
from warthug.modules.shared.exceptions import (
    AlreadyClaimedError,
    CooldownActiveError,
    InvalidOperationError,
)
from warthug.modules.shared.formulas import elapsed_ms
from warthug.modules.shared.validators import InputValidator

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from warthug.core.event.bus import EventBus
    from warthug.database.models.catalog import Task
    from warthug.domain.models.player import Player
    from warthug.modules.catalog.repository import CatalogRepository
    from warthug.modules.player.runner import PlayerOperationRunner
    from warthug.modules.shared.base_service import Clock


MAX_COMPLETIONS_PAGE_SIZE = 100


def task_to_dict(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "topic": task.topic,
        "description": task.description,
        "type": task.type,
        "required_level": task.required_level,
        "required_points": task.required_points,
        "reward_points": task.reward_points,
        "reward_hug_points": task.reward_hug_points,
        "image_url": task.image_url,
        "link": task.link,
        "completion_delay": task.completion_delay,
        "expires_at": as_utc(task.expires_at),
        "is_active": task.is_active,
        "is_repeatable": task.is_repeatable,
        "repeat_cooldown": task.repeat_cooldown,
        "total_completions": task.total_completions,
        "unique_completions": task.unique_completions,
    }


def is_task_available(task: Task, now: datetime) -> bool:
    expires_at = as_utc(task.expires_at)
    return task.is_active and (expires_at is None or expires_at > now)


def time_until_available(
    task: Task, last_completed_at: Optional[datetime], now: datetime
) -> Optional[int]:
    """Milliseconds until a repeatable task reopens; None for one-shot tasks."""
    if not task.is_repeatable:
        return None
    if last_completed_at is None:
        return 0
    reopens_at = last_completed_at + timedelta(seconds=task.repeat_cooldown)
    return max(0, elapsed_ms(now, reopens_at))


class TaskService(BaseService):
    """
    Public Methods
    --------------
    - list_tasks_for_player() -> Open tasks with per-player availability
    - complete_task() -> Complete a task and collect its reward
    - list_completed_tasks() -> Paged completion history
    - get_task() -> One task by id
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

    # ========================================================================
    # READ OPERATIONS
    # ========================================================================

    async def list_tasks_for_player(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Active tasks the player has not completed, plus repeatable tasks whose
        cooldown has elapsed.
        """
        now = self.now()
        self.log_operation("list_tasks_for_player", user_id=user_id)

        async with DatabaseService.get_session() as session:
            player = await self._runner.players.load(session, user_id)
            tasks = await self._catalog.list_active_tasks(session, now)
            last_completed = await self._catalog.last_completion_times(session, user_id)

        entries: List[Dict[str, Any]] = []
        for task in tasks:
            last = last_completed.get(task.id)
            until = time_until_available(task, last, now)
            is_completed = last is not None
            if is_completed and until != 0:
                continue

            eligible = (
                player.level >= task.required_level
                and player.total_points >= task.required_points
            )
            entries.append(
                {
                    **task_to_dict(task),
                    "is_completed": is_completed,
                    "can_complete": eligible,
                    "last_completed_at": last,
                    "time_until_available": until,
                    "user_eligible": eligible,
                }
            )
        return entries

    async def get_task(self, task_id: int) -> Dict[str, Any]:
        task_id = InputValidator.validate_positive_integer(task_id, "task_id")
        async with DatabaseService.get_session() as session:
            task = await self._catalog.get_task(session, task_id)
            return task_to_dict(task)

    async def list_completed_tasks(
        self, user_id: str, page: int = 1, limit: int = 10
    ) -> Dict[str, Any]:
        page = InputValidator.validate_positive_integer(page, "page")
        limit = InputValidator.validate_positive_integer(
            limit, "limit", max_value=MAX_COMPLETIONS_PAGE_SIZE
        )

        async with DatabaseService.get_session() as session:
            rows = await self._catalog.list_completions(
                session, user_id, limit=limit, offset=(page - 1) * limit
            )
            total = await self._catalog.count_completions(session, user_id)

        return {
            "completions": [
                {
                    "task": task_to_dict(task),
                    "completed_at": as_utc(completion.completed_at),
                    "rewards": {
                        "points": completion.reward_points,
                        "hug_points": completion.reward_hug_points,
                    },
                }
                for completion, task in rows
            ],
            "pagination": {
                "current": page,
                "pages": -(-total // limit),
                "total": total,
            },
        }

    # ========================================================================
    # WRITE OPERATIONS
    # ========================================================================

    async def complete_task(self, user_id: str, task_id: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Task or player does not exist
            InvalidOperationError: Task inactive or expired
            LevelTooLowError: Player level below the requirement
            NotEligibleError: Player total points below the requirement
            AlreadyClaimedError: One-shot task already completed
            CooldownActiveError: Repeatable task still cooling down
        """
        task_id = InputValidator.validate_positive_integer(task_id, "task_id")
        now = self.now()
        self.log_operation("complete_task", user_id=user_id, task_id=task_id)

        async def action(session: AsyncSession, player: Player) -> Dict[str, Any]:
            task = await self._catalog.get_task(session, task_id, for_update=True)
            if not is_task_available(task, now):
                raise InvalidOperationError("complete_task", "Task is no longer available")

            player.ensure_task_requirements(task.id, task.required_level, task.required_points)

            last = await self._catalog.last_completion(session, player.user_id, task.id)
            last_at = as_utc(last.completed_at) if last is not None else None
            if last_at is not None:
                if not task.is_repeatable:
                    raise AlreadyClaimedError("task", task.id)
                remaining_ms = time_until_available(task, last_at, now) or 0
                if remaining_ms > 0:
                    raise CooldownActiveError(f"task:{task.id}", remaining_ms / 1000)

            player.receive_task_reward(
                task.id,
                required_level=task.required_level,
                required_points=task.required_points,
                reward_points=task.reward_points,
                reward_hug_points=task.reward_hug_points,
            )
            player.touch(now)
            await self._catalog.record_completion(
                session, player.user_id, task, now, first_completion=last_at is None
            )

            return {
                "task_id": task.id,
                "rewards": {
                    "points": task.reward_points,
                    "hug_points": task.reward_hug_points,
                },
                "tap_points": player.tap_points,
                "hug_points": player.hug_points,
                "completed_at": now,
            }

        return await self._runner.run(user_id, "tasks.complete", action)
