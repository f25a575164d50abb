"""
Catalog Models
==============

Read-mostly catalog consulted by the economy engine, plus the per-player
rows that record catalog interactions.

Tables
------
- card_templates: card definitions cloned into every player's collection
- tasks: completable tasks with level / points requirements and rewards
- task_completions: one row per completion (repeatable tasks add many)
- vote_events: time-boxed votes paying a flat reward per ballot
- vote_ballots: one ballot per (event, user); the unique constraint is the
  at-most-once guard for vote rewards

Schema Design
-------------
- Growth rates are exact decimals (never floats) so card curves are
  reproducible across processes
- Task and ballot counters are derived from rows or bumped with atomic
  UPDATE statements, never read-modify-write
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, BigInteger, Index, Numeric, Text, UniqueConstraint
from sqlmodel import Field

from warthug.core.database.base import ID_TYPE, UTC_TIMESTAMP, IdModel, TimestampedModel

RATE_TYPE = Numeric(12, 6)
HUG_POINTS_TYPE = Numeric(20, 4)


# ============================================================================
# CARD TEMPLATES
# ============================================================================


class CardTemplate(TimestampedModel, table=True):
    """Catalog definition of one card in one section."""

    __tablename__ = "card_templates"
    __table_args__ = (
        UniqueConstraint("section", "key", name="uq_card_templates_section_key"),
        Index("ix_card_templates_section", "section"),
    )

    # finance | predators | hogPower
    section: str = Field(max_length=32, nullable=False)
    # Normalised name: lowercase, whitespace -> '_'
    key: str = Field(max_length=128, nullable=False)
    name: str = Field(max_length=128, nullable=False)

    base_price: int = Field(sa_type=BigInteger, nullable=False)
    price_increase_rate: Decimal = Field(sa_type=RATE_TYPE, nullable=False)
    per_hour_increase: int = Field(sa_type=BigInteger, nullable=False)
    per_hour_increase_rate: Decimal = Field(sa_type=RATE_TYPE, nullable=False)
    # Cooldown after the first upgrade, in minutes
    base_cooldown: int = Field(nullable=False)
    cooldown_increase_rate: Decimal = Field(sa_type=RATE_TYPE, nullable=False)
    required_level: int = Field(default=0, nullable=False)
    image_url: str = Field(default="", max_length=512, nullable=False)
    is_active: bool = Field(default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<CardTemplate(section={self.section!r}, key={self.key!r})>"


# ============================================================================
# TASKS
# ============================================================================


class Task(TimestampedModel, table=True):
    """A completable task."""

    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_is_active", "is_active"),
        Index("ix_tasks_type", "type"),
    )

    topic: str = Field(max_length=200, nullable=False)
    description: str = Field(sa_type=Text, nullable=False)
    # daily | weekly | special | event
    type: str = Field(max_length=16, nullable=False)
    required_level: int = Field(default=0, nullable=False)
    required_points: int = Field(default=0, sa_type=BigInteger, nullable=False)
    reward_points: int = Field(default=100, sa_type=BigInteger, nullable=False)
    reward_hug_points: Decimal = Field(
        default=Decimal("0"), sa_type=HUG_POINTS_TYPE, nullable=False
    )
    image_url: str = Field(default="", max_length=512, nullable=False)
    link: str = Field(max_length=512, nullable=False)
    # Seconds the client waits before completing
    completion_delay: int = Field(default=0, nullable=False)
    expires_at: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    is_active: bool = Field(default=True, nullable=False)
    is_repeatable: bool = Field(default=False, nullable=False)
    # Seconds between repeat completions
    repeat_cooldown: int = Field(default=0, nullable=False)
    total_completions: int = Field(default=0, sa_type=BigInteger, nullable=False)
    unique_completions: int = Field(default=0, sa_type=BigInteger, nullable=False)

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, topic={self.topic!r}, type={self.type!r})>"


class TaskCompletion(IdModel, table=True):
    """One completion of a task by one player."""

    __tablename__ = "task_completions"
    __table_args__ = (
        Index("ix_task_completions_user_task", "user_id", "task_id", "completed_at"),
    )

    user_id: str = Field(max_length=128, nullable=False)
    task_id: int = Field(
        foreign_key="tasks.id", ondelete="CASCADE", sa_type=ID_TYPE, nullable=False
    )
    completed_at: datetime = Field(sa_type=UTC_TIMESTAMP, nullable=False)
    reward_points: int = Field(default=0, sa_type=BigInteger, nullable=False)
    reward_hug_points: Decimal = Field(
        default=Decimal("0"), sa_type=HUG_POINTS_TYPE, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<TaskCompletion(user_id={self.user_id!r}, task_id={self.task_id}, "
            f"completed_at={self.completed_at})>"
        )


# ============================================================================
# VOTE EVENTS
# ============================================================================


class VoteEvent(TimestampedModel, table=True):
    """A time-boxed vote. Each ballot pays `reward_amount` to the voter."""

    __tablename__ = "vote_events"
    __table_args__ = (Index("ix_vote_events_active_end", "is_active", "end_date"),)

    title: str = Field(max_length=200, nullable=False)
    description: str = Field(default="", sa_type=Text, nullable=False)
    # [{name, description, image_url}]
    choices: List[Dict[str, Any]] = Field(default_factory=list, sa_type=JSON, nullable=False)
    reward_amount: int = Field(default=500_000, sa_type=BigInteger, nullable=False)
    start_date: datetime = Field(sa_type=UTC_TIMESTAMP, nullable=False)
    end_date: datetime = Field(sa_type=UTC_TIMESTAMP, nullable=False)
    is_active: bool = Field(default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<VoteEvent(id={self.id}, title={self.title!r})>"


class VoteBallot(IdModel, table=True):
    """One user's vote in one event."""

    __tablename__ = "vote_ballots"
    __table_args__ = (
        UniqueConstraint("vote_event_id", "user_id", name="uq_vote_ballots_event_user"),
        Index("ix_vote_ballots_event_choice", "vote_event_id", "choice_index"),
    )

    vote_event_id: int = Field(
        foreign_key="vote_events.id", ondelete="CASCADE", sa_type=ID_TYPE, nullable=False
    )
    user_id: str = Field(max_length=128, nullable=False)
    choice_index: int = Field(nullable=False)
    voted_at: datetime = Field(sa_type=UTC_TIMESTAMP, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<VoteBallot(event={self.vote_event_id}, user_id={self.user_id!r}, "
            f"choice={self.choice_index})>"
        )
