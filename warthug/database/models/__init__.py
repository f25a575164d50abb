"""
Database Models Package
=======================

SQLModel table schema for the Warthug economy. Models are schema-only; every
rule lives in the domain layer (`warthug.domain.models`).

- player: PlayerRecord (one row per player, optimistic `version` column)
- catalog: CardTemplate, Task, TaskCompletion, VoteEvent, VoteBallot

Importing this package registers every table on `SQLModel.metadata`.
"""

from .catalog import CardTemplate, Task, TaskCompletion, VoteBallot, VoteEvent
from .player import SECTION_COLUMNS, PlayerRecord

__all__ = [
    "CardTemplate",
    "PlayerRecord",
    "SECTION_COLUMNS",
    "Task",
    "TaskCompletion",
    "VoteBallot",
    "VoteEvent",
]
