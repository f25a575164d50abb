"""
Player Module
=============

- PlayerRepository: player store (load, CAS save, ranking queries)
- PlayerOperationRunner: per-player locked, conflict-retried operations
- PlayerService: registration, status and points views
"""

from warthug.modules.player.repository import PlayerRepository
from warthug.modules.player.runner import PlayerOperationRunner
from warthug.modules.player.service import PlayerService

__all__ = [
    "PlayerRepository",
    "PlayerOperationRunner",
    "PlayerService",
]
