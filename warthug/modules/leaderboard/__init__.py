"""Leaderboard Module: read-only rankings over the player store."""

from warthug.modules.leaderboard.service import LEADERBOARD_COLUMNS, LeaderboardService

__all__ = ["LEADERBOARD_COLUMNS", "LeaderboardService"]
