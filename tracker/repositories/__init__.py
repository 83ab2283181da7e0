"""
Repository layer for data access.

Usage:
    from tracker.repositories import PlayerRepository, MatchRepository

    player_repo = PlayerRepository(db)
    player = player_repo.find_by_puuid("puuid-123")
"""

from tracker.repositories.base import BaseRepository
from tracker.repositories.player_repository import PlayerRepository
from tracker.repositories.match_repository import MatchRepository, MatchWithPlayer
from tracker.repositories.mmr_history_repository import MMRHistoryRepository

__all__ = [
    "BaseRepository",
    "PlayerRepository",
    "MatchRepository",
    "MatchWithPlayer",
    "MMRHistoryRepository",
]
