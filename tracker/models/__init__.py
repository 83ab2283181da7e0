"""
Canonical store models.

Usage:
    from tracker.models import Player, Match, MatchPlayer, MMRHistory
"""

from tracker.models.models import (
    Base,
    Player,
    Match,
    MatchPlayer,
    MMRHistory,
)

__all__ = [
    "Base",
    "Player",
    "Match",
    "MatchPlayer",
    "MMRHistory",
]
