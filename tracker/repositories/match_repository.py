"""
Match Repository for match metadata and participation data access.

Usage:
    repo = MatchRepository(db)
    history = repo.find_history_for("puuid-123")
    roster = repo.find_participants("match-abc")
"""
from dataclasses import dataclass
from typing import List, Optional

from tracker.core.constants import MMR_SOURCE_STORED
from tracker.models import Match, MatchPlayer, MMRHistory
from tracker.repositories.base import BaseRepository
from tracker.repositories.mmr_history_repository import MMRHistoryRepository
from tracker.services.sync.types import MatchRow, MatchPlayerRow
from tracker.utils.timezone import utcnow

MATCH_KEY = ["match_id"]
PARTICIPATION_KEY = ["match_id", "puuid"]


@dataclass
class MatchWithPlayer:
    """A match joined with one player's line and their latest rank record for it."""

    match: Match
    stats: MatchPlayer
    mmr: Optional[MMRHistory] = None


class MatchRepository(BaseRepository[Match]):
    """Repository for matches and their participants."""

    def __init__(self, db):
        super().__init__(Match, db)

    # ========================================================================
    # Reads
    # ========================================================================

    def find_by_match_id(self, match_id: str) -> Optional[Match]:
        return self.find_by_id(match_id)

    def has_stored_history_for(self, puuid: str) -> bool:
        """
        True once the bulk historical backfill has written anything for the player.

        Checked against the append-only rank records of the stored source:
        participations written by match detail or live refreshes do not count,
        and a later refresh overwriting a match row cannot clear the flag.
        """
        return bool(self.db.query(
            self.db.query(MMRHistory).filter(
                MMRHistory.puuid == puuid,
                MMRHistory.source == MMR_SOURCE_STORED,
            ).exists()
        ).scalar())

    def find_participants(self, match_id: str) -> List[MatchPlayer]:
        """All participation rows for a match, grouped by team."""
        return self.db.query(MatchPlayer).filter(
            MatchPlayer.match_id == match_id
        ).order_by(MatchPlayer.team.asc(), MatchPlayer.score.desc()).all()

    def find_lines_for(self, puuid: str) -> List[MatchPlayer]:
        """Every participation row for a player."""
        return self.db.query(MatchPlayer).filter(MatchPlayer.puuid == puuid).all()

    def find_history_for(self, puuid: str, limit: Optional[int] = None) -> List[MatchWithPlayer]:
        """
        A player's matches, newest first.

        Each entry carries the player's own participation and the most
        recently written rank record for that match, if any.

        Args:
            puuid: Player to read
            limit: Optional cap on the number of matches

        Returns:
            List of MatchWithPlayer ordered by match start descending
        """
        query = self.db.query(Match, MatchPlayer).join(
            MatchPlayer, MatchPlayer.match_id == Match.match_id
        ).filter(
            MatchPlayer.puuid == puuid
        ).order_by(Match.started_at.desc(), Match.match_id.asc())
        if limit:
            query = query.limit(limit)

        latest_mmr = MMRHistoryRepository(self.db).latest_by_match(puuid)
        return [
            MatchWithPlayer(match=match, stats=stats, mmr=latest_mmr.get(match.match_id))
            for match, stats in query.all()
        ]

    # ========================================================================
    # Writes (caller commits)
    # ========================================================================

    def upsert_matches(self, rows: List[MatchRow]) -> None:
        now = utcnow()
        payload = [dict(row.to_dict(), updated_at=now) for row in rows]
        self.upsert_rows(payload, index_elements=MATCH_KEY)

    def upsert_participations(self, rows: List[MatchPlayerRow]) -> None:
        now = utcnow()
        payload = [dict(row.to_dict(), updated_at=now) for row in rows]
        self.upsert_rows(payload, index_elements=PARTICIPATION_KEY, model=MatchPlayer)
