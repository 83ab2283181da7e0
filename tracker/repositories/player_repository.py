"""
Player Repository for player identity and rank data access.

Usage:
    repo = PlayerRepository(db)
    player = repo.find_by_name_tag("Tenz", "0505")
    suggestions = repo.search("ten", limit=10)
"""
from datetime import datetime
from typing import Optional, List

from sqlalchemy import func, or_, update

from tracker.models import Player
from tracker.repositories.base import BaseRepository
from tracker.services.sync.types import PlayerRow
from tracker.utils.timezone import utcnow

# Columns an identity-only write (match-detail backfill) may touch on an
# existing row. Rank and freshness stay with whoever fetched them.
IDENTITY_COLUMNS = ("name", "tag", "account_level", "card", "title", "updated_at")

FULL_PROFILE_COLUMNS = (
    "name", "tag", "region", "account_level", "card", "title",
    "current_tier", "current_tier_name", "current_rr",
    "is_partial_fetch", "updated_at",
)


class PlayerRepository(BaseRepository[Player]):
    """Repository for player data access."""

    def __init__(self, db):
        super().__init__(Player, db)

    # ========================================================================
    # Lookups
    # ========================================================================

    def find_by_puuid(self, puuid: str) -> Optional[Player]:
        """Find a player by puuid."""
        return self.find_by_id(puuid)

    def find_by_name_tag(self, name: str, tag: str) -> Optional[Player]:
        """Find a player by name and tag, ignoring case."""
        return self.where_first(
            func.lower(Player.name) == name.lower(),
            func.lower(Player.tag) == tag.lower(),
        )

    def search(self, query: str, limit: int = 10) -> List[Player]:
        """
        Search for players by name or tag (case-insensitive partial match).

        Args:
            query: Fragment of a name or tag; a "name#tag" fragment matches both parts
            limit: Maximum number of results

        Returns:
            Matching players, fully fetched profiles first, then by name
        """
        name_part, _, tag_part = query.partition("#")
        name_pattern = f"%{name_part.strip().lower()}%"

        q = self.db.query(Player)
        if tag_part:
            q = q.filter(
                Player.name.ilike(name_pattern),
                Player.tag.ilike(f"{tag_part.strip().lower()}%"),
            )
        else:
            q = q.filter(or_(Player.name.ilike(name_pattern), Player.tag.ilike(name_pattern)))

        return q.order_by(
            Player.is_partial_fetch.asc(),
            func.lower(Player.name).asc(),
        ).limit(limit).all()

    # ========================================================================
    # Writes (caller commits)
    # ========================================================================

    def upsert_identities(self, rows: List[PlayerRow]) -> None:
        """Insert unseen players as partial; refresh identity columns on known ones."""
        now = utcnow()
        payload = []
        for row in rows:
            data = row.to_dict()
            data["is_partial_fetch"] = True
            data["last_fetch_at"] = None
            data["updated_at"] = now
            payload.append(data)
        self.upsert_rows(payload, index_elements=["puuid"], update_columns=IDENTITY_COLUMNS)

    def upsert_profile(self, row: PlayerRow) -> None:
        """Write a full identity + rank profile, clearing the partial flag."""
        data = row.to_dict()
        data["is_partial_fetch"] = False
        data["updated_at"] = utcnow()
        # last_fetch_at is owned by the settle-delay stamp
        data.pop("last_fetch_at", None)
        self.upsert_rows([data], index_elements=["puuid"], update_columns=FULL_PROFILE_COLUMNS)

    def set_last_fetch_at(self, puuid: str, stamp: datetime) -> int:
        """Stamp identity freshness. Returns rows affected."""
        result = self.db.execute(
            update(Player).where(Player.puuid == puuid).values(last_fetch_at=stamp, updated_at=utcnow())
        )
        return result.rowcount

    def set_matches_fetched_at(self, puuid: str, stamp: datetime) -> int:
        """Stamp match-history freshness. Returns rows affected."""
        result = self.db.execute(
            update(Player).where(Player.puuid == puuid).values(matches_fetched_at=stamp)
        )
        return result.rowcount
