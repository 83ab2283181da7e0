"""Repository for the append-only rank history."""
import uuid
from typing import Dict, List

from tracker.models import MMRHistory
from tracker.repositories.base import BaseRepository
from tracker.services.sync.types import MMRRecord
from tracker.utils.timezone import utcnow


class MMRHistoryRepository(BaseRepository[MMRHistory]):

    def __init__(self, db):
        super().__init__(MMRHistory, db)

    def append(self, records: List[MMRRecord]) -> None:
        """Insert records under fresh ids; existing history is never replaced."""
        now = utcnow()
        rows = []
        for record in records:
            data = record.to_dict()
            data["id"] = str(uuid.uuid4())
            data["created_at"] = now
            data["updated_at"] = now
            rows.append(data)
        self.insert_rows(rows)

    def latest_by_match(self, puuid: str) -> Dict[str, MMRHistory]:
        """Most recently written record per match for one player."""
        records = self.where(
            MMRHistory.puuid == puuid,
            order_by=(MMRHistory.created_at.asc(), MMRHistory.id.asc()),
        )
        latest: Dict[str, MMRHistory] = {}
        for record in records:
            latest[record.match_id] = record
        return latest
