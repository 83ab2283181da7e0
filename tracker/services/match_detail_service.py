"""
Match detail orchestrator: one match with its full roster.

Stored rosters shorter than a full 5v5 trigger one v2 detail fetch; a
roster still incomplete after that fetch is returned as it is.
"""
from dataclasses import dataclass
from typing import List

from sqlalchemy.orm import Session

from tracker.core.config import settings
from tracker.core.constants import FULL_ROSTER_SIZE
from tracker.core.exceptions import NotFoundError, UpstreamError
from tracker.core.logging import get_logger
from tracker.models import Match, MatchPlayer
from tracker.repositories import MatchRepository
from tracker.services.core.henrik_api_service import HenrikApiService
from tracker.services.sync.fan_out import within_deadline
from tracker.services.sync.persister import BatchPersister
from tracker.services.sync.reconciler import SourceReconciler
from tracker.services.sync.types import SourceShape

logger = get_logger(__name__)


@dataclass
class MatchDetail:
    match: Match
    players: List[MatchPlayer]

    @property
    def rounds_played(self) -> int:
        # Sum of both sides' round scores
        return (self.match.team_red_score or 0) + (self.match.team_blue_score or 0)

    @property
    def is_complete(self) -> bool:
        return len(self.players) == FULL_ROSTER_SIZE


class MatchDetailService:

    def __init__(self, db: Session, api: HenrikApiService, reconciler: SourceReconciler = None):
        self.db = db
        self.api = api
        self.matches = MatchRepository(db)
        self.persister = BatchPersister(db)
        self.reconciler = reconciler or SourceReconciler()

    async def get_match(self, match_id: str) -> MatchDetail:
        """
        Get match metadata and every stored participant.

        Raises:
            NotFoundError: Unknown match (locally and upstream)
            UpstreamError, UpstreamTimeoutError, DecodeError: The detail fetch failed
            PersistenceError: The detail could not be written
        """
        return await within_deadline(self._get_match(match_id), settings.REQUEST_TIMEOUT, label="get_match")

    async def _get_match(self, match_id: str) -> MatchDetail:
        players = self.matches.find_participants(match_id)
        if len(players) != FULL_ROSTER_SIZE:
            logger.info(
                "Incomplete roster, fetching match detail",
                extra={"match_id": match_id, "stored_players": len(players)},
            )
            await self._fetch_and_store(match_id)
            players = self.matches.find_participants(match_id)
            if len(players) != FULL_ROSTER_SIZE:
                logger.warning(
                    "Roster still incomplete after detail fetch",
                    extra={"match_id": match_id, "stored_players": len(players)},
                )

        match = self.matches.find_by_match_id(match_id)
        if match is None:
            raise NotFoundError(f"Match {match_id} not found")
        return MatchDetail(match=match, players=players)

    async def _fetch_and_store(self, match_id: str) -> None:
        try:
            detail = await self.api.get_match_v2(match_id, timeout=settings.EXTERNAL_API_TIMEOUT)
        except UpstreamError as e:
            if e.status == 404:
                raise NotFoundError(f"Match {match_id} not found") from e
            raise
        batch = self.reconciler.reconcile(SourceShape.MATCH_DETAIL, (detail,))
        self.persister.persist_batch(batch)
