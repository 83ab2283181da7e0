"""
Match orchestrator: a player's match history.

The first request for a player backfills the bulk historical record once
(guarded by "has any stored match", not by a timestamp). After that the
live endpoints refresh recent matches whenever the match-history TTL has
lapsed. Either fan-out succeeds entirely or nothing is written.
"""
from typing import List

from sqlalchemy.orm import Session

from tracker.core.config import settings
from tracker.core.exceptions import NotFoundError
from tracker.core.logging import get_logger
from tracker.models import Player
from tracker.repositories import MatchRepository, MatchWithPlayer, PlayerRepository
from tracker.services.core.henrik_api_service import HenrikApiService
from tracker.services.sync.fan_out import fan_out, within_deadline
from tracker.services.sync.freshness import evaluate_freshness
from tracker.services.sync.persister import BatchPersister
from tracker.services.sync.reconciler import SourceReconciler
from tracker.services.sync.types import SourceShape
from tracker.utils.timezone import utcnow

logger = get_logger(__name__)


class MatchService:
    """Serve and refresh the match history of a known player."""

    def __init__(self, db: Session, api: HenrikApiService, reconciler: SourceReconciler = None):
        self.db = db
        self.api = api
        self.players = PlayerRepository(db)
        self.matches = MatchRepository(db)
        self.persister = BatchPersister(db)
        self.reconciler = reconciler or SourceReconciler()

    async def get_matches_for(self, puuid: str, force_refresh: bool = False) -> List[MatchWithPlayer]:
        """
        Get a player's matches, newest first.

        Args:
            puuid: Player id; the player must already be stored
            force_refresh: Refetch live matches regardless of the TTL

        Raises:
            NotFoundError: Unknown player
            UpstreamError, UpstreamTimeoutError, DecodeError: A fetch failed
            PersistenceError: The batch could not be written
        """
        return await within_deadline(
            self._get_matches_for(puuid, force_refresh),
            settings.REQUEST_TIMEOUT,
            label="get_matches_for",
        )

    async def _get_matches_for(self, puuid: str, force_refresh: bool) -> List[MatchWithPlayer]:
        player = self.players.find_by_puuid(puuid)
        if player is None:
            raise NotFoundError(f"Player {puuid} not found")

        logger.info(
            "Fetching matches for player",
            extra={"puuid": puuid, "player_name": player.name, "tag": player.tag},
        )

        if not self.matches.has_stored_history_for(puuid):
            await self._backfill(player)

        decision = evaluate_freshness(
            player.matches_fetched_at, player.is_partial_fetch, force_refresh, settings.MATCH_REFRESH_TTL
        )
        logger.debug(
            "Match refresh decision",
            extra={"puuid": puuid, "refresh": decision.refresh, "reason": decision.reason.value},
        )

        if decision:
            await self._refresh_live(player)
        else:
            logger.info("Returning cached matches", extra={"puuid": puuid})

        return self.matches.find_history_for(puuid)

    async def _backfill(self, player: Player) -> None:
        logger.info("Backfilling stored match history", extra={"puuid": player.puuid})
        stored_matches, stored_mmr = await fan_out(
            self.api.get_stored_matches(player.region, player.puuid),
            self.api.get_stored_mmr_history(player.region, player.puuid),
            timeout=settings.EXTERNAL_API_TIMEOUT,
        )
        batch = self.reconciler.reconcile(
            SourceShape.BULK_HISTORICAL, (stored_matches, stored_mmr), player.puuid, player.name, player.tag
        )
        self.persister.persist_batch(batch)

    async def _refresh_live(self, player: Player) -> None:
        logger.info("Fetching live match data", extra={"puuid": player.puuid})
        v4_matches, mmr_history = await fan_out(
            self.api.get_v4_matches(player.region, player.puuid),
            self.api.get_mmr_history(player.region, player.puuid),
            timeout=settings.EXTERNAL_API_TIMEOUT,
        )
        batch = self.reconciler.reconcile(
            SourceShape.LIVE_INCREMENTAL, (v4_matches, mmr_history), player.puuid, player.name, player.tag
        )
        self.persister.persist_batch(batch, stamp_matches_for=player.puuid, stamped_at=utcnow())
        logger.info("Matches fetched successfully", extra={"puuid": player.puuid, **batch.counts()})
