"""
Player orchestrator: cached identity and rank, refreshed from HenrikDev.

A refresh persists identity and rank together and clears the partial
flag in the same transaction. The identity freshness stamp
(``last_fetch_at``) is written later by a detached task after a short
settle delay, so match fetches fired right after a lookup still see the
player as cold.
"""
import asyncio
from typing import List, Optional, Set
from urllib.parse import unquote

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from tracker.core.config import settings
from tracker.core.constants import SEARCH_SUGGESTION_LIMIT, SEARCH_SUGGESTION_MAX
from tracker.core.exceptions import NotFoundError, UpstreamError
from tracker.core.logging import get_logger
from tracker.models import Player
from tracker.repositories import MatchRepository, PlayerRepository
from tracker.services.core.henrik_api_service import HenrikApiService
from tracker.services.core.payloads import AccountData, MMRResponse
from tracker.services.stats import PlayerStatsSummary, summarize
from tracker.services.sync.fan_out import fan_out, within_deadline
from tracker.services.sync.freshness import evaluate_freshness
from tracker.services.sync.persister import BatchPersister
from tracker.services.sync.types import PlayerRow
from tracker.utils.timezone import utcnow

logger = get_logger(__name__)

# Strong references to in-flight settle tasks; the event loop only keeps weak ones
_settle_tasks: Set[asyncio.Task] = set()


async def drain_settle_tasks(timeout: Optional[float] = None) -> None:
    """Wait for outstanding settle-delay stamps (tests and shutdown)."""
    loop = asyncio.get_running_loop()
    pending = [task for task in _settle_tasks if task.get_loop() is loop]
    if not pending:
        return
    done, still_pending = await asyncio.wait(pending, timeout=timeout)
    for task in still_pending:
        task.cancel()
    if still_pending:
        logger.warning("Cancelled pending settle stamps", extra={"count": len(still_pending)})


class PlayerService:
    """
    Resolve players by name#tag or puuid, refreshing when the cache is due.

    Args:
        db: Request-scoped session
        api: Shared HenrikDev client
        settle_delay: Seconds before ``last_fetch_at`` is stamped (default: settings)
        session_factory: Session source for the detached stamp (default: bound to db's engine)
    """

    def __init__(
        self,
        db: Session,
        api: HenrikApiService,
        settle_delay: Optional[float] = None,
        session_factory: Optional[sessionmaker] = None,
    ):
        self.db = db
        self.api = api
        self.players = PlayerRepository(db)
        self.persister = BatchPersister(db)
        self.settle_delay = settings.LAST_FETCH_DELAY if settle_delay is None else settle_delay
        self.session_factory = session_factory or sessionmaker(bind=db.get_bind(), autoflush=False)

    # ========================================================================
    # Public operations
    # ========================================================================

    async def get_player(self, name: str, tag: str, force_refresh: bool = False) -> Player:
        """
        Get a player by Riot name and tag.

        Raises:
            NotFoundError: No such account upstream
            UpstreamError, UpstreamTimeoutError, DecodeError: Refresh failed
            PersistenceError: Refresh could not be written
        """
        return await within_deadline(
            self._get_player(unquote(name), unquote(tag), force_refresh),
            settings.REQUEST_TIMEOUT,
            label="get_player",
        )

    async def get_player_by_puuid(self, puuid: str, force_refresh: bool = False) -> Player:
        """Get a stored player by puuid, refreshing via its stored name#tag when due."""
        return await within_deadline(
            self._get_player_by_puuid(puuid, force_refresh),
            settings.REQUEST_TIMEOUT,
            label="get_player_by_puuid",
        )

    def search_suggestions(self, query: str, limit: int = SEARCH_SUGGESTION_LIMIT) -> List[Player]:
        """Stored players whose name or tag contains ``query``."""
        query = unquote(query or "").strip()
        if not query:
            return []
        limit = max(1, min(limit, SEARCH_SUGGESTION_MAX))
        results = self.players.search(query, limit=limit)
        logger.info("Player search completed", extra={"query": query, "count": len(results)})
        return results

    def get_stats_summary(self, puuid: str) -> PlayerStatsSummary:
        """Career aggregates over every stored match line for the player."""
        return summarize(MatchRepository(self.db).find_lines_for(puuid))

    # ========================================================================
    # Refresh flow
    # ========================================================================

    async def _get_player(self, name: str, tag: str, force_refresh: bool) -> Player:
        cached = self.players.find_by_name_tag(name, tag)

        if cached is not None:
            decision = evaluate_freshness(
                cached.last_fetch_at, cached.is_partial_fetch, force_refresh, settings.PLAYER_REFRESH_TTL
            )
            logger.debug(
                "Player refresh decision",
                extra={"puuid": cached.puuid, "refresh": decision.refresh, "reason": decision.reason.value},
            )
            if not decision:
                logger.info("Returning cached player", extra={"puuid": cached.puuid})
                return cached
        else:
            logger.debug("Player not cached, fetching from upstream", extra={"player_name": name, "tag": tag})

        return await self._refresh(name, tag, cached)

    async def _get_player_by_puuid(self, puuid: str, force_refresh: bool) -> Player:
        cached = self.players.find_by_puuid(puuid)
        if cached is None:
            raise NotFoundError(f"Player {puuid} not found")

        decision = evaluate_freshness(
            cached.last_fetch_at, cached.is_partial_fetch, force_refresh, settings.PLAYER_REFRESH_TTL
        )
        if not decision:
            return cached

        logger.debug("Refreshing player by puuid", extra={"puuid": puuid, "reason": decision.reason.value})
        return await self._refresh(cached.name, cached.tag, cached)

    async def _refresh(self, name: str, tag: str, cached: Optional[Player]) -> Player:
        timeout = settings.EXTERNAL_API_TIMEOUT
        try:
            if cached is not None and cached.region:
                account_resp, mmr_resp = await fan_out(
                    self.api.get_account(name, tag),
                    self.api.get_mmr(cached.region, cached.puuid),
                    timeout=timeout,
                )
                account = account_resp.data
                if account.puuid != cached.puuid or account.region != cached.region:
                    # name#tag now belongs to another account (or it moved region)
                    logger.info(
                        "Account changed under cached name#tag",
                        extra={"old_puuid": cached.puuid, "puuid": account.puuid},
                    )
                    mmr_resp = await self.api.get_mmr(account.region, account.puuid, timeout=timeout)
            else:
                account = (await self.api.get_account(name, tag, timeout=timeout)).data
                mmr_resp = await self.api.get_mmr(account.region, account.puuid, timeout=timeout)
        except UpstreamError as e:
            if e.status == 404:
                raise NotFoundError(f"Player {name}#{tag} not found") from e
            raise

        row = self._build_row(account, mmr_resp)
        self.persister.persist_player(row)
        self._schedule_settle_stamp(row.puuid)

        player = self.players.find_by_puuid(row.puuid)
        logger.info("Player fetched successfully", extra={"puuid": row.puuid})
        return player

    @staticmethod
    def _build_row(account: AccountData, mmr: MMRResponse) -> PlayerRow:
        current = mmr.data.current
        return PlayerRow(
            puuid=account.puuid,
            name=account.name,
            tag=account.tag,
            region=account.region,
            account_level=account.account_level,
            card=account.card,
            title=account.title,
            current_tier=current.tier.id,
            current_tier_name=current.tier.name,
            current_rr=current.rr,
            is_partial_fetch=False,
        )

    # ========================================================================
    # Settle-delay stamp
    # ========================================================================

    def _schedule_settle_stamp(self, puuid: str) -> asyncio.Task:
        task = asyncio.create_task(self._settle_and_stamp(puuid))
        _settle_tasks.add(task)
        task.add_done_callback(_settle_tasks.discard)
        return task

    async def _settle_and_stamp(self, puuid: str) -> None:
        await asyncio.sleep(self.settle_delay)
        try:
            self._stamp_last_fetch(puuid)
        except Exception as e:
            logger.error(f"Failed to stamp last_fetch_at: {e}", extra={"puuid": puuid})
        else:
            logger.debug("Stamped last_fetch_at", extra={"puuid": puuid})

    @retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    def _stamp_last_fetch(self, puuid: str) -> None:
        session = self.session_factory()
        try:
            PlayerRepository(session).set_last_fetch_at(puuid, utcnow())
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
