"""
HenrikDev API service for fetching Valorant account, match and rank data.

Seven read-only endpoints feed the tracker:
- Account lookup by Riot name and tag
- Stored (bulk historical) matches and rank history
- Live (v4) matches and rank history
- Current rank (v3 mmr)
- Single match detail (v2)

Quota Tracking: Response headers x-ratelimit-bucket, x-ratelimit-limit,
x-ratelimit-remaining, x-ratelimit-reset. Tracking is advisory; requests are
never throttled locally.

Failed calls are not retried here. A stale read is preferable to a slow
one, and the caller decides whether to surface the error.
"""
import asyncio
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from tracker.core.config import settings
from tracker.core.constants import COMPETITIVE_MODE, QUOTA_LOW_WATERMARK
from tracker.core.exceptions import DecodeError, UpstreamError, UpstreamTimeoutError
from tracker.core.logging import get_logger
from tracker.services.core.payloads import (
    AccountResponse,
    MatchV2Response,
    MMRHistoryResponse,
    MMRResponse,
    StoredMatchesResponse,
    StoredMMRHistoryResponse,
    V4MatchesResponse,
)
from tracker.utils.timezone import isoformat_utc, utcnow

logger = get_logger(__name__)

P = TypeVar("P", bound=BaseModel)

# Upstream defaults before the first response arrives
DEFAULT_QUOTA_LIMIT = 90
DEFAULT_QUOTA_RESET = 60

# Body excerpt kept on UpstreamError
MAX_ERROR_BODY = 500


@dataclass(frozen=True)
class QuotaSnapshot:
    """Point-in-time view of the upstream rate-limit bucket."""

    bucket: str = ""
    limit: int = DEFAULT_QUOTA_LIMIT
    remaining: int = DEFAULT_QUOTA_LIMIT
    reset: int = DEFAULT_QUOTA_RESET
    updated_at: Optional[datetime] = None

    @property
    def is_low(self) -> bool:
        return self.limit > 0 and self.remaining < self.limit * QUOTA_LOW_WATERMARK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket": self.bucket,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset": self.reset,
            "updated_at": isoformat_utc(self.updated_at),
        }


class QuotaTracker:
    """
    Holds the latest QuotaSnapshot.

    Writers replace the snapshot under a lock; readers get the current
    immutable instance without locking, so a reader never observes a
    half-applied header set.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = QuotaSnapshot(updated_at=utcnow())

    def snapshot(self) -> QuotaSnapshot:
        return self._snapshot

    def update_from_headers(self, headers: Mapping[str, str]) -> QuotaSnapshot:
        """
        Merge x-ratelimit-* headers into the snapshot.

        Missing or unparseable values keep their previous value.
        """
        changes: Dict[str, Any] = {}
        bucket = headers.get("x-ratelimit-bucket")
        if bucket:
            changes["bucket"] = bucket
        for field_name in ("limit", "remaining", "reset"):
            raw = headers.get(f"x-ratelimit-{field_name}")
            if not raw:
                continue
            try:
                changes[field_name] = int(raw)
            except ValueError:
                logger.warning(
                    "Failed to parse quota header",
                    extra={"header": f"x-ratelimit-{field_name}", "value": raw},
                )

        with self._lock:
            self._snapshot = replace(self._snapshot, updated_at=utcnow(), **changes)
            snapshot = self._snapshot

        if snapshot.is_low:
            logger.warning(
                f"HenrikDev quota running low: {snapshot.remaining}/{snapshot.limit} "
                f"remaining, resets in {snapshot.reset}s",
                extra={"bucket": snapshot.bucket},
            )
        return snapshot


class HenrikApiService:
    """
    Async client for the HenrikDev Valorant API.

    One instance is shared by the application; the underlying
    httpx.AsyncClient is created on first use and closed on shutdown.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        quota: Optional[QuotaTracker] = None,
    ):
        """
        Initialize the HenrikDev API service.

        Args:
            api_key: API key sent in the Authorization header (default: settings)
            base_url: API root (default: settings.HENRIK_API_BASE_URL)
            timeout: Per-request transport timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
            quota: Shared quota tracker (a fresh one by default)
        """
        self.api_key = api_key if api_key is not None else settings.HENRIK_API_KEY
        self.base_url = (base_url or settings.HENRIK_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.EXTERNAL_API_TIMEOUT
        self.quota = quota or QuotaTracker()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            limits = httpx.Limits(max_keepalive_connections=20, max_connections=100)
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                limits=limits,
                headers=self._get_headers(),
                transport=self._transport,
            )
        return self._client

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": f"{settings.APP_NAME}/{settings.APP_VERSION}"}
        if self.api_key:
            headers["Authorization"] = self.api_key
        return headers

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def get_quota_status(self) -> QuotaSnapshot:
        """Current quota snapshot (immutable)."""
        return self.quota.snapshot()

    # ========================================================================
    # Request plumbing
    # ========================================================================

    async def _get(
        self,
        path: str,
        model: Type[P],
        params: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> P:
        """
        GET a path and validate the body into ``model``.

        Raises:
            UpstreamTimeoutError: Deadline or transport timeout elapsed
            UpstreamError: Non-200 status or transport failure (status 0)
            DecodeError: Body is not JSON or does not fit ``model``
        """
        client = await self._get_client()
        try:
            request = client.get(path, params=params)
            if timeout is not None:
                response = await asyncio.wait_for(request, timeout)
            else:
                response = await request
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning("HenrikDev request timed out", extra={"path": path, "timeout": timeout})
            raise UpstreamTimeoutError(f"HenrikDev request timed out: {path}") from e
        except httpx.RequestError as e:
            logger.error(f"HenrikDev transport error: {e}", extra={"path": path})
            raise UpstreamError(0, str(e), url=path) from e

        self.quota.update_from_headers(response.headers)

        if response.status_code != 200:
            logger.warning(
                "HenrikDev returned non-success status",
                extra={"path": path, "status": response.status_code},
            )
            raise UpstreamError(response.status_code, response.text[:MAX_ERROR_BODY], url=path)

        try:
            return model.model_validate_json(response.content)
        except ValidationError as e:
            logger.error("HenrikDev payload failed validation", extra={"path": path, "errors": e.error_count()})
            raise DecodeError(f"Malformed payload from {path}") from e

    @staticmethod
    def _seg(value: str) -> str:
        return quote(str(value), safe="")

    # ========================================================================
    # Endpoints
    # ========================================================================

    async def get_account(self, name: str, tag: str, timeout: Optional[float] = None) -> AccountResponse:
        """Resolve a Riot name#tag to an account (puuid, region, level, card)."""
        path = f"/valorant/v2/account/{self._seg(name)}/{self._seg(tag)}"
        return await self._get(path, AccountResponse, timeout=timeout)

    async def get_stored_matches(
        self, region: str, puuid: str, timeout: Optional[float] = None
    ) -> StoredMatchesResponse:
        """Competitive match summaries kept by HenrikDev (bulk historical)."""
        path = f"/valorant/v1/by-puuid/stored-matches/{self._seg(region)}/{self._seg(puuid)}"
        return await self._get(path, StoredMatchesResponse, params={"mode": COMPETITIVE_MODE}, timeout=timeout)

    async def get_stored_mmr_history(
        self, region: str, puuid: str, timeout: Optional[float] = None
    ) -> StoredMMRHistoryResponse:
        path = f"/valorant/v1/by-puuid/stored-mmr-history/{self._seg(region)}/{self._seg(puuid)}"
        return await self._get(path, StoredMMRHistoryResponse, timeout=timeout)

    async def get_v4_matches(self, region: str, puuid: str, timeout: Optional[float] = None) -> V4MatchesResponse:
        """Most recent matches with full rosters (live incremental)."""
        path = f"/valorant/v4/by-puuid/matches/{self._seg(region)}/pc/{self._seg(puuid)}"
        return await self._get(path, V4MatchesResponse, timeout=timeout)

    async def get_mmr_history(self, region: str, puuid: str, timeout: Optional[float] = None) -> MMRHistoryResponse:
        path = f"/valorant/v1/by-puuid/mmr-history/{self._seg(region)}/{self._seg(puuid)}"
        return await self._get(path, MMRHistoryResponse, timeout=timeout)

    async def get_mmr(self, region: str, puuid: str, timeout: Optional[float] = None) -> MMRResponse:
        """Current competitive tier and rank points."""
        path = f"/valorant/v3/by-puuid/mmr/{self._seg(region)}/pc/{self._seg(puuid)}"
        return await self._get(path, MMRResponse, timeout=timeout)

    async def get_match_v2(self, match_id: str, timeout: Optional[float] = None) -> MatchV2Response:
        """Full single-match detail including every participant."""
        path = f"/valorant/v2/match/{self._seg(match_id)}"
        return await self._get(path, MatchV2Response, timeout=timeout)
