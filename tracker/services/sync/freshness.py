"""
Freshness policy for cached rows.

Pure functions; the orchestrators pick the timestamp and TTL for their
data class (identity/rank or match history) and pass them in.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from tracker.utils.timezone import to_naive_utc, utcnow


class RefreshReason(str, Enum):
    COLD = "cold"
    PARTIAL = "partial"
    FORCED = "forced"
    STALE = "stale"
    FRESH = "fresh"


@dataclass(frozen=True)
class FreshnessDecision:
    refresh: bool
    reason: RefreshReason
    age_seconds: Optional[float] = None

    def __bool__(self) -> bool:
        return self.refresh


def evaluate_freshness(
    last_fetch_at: Optional[datetime],
    is_partial: bool,
    force_refresh: bool,
    ttl: Union[timedelta, float],
    now: Optional[datetime] = None,
) -> FreshnessDecision:
    """
    Decide whether a cached row must be refetched, and why.

    Precedence: cold, partial, forced, then age against the TTL. An age
    exactly equal to the TTL is still fresh.
    """
    if last_fetch_at is None:
        return FreshnessDecision(True, RefreshReason.COLD)
    if is_partial:
        return FreshnessDecision(True, RefreshReason.PARTIAL)
    if force_refresh:
        return FreshnessDecision(True, RefreshReason.FORCED)

    if not isinstance(ttl, timedelta):
        ttl = timedelta(seconds=ttl)
    age = (to_naive_utc(now) or utcnow()) - to_naive_utc(last_fetch_at)
    if age > ttl:
        return FreshnessDecision(True, RefreshReason.STALE, age.total_seconds())
    return FreshnessDecision(False, RefreshReason.FRESH, age.total_seconds())


def should_refresh(
    last_fetch_at: Optional[datetime],
    is_partial: bool,
    force_refresh: bool,
    ttl: Union[timedelta, float],
    now: Optional[datetime] = None,
) -> bool:
    return evaluate_freshness(last_fetch_at, is_partial, force_refresh, ttl, now).refresh
