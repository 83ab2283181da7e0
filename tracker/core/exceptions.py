"""
Error taxonomy for the aggregation layer.

Services raise these; only the HTTP layer (tracker.main) turns them into
status codes. Each class carries a stable machine-readable ``code`` so
clients can branch without parsing messages.
"""
from typing import Optional


class TrackerError(Exception):
    """Base class for every failure the aggregation layer surfaces."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(TrackerError):
    """Unknown player or match. Not retried."""

    code = "not_found"
    status_code = 404


class UpstreamError(TrackerError):
    """Non-success HTTP status from the stats API."""

    code = "upstream_error"
    status_code = 502

    def __init__(self, status: int, body: str = "", url: Optional[str] = None):
        self.status = status
        self.body = body
        self.url = url
        super().__init__(f"upstream returned HTTP {status}" + (f" for {url}" if url else ""))


class UpstreamTimeoutError(TrackerError, TimeoutError):
    """Deadline exceeded while waiting on the stats API. Safe to retry."""

    code = "upstream_timeout"
    status_code = 504


class DecodeError(TrackerError):
    """Malformed upstream payload."""

    code = "decode_error"
    status_code = 502


class PersistenceError(TrackerError):
    """A batch transaction failed and was rolled back."""

    code = "persistence_error"
    status_code = 500
