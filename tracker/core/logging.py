"""
Structured logging for the tracker.

Every record carries the request correlation id. Production emits one JSON
object per line; development gets a colored single-line rendering. Fields
passed through ``extra=`` (puuid, match_id, counts) are kept as structured
data in both.
"""
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Bound per request by CorrelationIdMiddleware; asyncio.create_task copies
# the context, so settle-delay stamps log under the request that spawned them
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

# Attribute names present on every LogRecord, plus the ones the Formatter adds
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Keys: timestamp (UTC, ISO 8601), level, logger, message, correlation_id,
    plus ``exception`` when exc_info is set and ``extra`` when the call
    passed structured fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": correlation_id_var.get(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = _extra_fields(record)
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, default=str)


class ColoredFormatter(logging.Formatter):
    """Human-readable console output for local development."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        parts = [f"{color}[{record.levelname}]{self.RESET} {record.name}: {record.getMessage()}"]

        parts.extend(f"{key}={value}" for key, value in _extra_fields(record).items())

        correlation_id = correlation_id_var.get()
        if correlation_id:
            parts.append(f"| correlation_id={correlation_id}")

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    handler: Optional[logging.Handler] = None,
) -> None:
    """
    Install a single root handler with the JSON or colored formatter.

    Args:
        level: Root level name; unknown names fall back to INFO
        json_output: JSON lines when True, colored console otherwise
        handler: Handler to install (default: stdout stream)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    handler = handler or logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter() if json_output else ColoredFormatter())
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger; call with ``__name__``."""
    return logging.getLogger(name)


def set_correlation_id(correlation_id: str) -> Any:
    """Bind the id to the current context. Returns the reset token."""
    return correlation_id_var.set(correlation_id)


def clear_correlation_id(token: Any) -> None:
    correlation_id_var.reset(token)
