"""
Concurrent fetch group: run upstream calls together under one deadline.

Either every call succeeds and the results come back in call order, or
the whole group fails: the first error cancels the others and propagates,
and an expired deadline cancels everything and raises
UpstreamTimeoutError.
"""
import asyncio
from typing import Any, Awaitable, List, Optional

from tracker.core.exceptions import UpstreamTimeoutError
from tracker.core.logging import get_logger

logger = get_logger(__name__)


async def _cancel_all(tasks) -> None:
    for task in tasks:
        task.cancel()
    # Let cancellations land so no call outlives the group
    await asyncio.gather(*tasks, return_exceptions=True)


async def fan_out(*calls: Awaitable[Any], timeout: Optional[float] = None) -> List[Any]:
    """
    Await ``calls`` concurrently.

    Args:
        calls: Coroutines (or other awaitables) to run
        timeout: Deadline in seconds for the whole group (None = no deadline)

    Returns:
        Results in the order the calls were given

    Raises:
        UpstreamTimeoutError: The deadline elapsed before every call finished
        Exception: The first failure among the calls
    """
    if not calls:
        return []

    tasks = [asyncio.ensure_future(call) for call in calls]
    try:
        done, pending = await asyncio.wait(tasks, timeout=timeout, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        await _cancel_all(tasks)
        raise

    failed = [task for task in tasks if task in done and not task.cancelled() and task.exception() is not None]
    if failed:
        await _cancel_all(list(pending))
        error = failed[0].exception()
        # Retrieve the remaining exceptions so asyncio does not report them as unhandled
        for task in failed[1:]:
            task.exception()
        logger.debug("Fan-out aborted", extra={"calls": len(tasks), "error": type(error).__name__})
        raise error

    if pending:
        await _cancel_all(list(pending))
        logger.warning("Fan-out deadline exceeded", extra={"calls": len(tasks), "pending": len(pending), "timeout": timeout})
        raise UpstreamTimeoutError(f"{len(pending)} of {len(tasks)} upstream calls exceeded {timeout}s")

    return [task.result() for task in tasks]


async def within_deadline(call: Awaitable[Any], timeout: Optional[float], label: str = "request") -> Any:
    """Await one call under an overall deadline, mapping expiry to UpstreamTimeoutError."""
    if timeout is None:
        return await call
    try:
        return await asyncio.wait_for(call, timeout)
    except asyncio.TimeoutError as e:
        if isinstance(e, UpstreamTimeoutError):
            raise
        logger.warning(f"{label} exceeded overall deadline", extra={"timeout": timeout})
        raise UpstreamTimeoutError(f"{label} exceeded {timeout}s") from e
