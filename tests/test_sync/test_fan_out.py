"""Tests for the concurrent fetch group."""
import asyncio

import pytest

from tracker.core.exceptions import UpstreamError, UpstreamTimeoutError
from tracker.services.sync.fan_out import fan_out, within_deadline


async def _value(value, delay=0.0):
    await asyncio.sleep(delay)
    return value


async def _fail(error, delay=0.0):
    await asyncio.sleep(delay)
    raise error


class TestFanOut:
    """Tests for fan_out() all-or-nothing semantics."""

    @pytest.mark.asyncio
    async def test_results_in_call_order(self):
        """Should return results in call order regardless of completion order."""
        results = await fan_out(_value("slow", 0.05), _value("fast"), timeout=1)
        assert results == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_empty_group(self):
        """Should return an empty list for no calls."""
        assert await fan_out(timeout=1) == []

    @pytest.mark.asyncio
    async def test_first_failure_cancels_siblings(self):
        """Should propagate the failure and cancel the call still in flight."""
        sibling_cancelled = asyncio.Event()

        async def long_call():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                sibling_cancelled.set()
                raise

        with pytest.raises(UpstreamError) as exc_info:
            await fan_out(long_call(), _fail(UpstreamError(500, "boom")), timeout=5)

        assert exc_info.value.status == 500
        assert sibling_cancelled.is_set()

    @pytest.mark.asyncio
    async def test_success_of_one_leg_is_not_surfaced(self):
        """Should raise even though the other leg already returned."""
        with pytest.raises(UpstreamError):
            await fan_out(_value("matches"), _fail(UpstreamError(503), delay=0.01), timeout=1)

    @pytest.mark.asyncio
    async def test_deadline_raises_timeout(self):
        """Should cancel everything and raise UpstreamTimeoutError past the deadline."""
        with pytest.raises(UpstreamTimeoutError):
            await fan_out(_value("a", 0.5), _value("b"), timeout=0.05)

    @pytest.mark.asyncio
    async def test_timeout_is_a_builtin_timeout(self):
        """Should be catchable as TimeoutError."""
        with pytest.raises(TimeoutError):
            await fan_out(_value("a", 0.5), timeout=0.01)


class TestWithinDeadline:

    @pytest.mark.asyncio
    async def test_returns_value(self):
        """Should pass the result through when within the deadline."""
        assert await within_deadline(_value(7), 1) == 7

    @pytest.mark.asyncio
    async def test_maps_expiry(self):
        """Should map an expired overall deadline to UpstreamTimeoutError."""
        with pytest.raises(UpstreamTimeoutError):
            await within_deadline(_value(7, 0.5), 0.01)

    @pytest.mark.asyncio
    async def test_inner_timeout_passes_through(self):
        """Should re-raise an inner UpstreamTimeoutError unchanged."""
        inner = UpstreamTimeoutError("fan-out deadline")
        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await within_deadline(_fail(inner), 1)
        assert exc_info.value is inner
