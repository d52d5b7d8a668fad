"""
Unit tests for the fail-fast fan-out join.
"""

import asyncio

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_github.app.domain.fanout import gather_fail_fast
from shared.errors import UpstreamServiceError


async def _value(value, delay=0.0):
    await asyncio.sleep(delay)
    return value


async def _fail(delay=0.0):
    await asyncio.sleep(delay)
    raise UpstreamServiceError(404, "Not Found")


class TestGatherFailFast:
    """Test cases for gather_fail_fast."""

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await gather_fail_fast() == []

    @pytest.mark.asyncio
    async def test_results_keep_input_order(self):
        results = await gather_fail_fast(_value("a", 0.03), _value("b", 0.0), _value("c", 0.01))

        assert results == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_first_failure_is_raised(self):
        with pytest.raises(UpstreamServiceError) as exc_info:
            await gather_fail_fast(_value("a"), _fail(), _value("c"))

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_earliest_failure_wins_over_lower_index(self):
        async def fails_second():
            await asyncio.sleep(0)
            raise UpstreamServiceError(500, "second")

        async def fails_first():
            raise UpstreamServiceError(404, "first")

        with pytest.raises(UpstreamServiceError) as exc_info:
            await gather_fail_fast(fails_second(), fails_first())

        assert exc_info.value.message == "first"

    @pytest.mark.asyncio
    async def test_failure_cancels_pending_tasks(self):
        finished = []

        async def slow():
            await asyncio.sleep(5)
            finished.append("slow")
            return "slow"

        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(UpstreamServiceError):
            await gather_fail_fast(slow(), _fail(0.01))

        assert loop.time() - started < 1
        assert finished == []
