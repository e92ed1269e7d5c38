"""Cancellation Token Tests"""
import asyncio
import time

import pytest

from mtfoundry.services.simulation.cancellation import CancellationToken


class TestCancellationToken:
    """CancellationToken 单元测试"""

    def test_cancel_propagates_to_children(self):
        parent = CancellationToken()
        a, b = parent.child(), parent.child()
        parent.cancel()
        assert a.cancelled and b.cancelled

    def test_child_cancel_does_not_touch_parent(self):
        parent = CancellationToken()
        child = parent.child()
        child.cancel()
        assert child.cancelled
        assert not parent.cancelled

    def test_child_of_cancelled_parent_starts_cancelled(self):
        parent = CancellationToken()
        parent.cancel()
        assert parent.child().cancelled

    @pytest.mark.asyncio
    async def test_sleep_returns_false_on_timeout(self):
        assert await CancellationToken().sleep(0) is False

    @pytest.mark.asyncio
    async def test_cancel_wakes_sleeper_early(self):
        token = CancellationToken()

        async def _cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel()

        started = time.monotonic()
        canceller = asyncio.create_task(_cancel_soon())
        assert await token.sleep(5) is True
        await canceller
        assert time.monotonic() - started < 1

    @pytest.mark.asyncio
    async def test_sleep_on_cancelled_token_returns_immediately(self):
        token = CancellationToken()
        token.cancel()
        assert await token.sleep(5) is True
