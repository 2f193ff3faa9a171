"""Tests for issue_pilot/engine/service.py."""

from unittest.mock import AsyncMock, Mock

import pytest

from issue_pilot.engine.orchestrator import PollSummary
from issue_pilot.engine.service import ServiceLoop
from issue_pilot.exceptions import ConfigurationError, ExternalServiceError


def make_orchestrator(name: str, poll: AsyncMock | None = None) -> Mock:
    orchestrator = Mock()
    orchestrator.name = name
    orchestrator.poll = poll or AsyncMock(return_value=PollSummary(processed=1))
    return orchestrator


class TestServiceLoop:
    def test_requires_repositories(self):
        with pytest.raises(ConfigurationError):
            ServiceLoop([], poll_interval=1)

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            ServiceLoop([make_orchestrator("a/b")], poll_interval=0)

    @pytest.mark.asyncio
    async def test_run_once_polls_in_order(self):
        calls: list[str] = []

        def recorder(name):
            async def poll():
                calls.append(name)
                return PollSummary()

            return AsyncMock(side_effect=poll)

        loop = ServiceLoop([make_orchestrator("a/one", recorder("one")), make_orchestrator("a/two", recorder("two"))])

        await loop.run_once()

        assert calls == ["one", "two"]

    @pytest.mark.asyncio
    async def test_failing_repository_does_not_stop_others(self):
        broken = make_orchestrator("a/broken", AsyncMock(side_effect=ExternalServiceError("rate limited", 403)))
        crashing = make_orchestrator("a/crashing", AsyncMock(side_effect=RuntimeError("bug")))
        healthy = make_orchestrator("a/healthy")

        results = await ServiceLoop([broken, crashing, healthy]).run_once()

        assert results["a/broken"] is None
        assert results["a/crashing"] is None
        assert results["a/healthy"] == PollSummary(processed=1)
        healthy.poll.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_forever_stops_after_max_cycles(self):
        orchestrator = make_orchestrator("a/b")
        loop = ServiceLoop([orchestrator], poll_interval=0.01)

        cycles = await loop.run_forever(max_cycles=3)

        assert cycles == 3
        assert orchestrator.poll.await_count == 3

    @pytest.mark.asyncio
    async def test_stop_ends_loop(self):
        loop = ServiceLoop([make_orchestrator("a/b")], poll_interval=60)

        async def poll_then_stop():
            loop.stop()
            return PollSummary()

        loop.orchestrators[0].poll = AsyncMock(side_effect=poll_then_stop)

        assert await loop.run_forever() == 1
