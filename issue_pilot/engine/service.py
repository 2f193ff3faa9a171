"""
Service loop driving every repository orchestrator.

Repositories are polled one after another, never concurrently. A failure
while polling one repository is logged and does not stop the others; the
loop then sleeps for the configured interval and starts over.
"""

import asyncio

import structlog

from issue_pilot.engine.orchestrator import PollSummary, RepositoryOrchestrator
from issue_pilot.exceptions import ConfigurationError, IssuePilotError

log = structlog.get_logger(__name__)


class ServiceLoop:
    """Periodically poll a fixed set of repositories.

    Attributes:
        orchestrators: One orchestrator per configured repository.
        poll_interval: Seconds to sleep between cycles.
    """

    def __init__(self, orchestrators: list[RepositoryOrchestrator], poll_interval: float = 30.0) -> None:
        if not orchestrators:
            raise ConfigurationError("At least one repository must be configured")
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {poll_interval}")

        self.orchestrators = orchestrators
        self.poll_interval = poll_interval
        self._stop = asyncio.Event()

    async def run_once(self) -> dict[str, PollSummary | None]:
        """Poll every repository once.

        Returns:
            Poll summary per repository name; None where polling failed.
        """
        results: dict[str, PollSummary | None] = {}

        for orchestrator in self.orchestrators:
            try:
                results[orchestrator.name] = await orchestrator.poll()
            except IssuePilotError as e:
                log.error("repository_poll_failed", repo=orchestrator.name, error=e.message)
                results[orchestrator.name] = None
            except Exception as e:
                log.error("repository_poll_failed_unexpected", repo=orchestrator.name, error=str(e), exc_info=True)
                results[orchestrator.name] = None

        return results

    async def run_forever(self, max_cycles: int | None = None) -> int:
        """Poll until stop() is called or ``max_cycles`` cycles have run.

        Returns:
            Number of completed cycles.
        """
        log.info("service_started", repositories=[o.name for o in self.orchestrators], interval=self.poll_interval)
        cycles = 0

        while not self._stop.is_set():
            await self.run_once()
            cycles += 1

            if max_cycles is not None and cycles >= max_cycles:
                break

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

        log.info("service_stopped", cycles=cycles)
        return cycles

    def stop(self) -> None:
        """Ask run_forever to return after the current cycle."""
        self._stop.set()
