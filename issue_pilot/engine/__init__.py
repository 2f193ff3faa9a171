"""Polling and task execution engine.

Key Components:
    - TaskQueue: Deduplicating FIFO of pending issue/comment tasks
    - RepositoryOrchestrator: Per-repository poll, dispatch and task handling
    - ServiceLoop: Sequential polling of every repository on an interval

Example:
    >>> from issue_pilot.engine import ServiceLoop
    >>> loop = ServiceLoop(orchestrators, poll_interval=30)
    >>> await loop.run_forever()
"""

from issue_pilot.engine.orchestrator import PollSummary, RepositoryOrchestrator
from issue_pilot.engine.service import ServiceLoop
from issue_pilot.engine.task_queue import PushResult, TaskQueue

__all__ = [
    "PollSummary",
    "PushResult",
    "RepositoryOrchestrator",
    "ServiceLoop",
    "TaskQueue",
]
