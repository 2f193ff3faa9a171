"""Deduplicating FIFO queue of pending issue and comment tasks.

One TaskQueue exists per repository. Two lock sets track which issue
numbers and pull request numbers currently have a task queued or being
processed; pushing an entity that is already locked is a no-op. A lock is
released once its task's callback returns, whatever the outcome, so the
entity can be picked up again by a later poll. Nothing is retried
automatically.

Pushing never blocks. The queue is unbounded unless ``max_size`` is set, in
which case a push onto a full queue returns ``PushResult.FULL`` without
locking the entity; the next poll rediscovers it.

Example:
    >>> queue = TaskQueue()
    >>> queue.push_issue(issue)
    <PushResult.QUEUED: 'queued'>
    >>> queue.push_issue(issue)
    <PushResult.DUPLICATE: 'duplicate'>
    >>> await queue.drain_all(handle_issue, handle_comment)
    1
"""

import threading
from collections import deque
from collections.abc import Awaitable, Callable
from enum import Enum

import structlog

from issue_pilot.models.domain import Comment, CommentTask, Issue, IssueTask, Task

log = structlog.get_logger(__name__)

IssueCallback = Callable[[Issue], Awaitable[object]]
CommentCallback = Callable[[Comment], Awaitable[object]]


class PushResult(str, Enum):
    """Outcome of pushing an entity onto the queue."""

    QUEUED = "queued"
    DUPLICATE = "duplicate"
    FULL = "full"


class TaskQueue:
    """FIFO of IssueTask / CommentTask with per-entity deduplication.

    Attributes:
        max_size: Maximum number of queued tasks, or None for unbounded.
    """

    def __init__(self, max_size: int | None = None) -> None:
        if max_size is not None and max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")

        self.max_size = max_size
        self._tasks: deque[Task] = deque()
        self._locked_issues: set[int] = set()
        self._locked_prs: set[int] = set()
        self._mu = threading.Lock()

        log.info("task_queue_created", max_size=max_size)

    def __len__(self) -> int:
        with self._mu:
            return len(self._tasks)

    def is_issue_locked(self, number: int) -> bool:
        with self._mu:
            return number in self._locked_issues

    def is_pr_locked(self, number: int) -> bool:
        with self._mu:
            return number in self._locked_prs

    def push_issue(self, issue: Issue) -> PushResult:
        """Queue an issue unless its number is already locked."""
        return self._push(IssueTask(issue), self._locked_issues)

    def push_comment(self, comment: Comment) -> PushResult:
        """Queue a comment unless its pull request is already locked."""
        return self._push(CommentTask(comment), self._locked_prs)

    def _push(self, task: Task, locks: set[int]) -> PushResult:
        kind = "issue" if isinstance(task, IssueTask) else "pr"

        with self._mu:
            if task.key in locks:
                log.info("task_skipped_locked", kind=kind, number=task.key)
                return PushResult.DUPLICATE

            if self.max_size is not None and len(self._tasks) >= self.max_size:
                log.warning("task_queue_full", kind=kind, number=task.key, max_size=self.max_size)
                return PushResult.FULL

            locks.add(task.key)
            self._tasks.append(task)

        log.info("task_queued", kind=kind, number=task.key)
        return PushResult.QUEUED

    def _pop(self) -> Task | None:
        with self._mu:
            return self._tasks.popleft() if self._tasks else None

    def _release(self, task: Task) -> None:
        with self._mu:
            if isinstance(task, IssueTask):
                self._locked_issues.discard(task.key)
            else:
                self._locked_prs.discard(task.key)

    async def drain_all(self, on_issue: IssueCallback, on_comment: CommentCallback) -> int:
        """Process every queued task in FIFO order.

        Callbacks run one at a time. A callback that raises is logged and
        the drain moves on; the task's lock is released either way.

        Returns:
            Number of tasks processed.
        """
        processed = 0

        while (task := self._pop()) is not None:
            try:
                if isinstance(task, IssueTask):
                    await on_issue(task.issue)
                else:
                    await on_comment(task.comment)
            except Exception as e:
                log.error(
                    "task_callback_failed",
                    kind=type(task).__name__,
                    number=task.key,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                self._release(task)
                processed += 1

            log.info("task_finished", kind=type(task).__name__, number=task.key)

        return processed
