"""
Abstract base classes for the service's external collaborators.

This module defines the two interfaces the orchestration engine talks to:
the hosting server (issues, review comments, labels, pull requests) and the
language model (a single blocking prompt -> completion call). Concrete
implementations live next to this module and are chosen by
``issue_pilot.providers.factory``.
"""

from abc import ABC, abstractmethod

from issue_pilot.models.domain import Comment, CommentFilter, Issue, IssueFilter, PullRequest


class HostingProvider(ABC):
    """Abstract base class for hosting server implementations.

    Implementations normalize provider API objects into the domain models
    in ``issue_pilot.models.domain``. All methods are async so that network
    calls never block the event loop.
    """

    async def connect(self) -> None:
        """Establish the API client. Optional for stateless providers."""

    async def disconnect(self) -> None:
        """Release the API client. Optional for stateless providers."""

    @abstractmethod
    async def list_open_issues(self, issue_filter: IssueFilter) -> list[Issue]:
        """List open issues matching the filter.

        Args:
            issue_filter: An issue must carry every label in ``labels``, be
                authored by one of ``authors`` and carry none of
                ``exclude_labels``.

        Returns:
            Matching issues, oldest (lowest number) first. Pull requests
            are never returned.
        """

    @abstractmethod
    async def list_open_comments(self, comment_filter: CommentFilter) -> list[Comment]:
        """List unanswered review comments on open pull requests.

        Threads whose latest comment was written by
        ``comment_filter.bot_handle`` are considered answered and skipped.

        Returns:
            One Comment per unanswered thread: its latest comment.
        """

    @abstractmethod
    async def comment_on_issue(self, number: int, text: str) -> None:
        """Add a comment to an issue."""

    @abstractmethod
    async def remove_label(self, number: int, label: str) -> None:
        """Remove a label from an issue. No-op if the label is absent."""

    @abstractmethod
    async def add_label(self, number: int, label: str) -> None:
        """Add a label to an issue."""

    @abstractmethod
    async def open_change_request(
        self,
        from_branch: str,
        to_branch: str,
        title: str,
        body: str,
    ) -> PullRequest:
        """Open a pull request from ``from_branch`` into ``to_branch``."""

    @abstractmethod
    async def reply_to_comment(self, change_request_id: int, comment_id: int, text: str) -> None:
        """Reply in the review thread rooted at ``comment_id``."""


class LLMProvider(ABC):
    """Abstract base class for language model clients.

    A single request/response call: no streaming, no conversation state.
    One instance may be shared by every repository orchestrator.
    """

    @abstractmethod
    async def evaluate(self, model: str, prompt: str, label: str = "") -> str:
        """Send ``prompt`` to ``model`` and return the completion text.

        Args:
            model: Model identifier; empty means the provider's default.
            prompt: Full prompt text.
            label: Short tag for logs and debug dumps (e.g. "issue-42").

        Raises:
            LLMError: If the request fails or returns no completion.
        """

    async def close(self) -> None:
        """Release any underlying HTTP resources."""
