"""
Domain models for issue-pilot.

This module contains the data classes and enums representing the entities
that flow through the service: issues and review comments read from the
hosting server, the directives parsed out of issue bodies, and the paired
request/response shapes exchanged with the language model.

These models are the normalized internal representation. Hosting providers
convert their API objects into them, and nothing downstream of a provider
sees provider-specific types.

Example:
    Creating an issue from provider data::

        issue = Issue(
            number=42,
            subject="Add a readme",
            body="add a readme\\n---\\nfiles: README.md",
            url="https://github.com/org/repo/issues/42",
            author="jdoe",
        )
"""

from dataclasses import dataclass, field
from enum import Enum


DEFAULT_BASE_BRANCH = "main"


class ResponseType(str, Enum):
    """Kind of answer the model gave to a review comment."""

    ANSWER = "answer"
    """Plain prose reply, no code change."""

    CODE_CHANGE = "code_change"
    """Reply that carries a replacement for the commented file."""


class WorktreeState(str, Enum):
    """Session state of a local repository clone.

    The only valid transitions are IDLE -> COMMIT_IN_PROGRESS (start_commit)
    and COMMIT_IN_PROGRESS -> IDLE (finish_commit or abandon_commit).
    """

    IDLE = "idle"
    COMMIT_IN_PROGRESS = "commit_in_progress"


@dataclass
class Issue:
    """Represents an open issue on the hosting server.

    The body is kept raw; it is re-parsed into a Directive every time the
    issue is processed.
    """

    number: int
    """Repository-scoped issue number (e.g., #42)."""

    subject: str
    """Issue title."""

    body: str
    """Raw issue body, including any directive trailer."""

    url: str
    """Web URL to view the issue."""

    author: str
    """Login of the issue creator."""

    labels: list[str] = field(default_factory=list)
    """Label names attached to the issue."""


@dataclass
class Comment:
    """Represents a review comment anchored to a file in a pull request.

    A comment without ``branch`` cannot be acted on: there is nowhere to
    push a follow-up change.
    """

    id: int
    """Identifier of this comment."""

    change_request_id: int
    """Number of the pull request the comment was left on."""

    author: str
    """Login of the comment author."""

    body: str
    """Comment text."""

    file_path: str
    """Path of the file the comment is anchored to."""

    diff_hunk: str
    """Diff hunk shown alongside the comment."""

    url: str
    """Web URL to view the comment."""

    branch: str
    """Head branch of the pull request; empty when unknown."""

    thread_id: int | None = None
    """Identifier of the first comment in the thread.

    Replies are posted against the thread root. None means the comment is
    itself the root.
    """

    @property
    def reply_target(self) -> int:
        """Comment identifier that replies should be attached to."""
        return self.thread_id if self.thread_id is not None else self.id


@dataclass(frozen=True)
class File:
    """A file in the repository, addressed relative to the repo root."""

    path: str
    contents: str


@dataclass
class Directive:
    """Structured instructions parsed from an issue body."""

    instruction_text: str
    """Free-form prose above the trailer, trimmed."""

    base_branch: str = DEFAULT_BASE_BRANCH
    """Branch the change is based on and the pull request targets."""

    file_paths: list[str] = field(default_factory=list)
    """Repository paths the model should see and may rewrite."""


@dataclass(frozen=True)
class ChangeRequest:
    """Unit of work sent to the model for an issue.

    Immutable once built.
    """

    files: tuple[File, ...]
    subject: str
    instruction_text: str
    issue_number: int
    base_branch: str = DEFAULT_BASE_BRANCH


@dataclass
class ChangeResponse:
    """Files and notes extracted from the model's answer to a ChangeRequest."""

    files: list[File] = field(default_factory=list)
    notes: str = ""

    malformed_segments: list[str] = field(default_factory=list)
    """Raw file segments that could not be turned into a File.

    Parsing is best-effort; these are kept so callers can see what was
    dropped instead of losing it silently.
    """


@dataclass(frozen=True)
class DiffCommentRequest:
    """Single-file, single-comment request sent to the model."""

    file: File
    comment_body: str
    diff_hunk: str
    pr_number: int = 0


@dataclass
class DiffCommentResponse:
    """The model's reply to a DiffCommentRequest.

    ``file`` is set only for CODE_CHANGE responses.
    """

    type: ResponseType
    answer: str
    file: File | None = None

    @property
    def is_code_change(self) -> bool:
        return self.type == ResponseType.CODE_CHANGE and self.file is not None


@dataclass
class PullRequest:
    """A pull request opened by the service."""

    id: int
    number: int
    url: str
    head: str
    base: str


@dataclass
class IssueFilter:
    """Selection criteria for listing open issues.

    An issue must carry every label in ``labels``, be authored by one of
    ``authors`` and carry none of ``exclude_labels``.
    """

    labels: list[str] = field(default_factory=list)
    authors: list[str] = field(default_factory=list)
    exclude_labels: list[str] = field(default_factory=list)


@dataclass
class CommentFilter:
    """Selection criteria for listing unanswered review comments."""

    authors: list[str] = field(default_factory=list)
    bot_handle: str = ""
    """Login of the service account; threads it spoke last in are skipped."""


@dataclass(frozen=True)
class IssueTask:
    """Queued work derived from an issue."""

    issue: Issue

    @property
    def key(self) -> int:
        return self.issue.number


@dataclass(frozen=True)
class CommentTask:
    """Queued work derived from a review comment."""

    comment: Comment

    @property
    def key(self) -> int:
        return self.comment.change_request_id


Task = IssueTask | CommentTask
