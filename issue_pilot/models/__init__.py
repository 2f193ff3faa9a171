"""Core domain models for issue-pilot.

Key Models:
    - Issue: Open issue on the hosting server
    - Comment: Review comment anchored to a pull request file
    - Directive: Instructions parsed from an issue body
    - ChangeRequest / ChangeResponse: Issue-level model exchange
    - DiffCommentRequest / DiffCommentResponse: Comment-level model exchange
    - IssueTask / CommentTask: Queued work items

Example:
    >>> from issue_pilot.models import Issue, File
    >>> issue = Issue(number=42, subject="Add readme", body="...", url="...", author="jdoe")
"""

from issue_pilot.models.domain import (
    DEFAULT_BASE_BRANCH,
    ChangeRequest,
    ChangeResponse,
    Comment,
    CommentFilter,
    CommentTask,
    DiffCommentRequest,
    DiffCommentResponse,
    Directive,
    File,
    Issue,
    IssueFilter,
    IssueTask,
    PullRequest,
    ResponseType,
    Task,
    WorktreeState,
)

__all__ = [
    "DEFAULT_BASE_BRANCH",
    "ChangeRequest",
    "ChangeResponse",
    "Comment",
    "CommentFilter",
    "CommentTask",
    "DiffCommentRequest",
    "DiffCommentResponse",
    "Directive",
    "File",
    "Issue",
    "IssueFilter",
    "IssueTask",
    "PullRequest",
    "ResponseType",
    "Task",
    "WorktreeState",
]
