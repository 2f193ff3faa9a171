"""Custom exception hierarchy for issue-pilot.

Exception Hierarchy:
    IssuePilotError (base)
    ├── ConfigurationError
    ├── GitOperationError
    │   ├── WorktreeStateError
    │   │   ├── CommitAlreadyInProgressError
    │   │   └── CommitNotInProgressError
    │   └── UnsafePathError
    ├── ExternalServiceError
    ├── LLMError
    └── TaskError
        ├── CommentBranchMissingError
        └── EmptyChangeError

Task-level errors are caught at the orchestrator boundary and reported back
to the originating issue or review thread. Configuration errors are fatal at
startup.

Example Usage:
    >>> from issue_pilot.exceptions import ConfigurationError
    >>> try:
    ...     load_config(path)
    ... except FileNotFoundError as e:
    ...     raise ConfigurationError(f"Config file not found: {path}") from e
"""


class IssuePilotError(Exception):
    """Base exception for all issue-pilot errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(IssuePilotError):
    """Configuration-related errors.

    Examples:
        - Configuration file not found
        - Invalid YAML syntax
        - No repositories configured
        - Missing hosting credentials
    """

    pass


class GitOperationError(IssuePilotError):
    """Local git operation errors (clone, checkout, commit, push)."""

    pass


class WorktreeStateError(GitOperationError):
    """A worktree session operation was called in the wrong state.

    These signal a broken call sequence rather than an environmental
    failure; they are fatal to the current task.

    Attributes:
        state: The worktree state at the time of the violation
    """

    def __init__(self, message: str, state: str | None = None) -> None:
        self.state = state
        full_message = message if state is None else f"{message} (state: {state})"
        super().__init__(full_message)
        self.message = message


class CommitAlreadyInProgressError(WorktreeStateError):
    """start_commit was called while a commit session is open."""

    pass


class CommitNotInProgressError(WorktreeStateError):
    """A mutating operation was called with no open commit session."""

    pass


class UnsafePathError(GitOperationError):
    """A file path resolves outside the repository clone."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Path escapes repository root: {path}")


class ExternalServiceError(IssuePilotError):
    """Hosting server communication errors.

    Attributes:
        status_code: HTTP status code (if applicable)
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code

        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"

        super().__init__(full_message)
        self.message = message


class LLMError(IssuePilotError):
    """The language model request failed or returned nothing usable.

    Attributes:
        status_code: HTTP status code (if applicable)
        model: Model the request was sent to
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        model: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.model = model

        parts = []
        if status_code:
            parts.append(f"HTTP {status_code}")
        if model:
            parts.append(f"model: {model}")

        full_message = message if not parts else f"{message} ({', '.join(parts)})"
        super().__init__(full_message)
        self.message = message


class TaskError(IssuePilotError):
    """A single issue or comment task cannot be completed."""

    pass


class CommentBranchMissingError(TaskError):
    """A review comment carries no branch, so no change can be pushed."""

    def __init__(self, comment_id: int) -> None:
        self.comment_id = comment_id
        super().__init__(f"Comment {comment_id} has no branch to work on")


class EmptyChangeError(TaskError):
    """The model answered without any file to commit."""

    pass
