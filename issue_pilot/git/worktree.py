"""Local clone management with an explicit commit-session state machine.

Each configured repository gets one WorktreeController, which owns the
on-disk clone exclusively. Changes are built up inside a commit session::

    IDLE --start_commit--> COMMIT_IN_PROGRESS --finish_commit--> IDLE

checkout_remote_branch and write_or_replace_file are only valid inside a
session; calling them (or start_commit twice) in the wrong state raises a
WorktreeStateError. The state flag is the only concurrency control and
assumes a single caller, which holds because repositories are processed
sequentially.

GitPython is synchronous, so every git or disk operation runs through
``asyncio.to_thread``.

Example:
    >>> controller = await WorktreeController.clone(url, "/tmp/repo", "pilot", "pilot@example.com")
    >>> request = await controller.parse_directive_and_begin_session(issue)
    >>> await controller.write_or_replace_file(File("README.md", "# Hi"))
    >>> await controller.finish_commit("Add readme")
    >>> await controller.push_branch("issue-pilot/issue-42-1a2b3c4d")
"""

import asyncio
import shutil
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import git
import structlog
from git import Actor

from issue_pilot.exceptions import (
    CommitAlreadyInProgressError,
    CommitNotInProgressError,
    GitOperationError,
    UnsafePathError,
)
from issue_pilot.models.domain import ChangeRequest, File, Issue, WorktreeState
from issue_pilot.parsing.directive import parse_directive

log = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_REMOTE = "origin"


async def _run_sync(func: Callable[[], T]) -> T:
    """Run a blocking git/disk call in a worker thread."""
    return await asyncio.to_thread(func)


def _git_error(action: str, error: git.GitCommandError) -> GitOperationError:
    stderr = error.stderr.strip() if isinstance(error.stderr, str) else ""
    return GitOperationError(f"git {action} failed: {stderr or error}")


class WorktreeController:
    """Owns one local clone and the commit session running against it.

    Attributes:
        root: Resolved path of the clone's working tree.
        author: Identity used for every commit.
        remote_name: Remote that branches are fetched from and pushed to.
    """

    def __init__(self, repo: git.Repo, author: Actor, remote_name: str = DEFAULT_REMOTE) -> None:
        if repo.working_tree_dir is None:
            raise GitOperationError("Repository has no working tree")

        self._repo = repo
        self.root = Path(repo.working_tree_dir).resolve()
        self.author = author
        self.remote_name = remote_name
        self._state = WorktreeState.IDLE

    @classmethod
    async def clone(
        cls,
        url: str,
        local_path: str | Path,
        author_name: str,
        author_email: str,
        remote_name: str = DEFAULT_REMOTE,
    ) -> "WorktreeController":
        """Clone ``url`` into ``local_path`` from scratch.

        Anything already at ``local_path`` is removed first; there is no
        incremental resume between process runs.

        Raises:
            GitOperationError: If the clone fails.
        """
        path = Path(local_path)

        def _clone() -> git.Repo:
            if path.exists():
                shutil.rmtree(path)
            return git.Repo.clone_from(url, str(path), origin=remote_name)

        log.info("cloning_repository", local_path=str(path))
        try:
            repo = await _run_sync(_clone)
        except git.GitCommandError as e:
            raise _git_error("clone", e) from e

        log.info("repository_cloned", local_path=str(path))
        return cls(repo, Actor(author_name, author_email), remote_name=remote_name)

    @classmethod
    def open(
        cls,
        local_path: str | Path,
        author_name: str,
        author_email: str,
        remote_name: str = DEFAULT_REMOTE,
    ) -> "WorktreeController":
        """Wrap an existing clone without touching it.

        Raises:
            GitOperationError: If ``local_path`` is not a git working tree.
        """
        try:
            repo = git.Repo(str(local_path))
        except (git.InvalidGitRepositoryError, git.NoSuchPathError) as e:
            raise GitOperationError(f"Not a git repository: {local_path}") from e

        return cls(repo, Actor(author_name, author_email), remote_name=remote_name)

    @property
    def state(self) -> WorktreeState:
        return self._state

    def _require_session(self, operation: str) -> None:
        if self._state != WorktreeState.COMMIT_IN_PROGRESS:
            raise CommitNotInProgressError(
                f"{operation} requires an open commit session; call start_commit first",
                state=self._state.value,
            )

    def _resolve(self, path: str) -> Path:
        """Resolve a repo-relative path, refusing anything outside the clone."""
        full_path = (self.root / path).resolve()
        try:
            relative = full_path.relative_to(self.root)
        except ValueError as e:
            raise UnsafePathError(path) from e

        if not relative.parts or relative.parts[0] == ".git":
            raise UnsafePathError(path)

        return full_path

    async def start_commit(self) -> None:
        """Open a commit session.

        Raises:
            CommitAlreadyInProgressError: If a session is already open. The
                state is left unchanged.
        """
        if self._state != WorktreeState.IDLE:
            raise CommitAlreadyInProgressError(
                "Cannot start a new commit while another is in progress",
                state=self._state.value,
            )

        self._state = WorktreeState.COMMIT_IN_PROGRESS
        log.debug("commit_session_started", root=str(self.root))

    async def checkout_remote_branch(self, name: str) -> None:
        """Reset the working tree to the tip of ``<remote>/<name>``.

        Uncommitted modifications made earlier in the session are discarded.

        Raises:
            CommitNotInProgressError: If no session is open.
            GitOperationError: If fetching or checking out fails.
        """
        self._require_session("checkout_remote_branch")
        remote_ref = f"{self.remote_name}/{name}"

        def _checkout() -> None:
            self._repo.remote(self.remote_name).fetch()
            self._repo.git.checkout("-f", "-B", name, remote_ref)
            self._repo.git.reset("--hard", remote_ref)
            self._repo.git.clean("-fd")

        log.info("checking_out_remote_branch", branch=name)
        try:
            await _run_sync(_checkout)
        except git.GitCommandError as e:
            raise _git_error(f"checkout of {remote_ref}", e) from e

    async def get_file(self, path: str) -> File:
        """Read a file from the working tree.

        A missing file yields empty contents so that callers can ask the
        model to create it.
        """
        full_path = self._resolve(path)

        def _read() -> str:
            try:
                return full_path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return ""

        return File(path=path, contents=await _run_sync(_read))

    async def get_file_at(self, branch: str, path: str) -> File:
        """Read a file as of ``<remote>/<branch>`` without touching the tree.

        A path missing on that branch yields empty contents.

        Raises:
            GitOperationError: If the branch does not exist on the remote.
        """
        self._resolve(path)
        remote_ref = f"{self.remote_name}/{branch}"

        def _show() -> str:
            remote = self._repo.remote(self.remote_name)
            remote.fetch()
            if remote_ref not in [ref.name for ref in remote.refs]:
                raise GitOperationError(f"Branch {branch} not found on remote {self.remote_name}")
            try:
                return self._repo.git.show(f"{remote_ref}:{path}")
            except git.GitCommandError:
                return ""

        try:
            contents = await _run_sync(_show)
        except git.GitCommandError as e:
            raise _git_error(f"fetch of {remote_ref}", e) from e

        return File(path=path, contents=contents)

    async def write_or_replace_file(self, file: File) -> None:
        """Write a file into the working tree and stage it.

        Parent directories are created as needed.

        Raises:
            CommitNotInProgressError: If no session is open.
            UnsafePathError: If the path resolves outside the clone.
        """
        self._require_session("write_or_replace_file")
        full_path = self._resolve(file.path)
        relative = str(full_path.relative_to(self.root))

        def _write() -> None:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_text(file.contents, encoding="utf-8")
            self._repo.index.add([relative])

        await _run_sync(_write)
        log.debug("file_staged", path=relative)

    async def finish_commit(self, message: str) -> str:
        """Commit everything staged under the bot identity and close the session.

        Returns:
            SHA of the new commit.

        Raises:
            CommitNotInProgressError: If no session is open.
        """
        self._require_session("finish_commit")

        def _commit() -> str:
            commit = self._repo.index.commit(message, author=self.author, committer=self.author)
            return commit.hexsha

        sha = await _run_sync(_commit)
        self._state = WorktreeState.IDLE
        log.info("commit_created", sha=sha)
        return sha

    async def abandon_commit(self) -> None:
        """Discard any session work and return to IDLE.

        Used to recover after a failed session so the next task can start.
        """

        def _reset() -> None:
            self._repo.git.reset("--hard")
            self._repo.git.clean("-fd")

        try:
            await _run_sync(_reset)
        finally:
            self._state = WorktreeState.IDLE
        log.info("commit_session_abandoned")

    async def push_branch(self, name: str) -> None:
        """Point branch ``name`` at HEAD and force-push it to the remote.

        Safe to retry: the remote branch always ends up at the local HEAD.

        Raises:
            GitOperationError: If the push fails.
        """

        def _push() -> None:
            if self._repo.head.is_detached or self._repo.active_branch.name != name:
                self._repo.create_head(name, "HEAD", force=True)
            self._repo.git.push("--force", self.remote_name, f"HEAD:refs/heads/{name}")

        log.info("pushing_branch", branch=name)
        try:
            await _run_sync(_push)
        except git.GitCommandError as e:
            raise _git_error(f"push of {name}", e) from e

    async def parse_directive_and_begin_session(self, issue: Issue) -> ChangeRequest:
        """Open a session on the issue's base branch and gather its files.

        Starts a commit, parses the issue body, checks out the directive's
        base branch and reads every listed file.

        If any step fails the session stays open; the caller must recover
        (see abandon_commit) before starting another one.
        """
        await self.start_commit()
        directive = parse_directive(issue.body)
        await self.checkout_remote_branch(directive.base_branch)

        files = [await self.get_file(path) for path in directive.file_paths]

        return ChangeRequest(
            files=tuple(files),
            subject=issue.subject,
            instruction_text=directive.instruction_text,
            issue_number=issue.number,
            base_branch=directive.base_branch,
        )
