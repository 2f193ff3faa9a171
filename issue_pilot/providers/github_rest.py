"""GitHub hosting provider implementation using PyGithub."""

import asyncio
from collections.abc import Callable
from typing import TypeVar

import structlog
from github import Github, GithubException  # type: ignore[import-not-found]
from github.Issue import Issue as GHIssue  # type: ignore[import-not-found]
from github.PullRequest import PullRequest as GHPullRequest  # type: ignore[import-not-found]
from github.PullRequestComment import PullRequestComment as GHReviewComment  # type: ignore[import-not-found]
from github.Repository import Repository as GHRepository  # type: ignore[import-not-found]

from issue_pilot.exceptions import ExternalServiceError
from issue_pilot.models.domain import Comment, CommentFilter, Issue, IssueFilter, PullRequest
from issue_pilot.providers.base import HostingProvider

log = structlog.get_logger(__name__)

T = TypeVar("T")


async def _run_sync(func: Callable[[], T]) -> T:
    """Run a synchronous function in a thread pool.

    This prevents blocking the event loop when calling synchronous
    PyGithub methods.
    """
    return await asyncio.to_thread(func)


class GitHubRestProvider(HostingProvider):
    """GitHub implementation using the PyGithub library."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        base_url: str = "https://api.github.com",
    ):
        """Initialize GitHub provider.

        Args:
            token: GitHub personal access token or App token
            owner: Repository owner (user or organization)
            repo: Repository name
            base_url: GitHub API base URL (for GitHub Enterprise)
        """
        self.token = token.strip() if token else token
        self.owner = owner
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self._client: Github | None = None
        self._repo: GHRepository | None = None
        self._skipped_fork_prs: set[int] = set()

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    async def connect(self) -> None:
        """Initialize GitHub client."""

        def _connect() -> tuple[Github, GHRepository]:
            client = Github(self.token, base_url=self.base_url)
            repo = client.get_repo(self.full_name)
            return client, repo

        try:
            self._client, self._repo = await _run_sync(_connect)
        except GithubException as e:
            log.error("github_connect_failed", repo=self.full_name, error=str(e))
            raise ExternalServiceError(f"Cannot open GitHub repository {self.full_name}", status_code=e.status) from e

        log.info("github_connected", base_url=self.base_url, owner=self.owner, repo=self.repo)

    async def disconnect(self) -> None:
        """Close GitHub client."""
        if self._client:
            await _run_sync(self._client.close)
            self._client = None
            self._repo = None

    def _require_repo(self) -> GHRepository:
        if self._repo is None:
            raise ExternalServiceError("GitHub provider is not connected; call connect() first")
        return self._repo

    async def _call(self, action: str, func: Callable[[GHRepository], T], **context: object) -> T:
        """Run a PyGithub call against the repository, normalizing failures."""
        repo = self._require_repo()
        try:
            return await _run_sync(lambda: func(repo))
        except GithubException as e:
            log.error(f"github_{action}_failed", status=e.status, error=str(e), **context)
            raise ExternalServiceError(f"GitHub {action.replace('_', ' ')} failed: {e}", status_code=e.status) from e

    async def list_open_issues(self, issue_filter: IssueFilter) -> list[Issue]:
        """List open, non-PR issues matching the filter, lowest number first."""
        log.info("list_open_issues", labels=issue_filter.labels, authors=issue_filter.authors)

        def _list(repo: GHRepository) -> list[GHIssue]:
            return list(repo.get_issues(state="open", labels=issue_filter.labels or []))

        gh_issues = await self._call("list_issues", _list)

        issues = []
        for gh_issue in gh_issues:
            if gh_issue.pull_request is not None:
                continue

            issue = self._convert_issue(gh_issue)
            if issue.author not in issue_filter.authors:
                continue
            if any(label in issue.labels for label in issue_filter.exclude_labels):
                log.debug("issue_excluded_by_label", number=issue.number)
                continue

            issues.append(issue)

        issues.sort(key=lambda issue: issue.number)
        return issues

    async def list_open_comments(self, comment_filter: CommentFilter) -> list[Comment]:
        """List the latest comment of every unanswered review thread.

        Pull requests opened from forks are skipped: their branches cannot
        be pushed to from this repository, so their threads could never be
        answered with a commit.
        """
        log.info("list_open_comments", authors=comment_filter.authors)

        def _list(repo: GHRepository) -> list[Comment]:
            comments: list[Comment] = []
            for gh_pr in repo.get_pulls(state="open", sort="created", direction="asc"):
                if not self._is_same_repo(gh_pr):
                    if gh_pr.number not in self._skipped_fork_prs:
                        self._skipped_fork_prs.add(gh_pr.number)
                        log.debug("fork_pull_request_skipped", pr=gh_pr.number)
                    continue

                threads: dict[int, list[GHReviewComment]] = {}
                for gh_comment in gh_pr.get_review_comments():
                    root_id = gh_comment.in_reply_to_id or gh_comment.id
                    threads.setdefault(root_id, []).append(gh_comment)

                for root_id, thread in threads.items():
                    latest = max(thread, key=lambda c: (c.created_at, c.id))
                    author = latest.user.login if latest.user else ""
                    if author == comment_filter.bot_handle or author not in comment_filter.authors:
                        continue
                    comments.append(self._convert_comment(gh_pr, latest, root_id))
            return comments

        return await self._call("list_comments", _list)

    async def comment_on_issue(self, number: int, text: str) -> None:
        log.info("comment_on_issue", number=number)
        await self._call(
            "comment_on_issue",
            lambda repo: repo.get_issue(number).create_comment(text),
            number=number,
        )

    async def remove_label(self, number: int, label: str) -> None:
        """Remove a label from an issue if it is applied."""
        log.info("remove_label", number=number, label=label)

        def _remove(repo: GHRepository) -> None:
            gh_issue = repo.get_issue(number)
            if label in [lbl.name for lbl in gh_issue.labels]:
                gh_issue.remove_from_labels(label)

        await self._call("remove_label", _remove, number=number, label=label)

    async def add_label(self, number: int, label: str) -> None:
        log.info("add_label", number=number, label=label)
        await self._call(
            "add_label",
            lambda repo: repo.get_issue(number).add_to_labels(label),
            number=number,
            label=label,
        )

    async def open_change_request(
        self,
        from_branch: str,
        to_branch: str,
        title: str,
        body: str,
    ) -> PullRequest:
        """Create a pull request."""
        log.info("open_change_request", head=from_branch, base=to_branch)

        gh_pr = await self._call(
            "create_pull_request",
            lambda repo: repo.create_pull(title=title, body=body, head=from_branch, base=to_branch),
            head=from_branch,
            base=to_branch,
        )
        return self._convert_pull_request(gh_pr)

    async def reply_to_comment(self, change_request_id: int, comment_id: int, text: str) -> None:
        log.info("reply_to_comment", pr=change_request_id, comment_id=comment_id)
        await self._call(
            "reply_to_comment",
            lambda repo: repo.get_pull(change_request_id).create_review_comment_reply(comment_id, text),
            pr=change_request_id,
            comment_id=comment_id,
        )

    def _convert_issue(self, gh_issue: GHIssue) -> Issue:
        """Convert GitHub Issue to our Issue model."""
        return Issue(
            number=gh_issue.number,
            subject=gh_issue.title,
            body=gh_issue.body or "",
            url=gh_issue.html_url,
            author=gh_issue.user.login if gh_issue.user else "",
            labels=[label.name for label in gh_issue.labels],
        )

    def _convert_comment(self, gh_pr: GHPullRequest, gh_comment: GHReviewComment, root_id: int) -> Comment:
        """Convert a GitHub review comment to our Comment model."""
        return Comment(
            id=gh_comment.id,
            change_request_id=gh_pr.number,
            author=gh_comment.user.login if gh_comment.user else "",
            body=gh_comment.body or "",
            file_path=gh_comment.path or "",
            diff_hunk=gh_comment.diff_hunk or "",
            url=gh_comment.html_url,
            branch=gh_pr.head.ref,
            thread_id=root_id,
        )

    def _is_same_repo(self, gh_pr: GHPullRequest) -> bool:
        head_repo = gh_pr.head.repo
        return head_repo is not None and head_repo.full_name == self.full_name

    def _convert_pull_request(self, gh_pr: GHPullRequest) -> PullRequest:
        """Convert GitHub PullRequest to our PullRequest model."""
        return PullRequest(
            id=gh_pr.id,
            number=gh_pr.number,
            url=gh_pr.html_url,
            head=gh_pr.head.ref,
            base=gh_pr.base.ref,
        )
