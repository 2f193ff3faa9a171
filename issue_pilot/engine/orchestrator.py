"""
Per-repository polling, dispatch and task handling.

A RepositoryOrchestrator owns everything scoped to one repository: its task
queue, its local clone (through a WorktreeController) and its hosting
provider. The language model client is injected and may be shared with other
orchestrators.

Polling Cycle:
    1. List open issues and unanswered review comments matching the
       repository's filters
    2. Push each onto the task queue (duplicates are dropped)
    3. Drain the queue completely, one task at a time

Issue Flow:
    claim labels -> open session on base branch -> prompt model ->
    write files -> commit -> push new branch -> open pull request

Comment Flow:
    read commented file -> prompt model -> (if code change: commit on the
    pull request branch and push) -> reply in the review thread

Failures inside a task are reported back as a comment on the issue or a
reply in the review thread; they never propagate out of poll().

Example:
    >>> orchestrator = RepositoryOrchestrator(repo_config, "pilot-bot", hosting, llm, worktree)
    >>> summary = await orchestrator.poll()
"""

import secrets
from dataclasses import dataclass

import structlog
from structlog.contextvars import bound_contextvars

from issue_pilot.config.settings import RepositoryConfig
from issue_pilot.engine.task_queue import PushResult, TaskQueue
from issue_pilot.exceptions import CommentBranchMissingError, EmptyChangeError
from issue_pilot.git.worktree import WorktreeController
from issue_pilot.models.domain import (
    ChangeRequest,
    ChangeResponse,
    Comment,
    CommentFilter,
    DiffCommentRequest,
    DiffCommentResponse,
    File,
    Issue,
    IssueFilter,
    PullRequest,
    ResponseType,
    WorktreeState,
)
from issue_pilot.parsing.response import parse_change_response, parse_diff_comment_response
from issue_pilot.providers.base import HostingProvider, LLMProvider
from issue_pilot.rendering.engine import PromptRenderer

log = structlog.get_logger(__name__)

BRANCH_PREFIX = "issue-pilot"
DEFAULT_PR_TITLE = "update files"
COMMENT_COMMIT_MESSAGE = "Address review comment"


@dataclass
class PollSummary:
    """Counters for one polling cycle of one repository."""

    issues_found: int = 0
    comments_found: int = 0
    queued: int = 0
    skipped: int = 0
    processed: int = 0


def build_commit_message(request: ChangeRequest, response: ChangeResponse) -> str:
    """Subject, notes and an issue-closing reference, blank-line separated.

    Issue number 0 marks a locally written issue and gets no reference.
    """
    parts = [request.subject or DEFAULT_PR_TITLE, response.notes, _resolves_line(request)]
    return "\n\n".join(part for part in parts if part)


def build_pull_request_body(request: ChangeRequest, response: ChangeResponse) -> str:
    parts = [response.notes, _resolves_line(request)]
    return "\n\n".join(part for part in parts if part)


def _resolves_line(request: ChangeRequest) -> str:
    return f"Resolves #{request.issue_number}" if request.issue_number else ""


def issue_filter_for(repo_config: RepositoryConfig) -> IssueFilter:
    """Issues to act on: required labels, trusted author, not yet claimed."""
    claim = [repo_config.claim_label] if repo_config.claim_label else []
    return IssueFilter(
        labels=list(repo_config.required_issue_labels),
        authors=list(repo_config.users_to_listen_to),
        exclude_labels=claim,
    )


def comment_filter_for(repo_config: RepositoryConfig, bot_handle: str) -> CommentFilter:
    return CommentFilter(authors=list(repo_config.users_to_listen_to), bot_handle=bot_handle)


def new_branch_name(issue_number: int) -> str:
    """Branch name for an issue, with a random suffix so concurrent runs don't collide."""
    return f"{BRANCH_PREFIX}/issue-{issue_number}-{secrets.token_hex(4)}"


class RepositoryOrchestrator:
    """Poll one repository and turn its issues and comments into changes.

    Attributes:
        repo_config: Filters and labels for this repository.
        bot_handle: Login of the service account on the hosting server.
        hosting: Hosting provider scoped to this repository.
        llm: Language model client (may be shared).
        worktree: Controller owning this repository's local clone.
        model: Model identifier passed to the LLM; empty uses its default.
        queue: Pending tasks for this repository.
        renderer: Prompt renderer.
    """

    def __init__(
        self,
        repo_config: RepositoryConfig,
        bot_handle: str,
        hosting: HostingProvider,
        llm: LLMProvider,
        worktree: WorktreeController,
        model: str = "",
        queue: TaskQueue | None = None,
        renderer: PromptRenderer | None = None,
    ) -> None:
        self.repo_config = repo_config
        self.bot_handle = bot_handle
        self.hosting = hosting
        self.llm = llm
        self.worktree = worktree
        self.model = model
        self.queue = queue if queue is not None else TaskQueue()
        self.renderer = renderer if renderer is not None else PromptRenderer()

    @property
    def name(self) -> str:
        return self.repo_config.full_name

    @property
    def issue_filter(self) -> IssueFilter:
        return issue_filter_for(self.repo_config)

    @property
    def comment_filter(self) -> CommentFilter:
        return comment_filter_for(self.repo_config, self.bot_handle)

    async def poll(self) -> PollSummary:
        """Run one discover-then-drain cycle.

        Raises:
            ExternalServiceError: If listing issues or comments fails. Errors
                inside individual tasks are reported, not raised.
        """
        summary = PollSummary()

        with bound_contextvars(repo=self.name):
            issues = await self.hosting.list_open_issues(self.issue_filter)
            comments = await self.hosting.list_open_comments(self.comment_filter)
            summary.issues_found = len(issues)
            summary.comments_found = len(comments)

            results = [self.queue.push_issue(issue) for issue in issues]
            results += [self.queue.push_comment(comment) for comment in comments]
            summary.queued = results.count(PushResult.QUEUED)
            summary.skipped = len(results) - summary.queued

            summary.processed = await self.queue.drain_all(self.handle_issue, self.handle_comment)

            log.info(
                "poll_complete",
                issues=summary.issues_found,
                comments=summary.comments_found,
                queued=summary.queued,
                skipped=summary.skipped,
                processed=summary.processed,
            )

        return summary

    async def handle_issue(self, issue: Issue) -> PullRequest | None:
        """Resolve an issue with a new branch and pull request.

        Any failure aborts the remaining steps and is posted as a comment on
        the issue.

        Returns:
            The opened pull request, or None if the task failed.
        """
        with bound_contextvars(issue=issue.number):
            log.info("issue_task_started", subject=issue.subject)
            try:
                pr = await self._resolve_issue(issue)
            except Exception as e:
                log.error("issue_task_failed", error=str(e), exc_info=True)
                await self._recover_worktree()
                await self._report_issue_error(issue, e)
                return None

            log.info("issue_task_completed", pr_url=pr.url)
            return pr

    async def _resolve_issue(self, issue: Issue) -> PullRequest:
        await self._claim_issue(issue)

        request, response = await self._commit_issue_change(issue)

        branch = new_branch_name(issue.number)
        await self.worktree.push_branch(branch)

        return await self.hosting.open_change_request(
            from_branch=branch,
            to_branch=request.base_branch,
            title=request.subject or DEFAULT_PR_TITLE,
            body=build_pull_request_body(request, response),
        )

    async def _claim_issue(self, issue: Issue) -> None:
        """Mark the issue as taken so later polls don't pick it up again."""
        for label in self.repo_config.required_issue_labels:
            await self.hosting.remove_label(issue.number, label)
        if self.repo_config.claim_label:
            await self.hosting.add_label(issue.number, self.repo_config.claim_label)

    async def _commit_issue_change(self, issue: Issue) -> tuple[ChangeRequest, ChangeResponse]:
        request = await self.worktree.parse_directive_and_begin_session(issue)

        prompt = self.renderer.code_change_prompt(request)
        completion = await self.llm.evaluate(self.model, prompt, label=f"issue-{issue.number}")
        response = parse_change_response(completion)

        if response.malformed_segments:
            log.warning("malformed_response_segments", count=len(response.malformed_segments))
        if not response.files:
            raise EmptyChangeError("The model's answer did not contain any files to commit")

        for file in response.files:
            await self.worktree.write_or_replace_file(file)

        sha = await self.worktree.finish_commit(build_commit_message(request, response))
        log.info("issue_change_committed", sha=sha, files=[f.path for f in response.files])
        return request, response

    async def apply_issue_locally(self, issue: Issue) -> ChangeResponse:
        """Commit the model's change for an issue to the local clone only.

        Nothing is pushed and the hosting server is not contacted.

        Raises:
            IssuePilotError: On any failure; the worktree is reset first.
        """
        with bound_contextvars(repo=self.name, issue=issue.number):
            try:
                _, response = await self._commit_issue_change(issue)
            except Exception:
                await self._recover_worktree()
                raise
            return response

    async def handle_comment(self, comment: Comment) -> DiffCommentResponse | None:
        """Answer a review comment, pushing a follow-up change if asked for.

        Raises:
            CommentBranchMissingError: If the comment has no branch. This is
                checked before any I/O.

        Returns:
            The parsed model response, or None if the task failed (the error
            is posted as a reply in the thread).
        """
        if not comment.branch:
            log.error("comment_missing_branch", repo=self.name, comment_id=comment.id)
            raise CommentBranchMissingError(comment.id)

        with bound_contextvars(pr=comment.change_request_id, comment_id=comment.id):
            log.info("comment_task_started", path=comment.file_path)
            try:
                response = await self._answer_comment(comment)
            except Exception as e:
                log.error("comment_task_failed", error=str(e), exc_info=True)
                await self._recover_worktree()
                await self._report_comment_error(comment, e)
                return None

            log.info("comment_task_completed", response_type=response.type.value)
            return response

    async def _answer_comment(self, comment: Comment) -> DiffCommentResponse:
        file = await self.worktree.get_file_at(comment.branch, comment.file_path)
        request = DiffCommentRequest(
            file=file,
            comment_body=comment.body,
            diff_hunk=comment.diff_hunk,
            pr_number=comment.change_request_id,
        )

        prompt = self.renderer.diff_comment_prompt(request)
        completion = await self.llm.evaluate(self.model, prompt, label=f"pr-{comment.change_request_id}")
        response = parse_diff_comment_response(completion)

        reply = response.answer
        if response.type == ResponseType.CODE_CHANGE and response.file is not None:
            if response.file.path != comment.file_path:
                log.warning("comment_change_path_mismatch", returned=response.file.path)
            updated = File(path=comment.file_path, contents=response.file.contents)

            await self.worktree.start_commit()
            await self.worktree.checkout_remote_branch(comment.branch)
            await self.worktree.write_or_replace_file(updated)
            await self.worktree.finish_commit(COMMENT_COMMIT_MESSAGE)
            await self.worktree.push_branch(comment.branch)

            reply = reply or f"Updated `{comment.file_path}`."

        await self.hosting.reply_to_comment(comment.change_request_id, comment.reply_target, reply or "(no answer)")
        return response

    async def _recover_worktree(self) -> None:
        if self.worktree.state == WorktreeState.IDLE:
            return
        try:
            await self.worktree.abandon_commit()
        except Exception as e:
            log.error("worktree_recovery_failed", error=str(e), exc_info=True)

    async def _report_issue_error(self, issue: Issue, error: Exception) -> None:
        try:
            await self.hosting.comment_on_issue(issue.number, _error_text(error))
        except Exception as e:
            log.error("issue_error_report_failed", error=str(e))

    async def _report_comment_error(self, comment: Comment, error: Exception) -> None:
        try:
            await self.hosting.reply_to_comment(comment.change_request_id, comment.reply_target, _error_text(error))
        except Exception as e:
            log.error("comment_error_report_failed", error=str(e))


def _error_text(error: Exception) -> str:
    return f"I ran into an error while working on this:\n\n```\n{error}\n```"
