"""Tests for issue_pilot/engine/orchestrator.py.

Hosting and LLM collaborators are mocked; git runs against real temporary
repositories so that commits and pushes can be checked on the remote.
"""

from unittest.mock import AsyncMock, Mock, patch

import git
import pytest

from issue_pilot.engine.orchestrator import (
    RepositoryOrchestrator,
    build_commit_message,
    build_pull_request_body,
    new_branch_name,
)
from issue_pilot.engine.task_queue import TaskQueue
from issue_pilot.exceptions import CommentBranchMissingError, LLMError
from issue_pilot.models.domain import (
    ChangeRequest,
    ChangeResponse,
    CommentFilter,
    Issue,
    IssueFilter,
    PullRequest,
    ResponseType,
    WorktreeState,
)
from issue_pilot.providers.base import HostingProvider, LLMProvider
from tests.conftest import remote_show

CHANGE_COMPLETION = "name: README.md\ncontents:\n```\n# Hi\n```\nnotes: Replaced the readme"


@pytest.fixture
def hosting() -> AsyncMock:
    mock = AsyncMock(spec=HostingProvider)
    mock.open_change_request.return_value = PullRequest(
        id=9001, number=12, url="https://github.com/acme/widgets/pull/12", head="x", base="main"
    )
    mock.list_open_issues.return_value = []
    mock.list_open_comments.return_value = []
    return mock


@pytest.fixture
def llm() -> AsyncMock:
    mock = AsyncMock(spec=LLMProvider)
    mock.evaluate.return_value = CHANGE_COMPLETION
    return mock


@pytest.fixture
def orchestrator(repo_config, hosting, llm, worktree) -> RepositoryOrchestrator:
    return RepositoryOrchestrator(
        repo_config=repo_config,
        bot_handle="pilot-bot",
        hosting=hosting,
        llm=llm,
        worktree=worktree,
        model="test-model",
    )


class TestHelpers:
    def test_commit_message(self):
        request = ChangeRequest(files=(), subject="Update readme", instruction_text="", issue_number=42)
        response = ChangeResponse(notes="Replaced it")

        assert build_commit_message(request, response) == "Update readme\n\nReplaced it\n\nResolves #42"

    def test_commit_message_defaults(self):
        request = ChangeRequest(files=(), subject="", instruction_text="", issue_number=1)

        assert build_commit_message(request, ChangeResponse()) == "update files\n\nResolves #1"

    def test_local_issue_without_number_has_no_resolves_line(self):
        request = ChangeRequest(files=(), subject="Update readme", instruction_text="", issue_number=0)
        response = ChangeResponse(notes="Replaced it")

        assert build_commit_message(request, response) == "Update readme\n\nReplaced it"
        assert build_pull_request_body(request, response) == "Replaced it"

    def test_branch_names_are_unique(self):
        first, second = new_branch_name(5), new_branch_name(5)

        assert first.startswith("issue-pilot/issue-5-")
        assert first != second


class TestFilters:
    @pytest.fixture
    def orchestrator(self, repo_config, hosting, llm):
        return RepositoryOrchestrator(repo_config, "pilot-bot", hosting, llm, Mock())

    def test_issue_filter_excludes_claim_label(self, orchestrator):
        assert orchestrator.issue_filter == IssueFilter(
            labels=["pilot"], authors=["alice"], exclude_labels=["issue-pilot:claimed"]
        )

    def test_no_claim_label(self, orchestrator):
        orchestrator.repo_config.claim_label = None

        assert orchestrator.issue_filter.exclude_labels == []

    def test_comment_filter(self, orchestrator):
        assert orchestrator.comment_filter == CommentFilter(authors=["alice"], bot_handle="pilot-bot")


class TestHandleIssue:
    @pytest.mark.asyncio
    async def test_opens_pull_request(self, orchestrator, hosting, llm, sample_issue, git_remote):
        pr = await orchestrator.handle_issue(sample_issue)

        assert pr is not None
        assert pr.number == 12

        kwargs = hosting.open_change_request.await_args.kwargs
        branch = kwargs["from_branch"]
        assert branch.startswith("issue-pilot/issue-42-")
        assert kwargs["to_branch"] == "main"
        assert kwargs["title"] == "Update readme"
        assert kwargs["body"] == "Replaced the readme\n\nResolves #42"

        assert remote_show(git_remote, branch, "README.md") == "# Hi"
        message = git.Repo(str(git_remote)).commit(branch).message
        assert message.startswith("Update readme")
        assert "Resolves #42" in message

        llm.evaluate.assert_awaited_once()
        assert llm.evaluate.await_args.args[0] == "test-model"
        assert "# Old" in llm.evaluate.await_args.args[1]
        assert orchestrator.worktree.state == WorktreeState.IDLE

    @pytest.mark.asyncio
    async def test_claims_issue(self, orchestrator, hosting, sample_issue):
        await orchestrator.handle_issue(sample_issue)

        hosting.remove_label.assert_awaited_once_with(42, "pilot")
        hosting.add_label.assert_awaited_once_with(42, "issue-pilot:claimed")

    @pytest.mark.asyncio
    async def test_empty_answer_is_reported(self, orchestrator, hosting, llm, sample_issue):
        llm.evaluate.return_value = "I am not sure what to do here."

        pr = await orchestrator.handle_issue(sample_issue)

        assert pr is None
        hosting.open_change_request.assert_not_awaited()
        number, text = hosting.comment_on_issue.await_args.args
        assert number == 42
        assert "did not contain any files" in text
        assert orchestrator.worktree.state == WorktreeState.IDLE

    @pytest.mark.asyncio
    async def test_llm_failure_is_reported(self, orchestrator, hosting, llm, sample_issue):
        llm.evaluate.side_effect = LLMError("model unavailable", status_code=503)

        pr = await orchestrator.handle_issue(sample_issue)

        assert pr is None
        assert "model unavailable" in hosting.comment_on_issue.await_args.args[1]
        assert orchestrator.worktree.state == WorktreeState.IDLE

    @pytest.mark.asyncio
    async def test_failed_report_is_swallowed(self, orchestrator, hosting, llm, sample_issue):
        llm.evaluate.side_effect = LLMError("down")
        hosting.comment_on_issue.side_effect = RuntimeError("also down")

        assert await orchestrator.handle_issue(sample_issue) is None

    @pytest.mark.asyncio
    async def test_next_issue_runs_after_failure(self, orchestrator, hosting, llm, sample_issue):
        llm.evaluate.side_effect = [LLMError("flaky"), CHANGE_COMPLETION]

        assert await orchestrator.handle_issue(sample_issue) is None
        assert await orchestrator.handle_issue(sample_issue) is not None


class TestApplyIssueLocally:
    @pytest.mark.asyncio
    async def test_commits_without_contacting_host(self, orchestrator, hosting, sample_issue, git_remote):
        response = await orchestrator.apply_issue_locally(sample_issue)

        assert [f.path for f in response.files] == ["README.md"]
        assert (orchestrator.worktree.root / "README.md").read_text() == "# Hi"
        head = git.Repo(str(orchestrator.worktree.root)).head.commit
        assert "Resolves #42" in head.message
        assert hosting.mock_calls == []
        assert remote_show(git_remote, "main", "README.md") == "# Old"

    @pytest.mark.asyncio
    async def test_failure_raises_and_recovers(self, orchestrator, llm, sample_issue):
        llm.evaluate.side_effect = LLMError("nope")

        with pytest.raises(LLMError):
            await orchestrator.apply_issue_locally(sample_issue)

        assert orchestrator.worktree.state == WorktreeState.IDLE


class TestHandleComment:
    @pytest.mark.asyncio
    async def test_plain_answer(self, orchestrator, hosting, llm, sample_comment, git_remote):
        llm.evaluate.return_value = "! It prints the feature name."
        before = git.Repo(str(git_remote)).commit("feature").hexsha

        response = await orchestrator.handle_comment(sample_comment)

        assert response.type == ResponseType.ANSWER
        hosting.reply_to_comment.assert_awaited_once_with(7, 100, "It prints the feature name.")
        assert git.Repo(str(git_remote)).commit("feature").hexsha == before

    @pytest.mark.asyncio
    async def test_prompt_uses_branch_version_of_file(self, orchestrator, llm, sample_comment):
        llm.evaluate.return_value = "! ok"

        await orchestrator.handle_comment(sample_comment)

        prompt = llm.evaluate.await_args.args[1]
        assert "print('feature')" in prompt
        assert "Please print something else" in prompt

    @pytest.mark.asyncio
    async def test_code_change_is_pushed(self, orchestrator, hosting, llm, sample_comment, git_remote):
        llm.evaluate.return_value = "name: app.py\ncontents:\n```python\nprint('new')\n```\nresponse: Done"

        response = await orchestrator.handle_comment(sample_comment)

        assert response.type == ResponseType.CODE_CHANGE
        assert remote_show(git_remote, "feature", "app.py") == "print('new')"
        assert git.Repo(str(git_remote)).commit("feature").message == "Address review comment"
        hosting.reply_to_comment.assert_awaited_once_with(7, 100, "Done")
        assert orchestrator.worktree.state == WorktreeState.IDLE

    @pytest.mark.asyncio
    async def test_change_is_written_to_commented_path(self, orchestrator, llm, sample_comment, git_remote):
        llm.evaluate.return_value = "name: other.py\ncontents: print('moved')\nresponse: "

        await orchestrator.handle_comment(sample_comment)

        assert remote_show(git_remote, "feature", "app.py") == "print('moved')"

    @pytest.mark.asyncio
    async def test_missing_branch_raises_before_io(self, orchestrator, hosting, llm, sample_comment):
        sample_comment.branch = ""

        with pytest.raises(CommentBranchMissingError):
            await orchestrator.handle_comment(sample_comment)

        llm.evaluate.assert_not_awaited()
        assert hosting.mock_calls == []

    @pytest.mark.asyncio
    async def test_failure_is_replied(self, orchestrator, hosting, llm, sample_comment):
        llm.evaluate.side_effect = LLMError("timeout")

        assert await orchestrator.handle_comment(sample_comment) is None

        pr, target, text = hosting.reply_to_comment.await_args.args
        assert (pr, target) == (7, 100)
        assert "timeout" in text


class TestPoll:
    @pytest.mark.asyncio
    async def test_queues_and_drains(self, orchestrator, hosting, sample_issue, sample_comment):
        hosting.list_open_issues.return_value = [sample_issue, sample_issue]
        hosting.list_open_comments.return_value = [sample_comment]

        with (
            patch.object(orchestrator, "handle_issue", AsyncMock()) as handle_issue,
            patch.object(orchestrator, "handle_comment", AsyncMock()) as handle_comment,
        ):
            summary = await orchestrator.poll()

        assert summary.issues_found == 2
        assert summary.comments_found == 1
        assert summary.queued == 2
        assert summary.skipped == 1
        assert summary.processed == 2
        handle_issue.assert_awaited_once_with(sample_issue)
        handle_comment.assert_awaited_once_with(sample_comment)
        hosting.list_open_issues.assert_awaited_once_with(orchestrator.issue_filter)

    @pytest.mark.asyncio
    async def test_branchless_comment_does_not_stop_drain(self, repo_config, hosting, llm, sample_issue, sample_comment):
        sample_comment.branch = ""
        hosting.list_open_comments.return_value = [sample_comment]
        hosting.list_open_issues.return_value = [sample_issue]
        worktree = Mock()
        orchestrator = RepositoryOrchestrator(repo_config, "pilot-bot", hosting, llm, worktree, queue=TaskQueue())

        with patch.object(orchestrator, "handle_issue", AsyncMock()) as handle_issue:
            summary = await orchestrator.poll()

        assert summary.processed == 2
        handle_issue.assert_awaited_once()
        assert not orchestrator.queue.is_pr_locked(7)

    @pytest.mark.asyncio
    async def test_listing_failure_propagates(self, orchestrator, hosting):
        hosting.list_open_issues.side_effect = RuntimeError("api down")

        with pytest.raises(RuntimeError):
            await orchestrator.poll()


@pytest.mark.asyncio
async def test_readme_issue_end_to_end(orchestrator, hosting, llm, git_remote):
    llm.evaluate.return_value = "name: README.md contents: # Hi notes: added readme"
    issue = Issue(number=42, subject="Add a readme", body="add a readme\n---\nfiles: README.md", url="", author="alice")

    pr = await orchestrator.handle_issue(issue)

    assert pr is not None
    branch = hosting.open_change_request.await_args.kwargs["from_branch"]
    assert hosting.open_change_request.await_args.kwargs["to_branch"] == "main"
    assert "Resolves #42" in git.Repo(str(git_remote)).commit(branch).message
    assert remote_show(git_remote, branch, "README.md") == "# Hi"
    assert (orchestrator.worktree.root / "README.md").read_text() == "# Hi"
