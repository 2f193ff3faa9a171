"""CLI entry point for issue-pilot."""

import asyncio
import sys
from pathlib import Path

import click
import structlog

from issue_pilot.config.settings import PilotSettings, RepositoryConfig
from issue_pilot.engine.orchestrator import RepositoryOrchestrator, comment_filter_for, issue_filter_for
from issue_pilot.engine.service import ServiceLoop
from issue_pilot.exceptions import ConfigurationError, IssuePilotError
from issue_pilot.git.worktree import WorktreeController
from issue_pilot.models.domain import Issue
from issue_pilot.parsing.response import render_change_response
from issue_pilot.providers.factory import (
    create_hosting_provider,
    create_llm_provider,
    create_worktree,
    iter_orchestrators,
)
from issue_pilot.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


@click.group()
@click.option("--config", default="issue_pilot.yaml", help="Path to configuration file")
@click.option("--log-level", default="INFO", help="Logging level")
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"]),
    default="json",
    help="Log output format",
)
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str, log_format: str) -> None:
    """issue-pilot: turn labelled issues and review comments into pull requests."""
    try:
        configure_logging(log_level, json_output=log_format == "json")
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        settings = PilotSettings.from_yaml(config)
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


def _run_command(coro_factory, error_event: str) -> None:
    """Run a coroutine, mapping errors to exit codes the way every command does."""
    try:
        asyncio.run(coro_factory())
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    except IssuePilotError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug(error_event, exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)


@cli.command()
@click.option("--interval", type=float, default=None, help="Polling interval in seconds (overrides config)")
@click.option("--once", is_flag=True, help="Run a single polling cycle and exit")
@click.pass_context
def run(ctx: click.Context, interval: float | None, once: bool) -> None:
    """Clone every configured repository and start polling."""
    settings: PilotSettings = ctx.obj["settings"]
    _run_command(lambda: _run_service(settings, interval, once), "run_error")


@cli.command("list-issues")
@click.argument("repo")
@click.pass_context
def list_issues(ctx: click.Context, repo: str) -> None:
    """List open issues of REPO (owner/name) that would be picked up."""
    settings: PilotSettings = ctx.obj["settings"]
    _run_command(lambda: _list_issues(settings, repo), "list_issues_error")


@cli.command("list-comments")
@click.argument("repo")
@click.pass_context
def list_comments(ctx: click.Context, repo: str) -> None:
    """List unanswered review comments on REPO (owner/name)."""
    settings: PilotSettings = ctx.obj["settings"]
    _run_command(lambda: _list_comments(settings, repo), "list_comments_error")


@cli.command("local-issue")
@click.argument("repo")
@click.option("--subject", required=True, help="Issue title, used as the commit subject")
@click.option("--body", default=None, help="Issue body (instructions, optional '---' directive block)")
@click.option(
    "--body-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read the issue body from a file",
)
@click.option("--number", type=int, default=0, help="Issue number to reference in the commit (omitted when 0)")
@click.pass_context
def local_issue(
    ctx: click.Context,
    repo: str,
    subject: str,
    body: str | None,
    body_file: Path | None,
    number: int,
) -> None:
    """Apply a locally written issue to the local clone of REPO (commit only).

    Nothing is pushed and the hosting server is not contacted.

    Examples:
        issue-pilot local-issue acme/widgets --subject "Add readme" --body-file issue.md
    """
    if (body is None) == (body_file is None):
        click.echo("Error: Provide exactly one of --body or --body-file", err=True)
        sys.exit(1)

    settings: PilotSettings = ctx.obj["settings"]
    text = body if body is not None else body_file.read_text(encoding="utf-8")
    issue = Issue(number=number, subject=subject, body=text, url="", author=settings.bot.handle)
    _run_command(lambda: _local_issue(settings, repo, issue), "local_issue_error")


async def _run_service(settings: PilotSettings, interval: float | None, once: bool) -> None:
    poll_interval = interval if interval is not None else settings.service.poll_interval
    llm = create_llm_provider(settings)
    orchestrators: list[RepositoryOrchestrator] = []

    try:
        async for orchestrator in iter_orchestrators(settings, llm):
            orchestrators.append(orchestrator)
        service = ServiceLoop(orchestrators, poll_interval=poll_interval)

        if once:
            results = await service.run_once()
            for name, summary in results.items():
                if summary is None:
                    click.echo(f"{name}: poll failed")
                else:
                    click.echo(
                        f"{name}: {summary.issues_found} issues, {summary.comments_found} comments, "
                        f"{summary.processed} processed"
                    )
            return

        click.echo(f"Polling {len(orchestrators)} repositories every {poll_interval}s")
        await service.run_forever()
    finally:
        for orchestrator in orchestrators:
            await orchestrator.hosting.disconnect()
        await llm.close()


async def _list_issues(settings: PilotSettings, repo: str) -> None:
    repo_config = settings.get_repository(repo)
    hosting = create_hosting_provider(settings, repo_config)
    await hosting.connect()
    try:
        issues = await hosting.list_open_issues(issue_filter_for(repo_config))
    finally:
        await hosting.disconnect()

    if not issues:
        click.echo("No matching issues.")
        return

    for issue in issues:
        click.echo(f"#{issue.number} {issue.subject} ({issue.author})")


async def _list_comments(settings: PilotSettings, repo: str) -> None:
    repo_config = settings.get_repository(repo)
    hosting = create_hosting_provider(settings, repo_config)
    await hosting.connect()
    try:
        comments = await hosting.list_open_comments(comment_filter_for(repo_config, settings.bot.handle))
    finally:
        await hosting.disconnect()

    if not comments:
        click.echo("No unanswered comments.")
        return

    for comment in comments:
        first_line = comment.body.strip().splitlines()[0] if comment.body.strip() else ""
        click.echo(f"PR #{comment.change_request_id} [{comment.id}] {comment.file_path} ({comment.author}): {first_line}")


async def _open_local_worktree(settings: PilotSettings, repo_config: RepositoryConfig) -> WorktreeController:
    if (Path(repo_config.local_path) / ".git").exists():
        return WorktreeController.open(repo_config.local_path, settings.bot.handle, settings.bot.email)
    return await create_worktree(settings, repo_config)


async def _local_issue(settings: PilotSettings, repo: str, issue: Issue) -> None:
    repo_config = settings.get_repository(repo)
    worktree = await _open_local_worktree(settings, repo_config)
    llm = create_llm_provider(settings)

    orchestrator = RepositoryOrchestrator(
        repo_config=repo_config,
        bot_handle=settings.bot.handle,
        hosting=create_hosting_provider(settings, repo_config),
        llm=llm,
        worktree=worktree,
        model=settings.llm.model,
    )
    try:
        response = await orchestrator.apply_issue_locally(issue)
    finally:
        await llm.close()

    click.echo(render_change_response(response))
    click.echo(f"\nCommitted to {worktree.root}")


if __name__ == "__main__":
    cli()
