"""Build providers and orchestrators from loaded settings."""

from collections.abc import AsyncIterator

import structlog

from issue_pilot.config.settings import PilotSettings, RepositoryConfig
from issue_pilot.engine.orchestrator import RepositoryOrchestrator
from issue_pilot.engine.task_queue import TaskQueue
from issue_pilot.exceptions import ConfigurationError
from issue_pilot.git.worktree import WorktreeController
from issue_pilot.providers.base import HostingProvider, LLMProvider
from issue_pilot.providers.github_rest import GitHubRestProvider
from issue_pilot.providers.openai_compatible import OpenAICompatibleProvider
from issue_pilot.rendering.engine import PromptRenderer

log = structlog.get_logger(__name__)


def create_hosting_provider(settings: PilotSettings, repo_config: RepositoryConfig) -> HostingProvider:
    """Create the hosting provider for one repository.

    Raises:
        ConfigurationError: If the provider type is not supported.
    """
    provider_type = settings.hosting.provider_type

    if provider_type == "github":
        return GitHubRestProvider(
            token=settings.hosting.api_token.get_secret_value(),
            owner=repo_config.owner,
            repo=repo_config.name,
            base_url=settings.hosting.base_url,
        )

    raise ConfigurationError(f"Unsupported hosting provider: {provider_type}")


def create_llm_provider(settings: PilotSettings) -> LLMProvider:
    """Create the language model client shared by every repository."""
    llm = settings.llm
    return OpenAICompatibleProvider(
        base_url=llm.base_url,
        model=llm.model,
        api_key=llm.api_key.get_secret_value() if llm.api_key else None,
        timeout=llm.timeout,
        temperature=llm.temperature,
        debug_dir=llm.debug_dir,
    )


async def create_worktree(settings: PilotSettings, repo_config: RepositoryConfig) -> WorktreeController:
    """Clone a repository afresh into its configured local path."""
    url = repo_config.clone_url(
        settings.hosting.host_domain,
        settings.bot.handle,
        settings.hosting.api_token.get_secret_value(),
    )
    return await WorktreeController.clone(
        url,
        repo_config.local_path,
        author_name=settings.bot.handle,
        author_email=settings.bot.email,
    )


async def create_orchestrator(
    settings: PilotSettings,
    repo_config: RepositoryConfig,
    llm: LLMProvider,
    renderer: PromptRenderer | None = None,
) -> RepositoryOrchestrator:
    """Connect, clone and wire up the orchestrator for one repository.

    The hosting provider is disconnected again if cloning fails.
    """
    hosting = create_hosting_provider(settings, repo_config)
    await hosting.connect()
    try:
        worktree = await create_worktree(settings, repo_config)
    except Exception:
        await hosting.disconnect()
        raise

    log.info("orchestrator_created", repo=repo_config.full_name)
    return RepositoryOrchestrator(
        repo_config=repo_config,
        bot_handle=settings.bot.handle,
        hosting=hosting,
        llm=llm,
        worktree=worktree,
        model=settings.llm.model,
        queue=TaskQueue(max_size=settings.service.queue_max_size),
        renderer=renderer,
    )


async def iter_orchestrators(settings: PilotSettings, llm: LLMProvider) -> AsyncIterator[RepositoryOrchestrator]:
    """Yield one orchestrator per configured repository, in config order.

    Orchestrators are yielded as soon as they are connected so a caller can
    release them if a later repository fails to set up.
    """
    renderer = PromptRenderer()
    for repo_config in settings.repositories:
        yield await create_orchestrator(settings, repo_config, llm, renderer)
