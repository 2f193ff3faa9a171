"""Configuration management for issue-pilot."""

from issue_pilot.config.settings import (
    BotIdentity,
    HostingConfig,
    LLMConfig,
    PilotSettings,
    RepositoryConfig,
    ServiceConfig,
)

__all__ = [
    "BotIdentity",
    "HostingConfig",
    "LLMConfig",
    "PilotSettings",
    "RepositoryConfig",
    "ServiceConfig",
]
