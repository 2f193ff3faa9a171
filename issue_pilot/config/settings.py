"""
Configuration system using Pydantic for type-safe settings management.

Settings are loaded from a YAML file with ``${VAR}`` / ``${VAR:-default}``
environment variable interpolation::

    bot:
      handle: pilot-bot
      email: pilot-bot@example.com
    hosting:
      provider_type: github
      api_token: ${GITHUB_TOKEN}
    llm:
      api_key: ${OPENAI_API_KEY}
      model: gpt-4o
    repositories:
      - owner: acme
        name: widgets
        local_path: /var/lib/issue-pilot/widgets
        users_to_listen_to: [alice, bob]
        required_issue_labels: [pilot]
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal
from urllib.parse import quote

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from issue_pilot.exceptions import ConfigurationError


class BotIdentity(BaseModel):
    """Identity the service acts and commits as."""

    handle: str = Field(..., min_length=1, description="Hosting account login of the bot")
    email: str = Field(..., min_length=1, description="Email used for commits")


class HostingConfig(BaseModel):
    """Hosting server configuration."""

    provider_type: Literal["github"] = Field(default="github", description="Type of hosting server")
    base_url: str = Field(default="https://api.github.com", description="API base URL")
    host_domain: str = Field(default="github.com", description="Domain used for clone URLs")
    api_token: SecretStr = Field(..., description="API token, also used for HTTPS clone/push")

    @field_validator("api_token")
    @classmethod
    def token_not_empty(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("hosting api_token must not be empty")
        return value


class LLMConfig(BaseModel):
    """Language model endpoint configuration."""

    base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI-compatible API base URL")
    api_key: SecretStr | None = Field(default=None, description="API key, if the endpoint needs one")
    model: str = Field(default="gpt-4o", description="Default model identifier")
    timeout: float = Field(default=300.0, gt=0, description="Request timeout in seconds")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0, description="Sampling temperature")
    debug_dir: str | None = Field(default=None, description="Directory to dump raw completions into")


class ServiceConfig(BaseModel):
    """Service loop configuration."""

    poll_interval: float = Field(default=30.0, gt=0, description="Seconds between polling cycles")
    queue_max_size: int | None = Field(
        default=None, ge=1, description="Per-repository queue bound; unbounded when unset"
    )


class RepositoryConfig(BaseModel):
    """A repository watched by the service."""

    owner: str = Field(..., min_length=1, description="Repository owner/organization")
    name: str = Field(..., min_length=1, description="Repository name")
    local_path: str = Field(..., min_length=1, description="Where the clone is created")
    clone_protocol: Literal["https", "ssh"] = Field(default="https", description="Clone/push transport")
    users_to_listen_to: list[str] = Field(..., min_length=1, description="Authors whose issues/comments are acted on")
    required_issue_labels: list[str] = Field(default_factory=list, description="Labels an issue must carry")
    claim_label: str | None = Field(
        default="issue-pilot:claimed",
        description="Label added when an issue is picked up; issues carrying it are not listed again",
    )

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def clone_url(self, host_domain: str, handle: str, token: str) -> str:
        """Build the clone URL for this repository.

        HTTPS URLs carry basic-auth credentials so pushes work unattended.
        """
        if self.clone_protocol == "ssh":
            return f"git@{host_domain}:{self.owner}/{self.name}.git"
        return f"https://{quote(handle, safe='')}:{quote(token, safe='')}@{host_domain}/{self.owner}/{self.name}.git"


class PilotSettings(BaseSettings):
    """Main issue-pilot settings."""

    model_config = SettingsConfigDict(
        env_prefix="ISSUE_PILOT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    bot: BotIdentity
    hosting: HostingConfig
    llm: LLMConfig = Field(default_factory=LLMConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)
    repositories: list[RepositoryConfig] = Field(..., min_length=1)

    def get_repository(self, full_name: str) -> RepositoryConfig:
        """Look up a configured repository by ``owner/name``.

        Raises:
            ConfigurationError: If no repository with that name is configured.
        """
        for repo in self.repositories:
            if repo.full_name == full_name:
                return repo
        known = ", ".join(repo.full_name for repo in self.repositories)
        raise ConfigurationError(f"Repository {full_name} is not configured (known: {known})")

    @classmethod
    def from_yaml(cls, config_path: str) -> PilotSettings:
        """Load settings from YAML file with environment variable interpolation.

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports ``${VAR_NAME}`` (required) and ``${VAR_NAME:-default}``.
        YAML comment lines are left untouched.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
