"""Hosting server and language model providers.

Key Components:
    - HostingProvider: Abstract base for hosting servers
    - LLMProvider: Abstract base for language model clients
    - GitHubRestProvider: GitHub REST API implementation (PyGithub)
    - OpenAICompatibleProvider: OpenAI-compatible chat completions (httpx)

Example:
    >>> from issue_pilot.providers import GitHubRestProvider
    >>> hosting = GitHubRestProvider(token="...", owner="acme", repo="widgets")
    >>> await hosting.connect()
"""

from issue_pilot.providers.base import HostingProvider, LLMProvider
from issue_pilot.providers.github_rest import GitHubRestProvider
from issue_pilot.providers.openai_compatible import OpenAICompatibleProvider

__all__ = [
    "GitHubRestProvider",
    "HostingProvider",
    "LLMProvider",
    "OpenAICompatibleProvider",
]
