"""issue-pilot: turn labelled issues and review comments into pull requests."""

__version__ = "0.1.0"
