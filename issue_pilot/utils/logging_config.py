"""
Logging configuration using structlog for structured logging.

This module provides centralized logging setup for the whole service, with
JSON output for unattended runs and a console renderer for development.
Credentials embedded in URLs (HTTPS clone URLs carry the hosting token) are
redacted from every event before rendering.
"""

import logging
import re
import sys
from typing import Any

import structlog

_URL_CREDENTIALS = re.compile(r"(https?://)[^/\s:@]+:[^/\s@]+@", re.IGNORECASE)
_SENSITIVE_KEYS = {"token", "api_key", "authorization", "password", "secret"}

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def redact_credentials(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Strip credentials from URLs and sensitive keys in a log event."""
    for key, value in event_dict.items():
        if not isinstance(value, str):
            continue
        if key.lower() in _SENSITIVE_KEYS:
            event_dict[key] = "***REDACTED***"
        else:
            event_dict[key] = _URL_CREDENTIALS.sub(r"\1***REDACTED***@", value)
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structured logging.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines if True, human-readable console
            output otherwise

    Raises:
        ValueError: If log_level is not a known level name.
    """
    level_name = log_level.upper()
    if level_name not in VALID_LEVELS:
        raise ValueError(f"Invalid log level '{log_level}'. Must be one of: {', '.join(VALID_LEVELS)}")

    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_credentials,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
