"""Structured Logging Configuration.

This module provides structured logging with JSON output and context binding.
Outputs JSON format for production log aggregation.

Configuration:
- JSON output format (for production log aggregation)
- Context binding support (request IDs, video IDs, etc.) via contextvars
- Log levels: DEBUG, INFO, WARNING, ERROR, CRITICAL

Usage:
    from app.utils.logging import get_logger

    log = get_logger(__name__)
    log.info("video_retried", video_id=str(video.id), used_persisted_scenes=True)

Security:
    NEVER pass access tokens or decrypted credentials as log fields.
"""

import logging
import os
import sys
from typing import Any

import structlog

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure structlog for JSON output once per process.

    Args:
        level: Log level name. Defaults to LOG_LEVEL env var, then INFO.
    """
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str, **initial_context: Any) -> Any:
    """Get a structured logger instance for the given module.

    Args:
        name: Module name (typically __name__)
        **initial_context: Fields bound to every event of this logger

    Returns:
        Bound structlog logger
    """
    configure_logging()
    return structlog.get_logger(name).bind(logger=name, **initial_context)
