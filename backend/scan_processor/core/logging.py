"""
Structured logging setup built on structlog.

Usage:
    from scan_processor.core.logging import get_logger, setup_logging

    setup_logging("INFO")     # call once at startup
    logger = get_logger(__name__)
    logger.info("File staged", bucket=bucket, key=key)
"""

from __future__ import annotations

import logging
import sys

import structlog

from scan_processor.core.config import settings


def setup_logging(level: str = "INFO") -> None:
    """Configure stdlib logging and structlog to share one output stream."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.APP_ENV == "development":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        # JSON lines need the traceback flattened into the event
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)
