"""Structured logging for skill operations.

Log lines go to stderr so the scripts can keep stdout for result JSON.
``SKILL_GUARD_LOG_FORMAT=json`` switches to one JSON object per line.
"""

from __future__ import annotations

import logging
import sys

import structlog

from .config import get_log_format, get_log_level


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(level: str | None = None, log_format: str | None = None) -> structlog.stdlib.BoundLogger:
    """Configure structlog and return the shared logger."""
    level_no = getattr(logging, (level or get_log_level()).upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _renderer(log_format or get_log_format()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("skill_guard")


logger: structlog.stdlib.BoundLogger = setup_logging()
