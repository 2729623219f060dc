"""Logging configuration using structlog.

Command results go to stdout and log events to stderr, so a migration's
output can be piped while progress stays visible. Progress events are
emitted at INFO; the default WARNING level keeps a run quiet apart from
destructive steps and conflicts, and ``--verbose`` lowers it to INFO.
"""

import logging
import sys
from typing import Any

import structlog

from continuum.config import settings


def configure_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """Configure structlog for the CLI.

    Args:
        log_level: Logging level name (default: ``settings.log_level``)
        log_format: "json" for JSON lines, "console" for human-readable
            (default: ``settings.log_format``)
    """
    level_name = (log_level or settings.log_level).upper()
    numeric_level = getattr(logging, level_name, logging.WARNING)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
        force=True,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if (log_format or settings.log_format) == "json":
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ])
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
