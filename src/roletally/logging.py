"""Structured logging setup for roletally.

All components log through structlog with snake_case event names and
key/value context. Output goes to stderr so that reports written to
stdout (the batch CSV) are never interleaved with log lines.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def setup_logging(json_output: bool = True, level: str = "INFO") -> None:
    """Configure structlog for the process.

    Safe to call more than once; the last call wins.

    Args:
        json_output: Render log lines as JSON (True) or for humans (False).
        level: Minimum level name to emit.
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            _LEVELS.get(level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """Get a logger bound to a component name.

    Args:
        name: Component name, e.g. "history" or "cli".

    Returns:
        A lazy structlog logger carrying ``component=<name>`` on every
        event. Configuration is looked up when the logger is used, so module-level
        loggers pick up a later ``setup_logging`` call.
    """
    return structlog.get_logger(component=name)
