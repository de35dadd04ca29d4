"""Logging utilities for githup.

Diagnostics go to stderr through a standalone structlog logger so the
report written to stdout stays clean.
"""

import logging
import sys
from os import getenv
from typing import TYPE_CHECKING, cast

import structlog

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger


def _get_log_level() -> int:
    """Get the log level from environment variables.

    Checks GITHUP_DEBUG first (sets DEBUG if present), then GITHUP_LOG_LEVEL.
    Defaults to WARNING if neither is set.
    """
    if getenv("GITHUP_DEBUG", None):
        return logging.DEBUG

    log_levels = logging.getLevelNamesMapping()
    return log_levels.get(getenv("GITHUP_LOG_LEVEL", "warning").upper(), logging.WARNING)


def create_logger(*, log_level: int | None = None, **initial_values: object) -> "FilteringBoundLogger":  # noqa: UP037
    """Create a stderr structlog logger.

    Args:
        log_level: Override log level (uses env vars if not specified).
        **initial_values: Context bound to every entry.

    Returns:
        A configured FilteringBoundLogger instance.
    """
    effective_level = log_level if log_level is not None else _get_log_level()

    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=False),
    ]

    logger = structlog.wrap_logger(
        structlog.PrintLogger(file=sys.stderr),
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(effective_level),
        context_class=dict,
    )
    return cast("FilteringBoundLogger", logger.bind(**initial_values))
