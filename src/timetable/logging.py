"""Structured logging for the timetable engine, built on structlog.

Only the scheduler, the store and the course directory log. The pure
functions (time normalizer, recurrence expander, conflict detector, lifecycle
and attendance rules) report through exceptions and return values instead.

Event names are snake_case ("plan_built", "commit_rejected") and carry their
details as key/value pairs.
"""

import logging
import sys
from typing import TextIO

import structlog

_NOISY_LIBRARIES = ("urllib3", "requests")


def setup_logging(
    json_output: bool = False, log_level: str = "INFO", stream: TextIO | None = None
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        json_output: Render one JSON object per line instead of console output.
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        stream: Destination; stderr by default so stdout stays free for
            machine-readable CLI output.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    stream = stream or sys.stderr

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=stream.isatty())
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers = [logging.StreamHandler(stream)]
    root.setLevel(level)
    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.BoundLogger:
    """Lazy logger for `name` (typically __name__ of the calling module).

    The proxy resolves against the configuration active at call time, so
    module-level loggers pick up setup_logging() run later by a script.
    """
    return structlog.get_logger(name)
