"""Structured logging setup for Rollout Runner.

Uses structlog with a console renderer for interactive runs and a JSON
renderer when the output is consumed by a CI system or log shipper.
Logs go to stderr; stdout is reserved for command output.
"""

import logging
import sys

import structlog


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog for the Rollout Runner process.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
        json_output: If True, render logs as JSON.
                     If False (default), use console-friendly output.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    level_num = getattr(logging, level.upper(), logging.INFO)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(rollout: str | None = None, **context: str) -> structlog.BoundLogger:
    """Get a logger bound with the rollout name and extra context.

    Args:
        rollout: Resource name of the rollout being driven, if known.
        **context: Additional key/value pairs to bind.

    Returns:
        A structlog BoundLogger with the given context bound.
    """
    logger = structlog.get_logger()
    if rollout:
        logger = logger.bind(rollout=rollout)
    if context:
        logger = logger.bind(**context)
    return logger
