"""Logging configuration using structlog.

Logs go to stderr so stdout carries only query documents (piping).
"""

import logging
import sys
from typing import Any

import structlog


class _LazyStderrFactory:
    """Look up sys.stderr when a logger is created, not at configure() time.

    CliRunner swaps stderr between invocations; a handle captured once by
    PrintLoggerFactory would go stale.
    """

    def __call__(self, *args: Any, **kwargs: Any) -> structlog.PrintLogger:
        return structlog.PrintLogger(file=sys.stderr)


def _level_for(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure structlog for Cosmos Tool.

    Args:
        verbose: Log at DEBUG (partition ranges, pages, pipeline layers).
        quiet: Only warnings and errors. ``verbose`` wins when both are set.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _level_for(verbose, quiet)
        ),
        context_class=dict,
        logger_factory=_LazyStderrFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger, optionally bound with a name.

    Call inside functions after setup_logging(), never at module level.
    """
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    return logger
