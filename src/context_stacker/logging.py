from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

_LOGGING_CONFIGURED = False


def setup_logging(
    filename: str | Path | None = None,
    level: str = "INFO",
    *,
    force: bool = False,
) -> structlog.BoundLogger:
    """Set up structured logging for the context_stacker package.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
        force: Reconfigure even if logging was already set up (used by the CLI
            once settings are known).

    Returns:
        A structlog logger instance configured for the context_stacker package.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if not _LOGGING_CONFIGURED or force:
        numeric_level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
        handlers: list[logging.Handler] = []
        if filename:
            handlers.append(logging.FileHandler(str(filename), encoding="utf-8"))
        else:
            handlers.append(logging.StreamHandler(sys.stderr))

        logging.basicConfig(
            level=numeric_level,
            handlers=handlers,
            format="%(message)s",
            force=force,
        )
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=not force,
        )
        _LOGGING_CONFIGURED = True

    return structlog.get_logger("context_stacker")


logger = setup_logging()
