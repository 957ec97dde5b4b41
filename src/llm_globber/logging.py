from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

_LOGGING_CONFIGURED = False


def level_for(*, verbose: bool = False, quiet: bool = False) -> int:
    """Map the CLI verbosity flags to a logging level.

    Quiet wins over verbose: only critical events are emitted.

    Args:
        verbose: Emit debug events.
        quiet: Suppress everything below CRITICAL.

    Returns:
        int: A ``logging`` level.
    """
    if quiet:
        return logging.CRITICAL
    if verbose:
        return logging.DEBUG
    return logging.WARNING


def setup_logging(
    filename: str | Path | None = None,
    *,
    level: int = logging.WARNING,
    force: bool = False,
) -> structlog.BoundLogger:
    """Set up structured logging for the llm_globber package.

    The first call configures stdlib logging and structlog. Later calls are
    no-ops unless ``force`` is set, which the CLI uses to apply ``--verbose``,
    ``--quiet`` and ``--log-file``.

    Loggers are not cached on first use: the module-level ``logger`` is created
    at import time, before the CLI knows the requested level, and each call
    must go through the level filter configured last.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        level: Minimum level that reaches the handlers.
        force: Replace an existing configuration.

    Returns:
        A structlog logger instance configured for the llm_globber package.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if force or not _LOGGING_CONFIGURED:
        handlers: list[logging.Handler] = []
        if filename:
            handlers.append(logging.FileHandler(str(filename), encoding="utf-8"))
        else:
            handlers.append(logging.StreamHandler(sys.stderr))

        logging.basicConfig(
            level=level,
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
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=False,
        )
        _LOGGING_CONFIGURED = True

    return structlog.get_logger("llm_globber")


logger = setup_logging()
