"""structlog setup for the cohorting engine.

Evaluation events (subject walks, $evaluate calls, batch failures) are
emitted as key/value pairs. Console output is human-readable; when a log
file is configured every line is rendered as JSON so batch runs can be
grepped by subject or library id. Subject identifiers are never logged,
only subject references and pseudonyms.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None
) -> None:
    """
    Route engine logs to stdout and, optionally, a JSON log file.

    Args:
        log_level: Threshold for engine events; DEBUG shows every $evaluate call
        log_file: Path of the JSON log; parent directories are created
    """
    level = getattr(logging, log_level.upper())
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(format="%(message)s", level=level, handlers=handlers, force=True)

    renderer = structlog.processors.JSONRenderer() if log_file else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Module logger, e.g. ``get_logger(__name__)`` in each evaluation module."""
    return structlog.get_logger(name)
