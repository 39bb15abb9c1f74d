"""
Structured logging setup (structlog, JSON lines).
"""
# @file purpose: Configure structlog for CLI and service modes.

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import structlog


def configure_logging(level: str = "WARNING", log_file: Path | None = None) -> None:
    """JSON lines to `log_file` (appended) or stderr, filtered by `level`."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.WARNING

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        factory: Any = structlog.WriteLoggerFactory(file=log_file.open("a", encoding="utf-8"))
    else:
        factory = structlog.PrintLoggerFactory(file=sys.stderr)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(default=str),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=factory,
        cache_logger_on_first_use=False,
    )
