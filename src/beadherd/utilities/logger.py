"""Structured logging for beadherd, built on structlog over stdlib logging."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import structlog


def setup_logging(
    *,
    debug: bool = False,
    json_output: bool = False,
    log_file: str | Path | None = None,
) -> None:
    """Route structlog through stdlib logging to stderr or a file.

    Calling it again replaces the previous handlers, which is how the board
    moves logging off the terminal before Textual takes over the screen.

    Args:
        debug: Enable DEBUG level logging.
        json_output: Render JSON lines instead of console key=value output.
        log_file: Append to this file instead of stderr. Parent directories
            are created.
    """
    level = logging.DEBUG if debug else logging.INFO

    handler: logging.Handler
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    logging.basicConfig(format="%(message)s", level=level, handlers=[handler], force=True)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=log_file is None))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "beadherd", **kwargs: Any) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name, **kwargs)
