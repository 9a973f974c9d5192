"""structlog setup for the engine, the API and the scanner.

Every event is one line: JSON by default, or key=value colour output with
log_format="console". Per-cycle context (cycle number, symbol) is carried in
contextvars so nested calls log it without passing it around.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

# chatty third-party loggers; httpx logs every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _renderer(log_format: str) -> Any:
    if log_format.lower() == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer(default=str)


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(log_format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str, **kwargs: Any) -> structlog.BoundLogger:
    return structlog.get_logger().bind(component=component, **kwargs)


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind fields to every event logged inside the block (restored on exit)."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
