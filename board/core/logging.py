"""
structlog setup.

Every log line is an event name plus key/value context. Request-scoped
values (request_id, user_id) live in structlog's context variables, so
they are attached to every event logged while handling the request,
including events logged from image processing in executor threads (the
avatar service runs that work inside a copy of the request context).
"""

import logging
import sys
from typing import Any, cast

import structlog
from structlog.types import Processor

from board.config import settings

# Libraries that log per call at INFO/DEBUG
_NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "PIL",
    "botocore",
    "aiobotocore",
    "boto3",
    "google.auth",
    "urllib3",
)


def _renderer() -> list[Processor]:
    if settings.ENVIRONMENT == "development":
        return [structlog.dev.ConsoleRenderer(colors=True)]
    return [
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging() -> None:
    """
    Configure structlog and the stdlib root logger.

    Development gets colored console output, everything else JSON lines.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        *_renderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )

    if settings.ENVIRONMENT != "development":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance with the given name.

    Example:
        logger = get_logger(__name__)
        logger.info("avatar_saved", filename="3f2a....png", size_bytes=4113)
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def set_request_context(request_id: str) -> None:
    """Start a fresh log context for a request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def bind_context(**kwargs: Any) -> None:
    """
    Add values to the current log context (e.g. the authenticated user_id).
    """
    structlog.contextvars.bind_contextvars(**kwargs)
