"""
Structured logging configuration using structlog.

Provides JSON-formatted logs with contextual information that works across
request handlers and background jobs.

Features:
- JSON structured logging for production
- Pretty console logging for development
- Request ID tracking
- Context binding (client_id, session_id, etc.)
- Token masking so secrets never reach the logs in full
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, cast

import structlog
from structlog.types import EventDict, Processor

from authserver.config import settings

# Context variables for request tracking
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
client_id_ctx: ContextVar[str | None] = ContextVar("client_id", default=None)


def add_context_info(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add contextual information to log records."""
    request_id = request_id_ctx.get(None)
    if request_id:
        event_dict["request_id"] = request_id

    client_id = client_id_ctx.get(None)
    if client_id:
        event_dict["client_id"] = client_id

    return event_dict


def configure_logging() -> None:
    """
    Configure structured logging for the application.

    In development: Pretty console output with colors
    In production: JSON-formatted logs for aggregation
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_context_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.ENVIRONMENT == "development" and settings.LOG_FORMAT != "json":
        processors: list[Processor] = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True)
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
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

    # Reduce noise from third-party libraries
    if settings.ENVIRONMENT != "development":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance

    Example:
        logger = get_logger(__name__)
        logger.info("token_issued", client_id="gla_abc", grant_type="authorization_code")
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def set_request_context(request_id: str, client_id: str | None = None) -> None:
    """
    Set context variables for the current request.

    Args:
        request_id: Unique request identifier
        client_id: Optional OAuth client_id once it is known
    """
    request_id_ctx.set(request_id)
    if client_id:
        client_id_ctx.set(client_id)


def clear_request_context() -> None:
    """Clear context variables after request completes."""
    request_id_ctx.set(None)
    client_id_ctx.set(None)


def mask_secret(value: str | None, visible: int = 8) -> str | None:
    """
    Shorten a token, code or secret for logging.

    Only the first `visible` characters are kept so log lines stay correlatable
    without exposing a usable credential.
    """
    if not value:
        return value
    if len(value) <= visible:
        return "***"
    return f"{value[:visible]}***"


def bind_context(**kwargs: Any) -> None:
    """
    Bind additional context to all subsequent logs in this context.

    Useful for background tasks to add task-specific context.

    Example:
        bind_context(task="session_sweep")
        logger.info("task_started")  # Will include task
    """
    structlog.contextvars.bind_contextvars(**kwargs)
