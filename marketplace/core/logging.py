"""
Structured logging configuration with request correlation.

This module configures structlog for the whole service: console output in
development, JSON lines everywhere else, request/user correlation through
context variables, and a small timing helper for slow operations.
"""

import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

from marketplace.core.config import get_settings

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
user_id_ctx: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

SLOW_OPERATION_MS = 500


def add_correlation_ids(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Attach the current request and user identifiers to a log event.

    Args:
        logger: Logger instance
        method_name: Log method name
        event_dict: Event dictionary to modify

    Returns:
        Event dictionary with request_id/user_id when they are set
    """
    request_id = request_id_ctx.get()
    if request_id:
        event_dict["request_id"] = request_id
    user_id = user_id_ctx.get()
    if user_id:
        event_dict["user_id"] = user_id
    return event_dict


def add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add an ISO-8601 UTC timestamp to the event."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def add_logger_name(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add the originating logger name to the event."""
    event_dict["logger"] = logger.name
    return event_dict


def configure_logging() -> None:
    """
    Configure structlog and the standard library root logger.

    Uses the console renderer in development and the JSON renderer in every
    other environment, so log shippers get one JSON object per line.
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_timestamp,
        add_logger_name,
        add_correlation_ids,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set request ID in context for correlation.

    Args:
        request_id: Optional request ID, generates UUID if not provided

    Returns:
        Request ID that was set
    """
    if request_id is None:
        request_id = str(uuid4())
    request_id_ctx.set(request_id)
    return request_id


def get_request_id() -> str:
    """Get current request ID from context."""
    return request_id_ctx.get()


def set_user_id(user_id: Optional[str]) -> None:
    """Set the authenticated user ID in context for correlation."""
    user_id_ctx.set(user_id)


def clear_context() -> None:
    """
    Clear all context variables.

    Called at the end of request processing so identifiers do not leak
    into the next request handled by the same task.
    """
    request_id_ctx.set("")
    user_id_ctx.set(None)


class PerformanceLogger:
    """
    Context manager that logs how long a block of code took.

    Completed operations slower than SLOW_OPERATION_MS are logged as
    warnings; failures are logged as errors with the exception type.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        self.logger.debug(
            "Operation started",
            operation=self.operation,
            **self.context,
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is None:
            return

        duration_ms = (time.perf_counter() - self.start_time) * 1000

        if exc_type is not None:
            self.logger.error(
                "Operation failed",
                operation=self.operation,
                duration_ms=round(duration_ms, 2),
                error_type=exc_type.__name__,
                **self.context,
            )
        else:
            log_method = (
                self.logger.warning
                if duration_ms > SLOW_OPERATION_MS
                else self.logger.info
            )
            log_method(
                "Operation completed",
                operation=self.operation,
                duration_ms=round(duration_ms, 2),
                **self.context,
            )


def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    **context: Any,
) -> PerformanceLogger:
    """
    Create performance logger context manager.

    Example:
        >>> logger = get_logger(__name__)
        >>> with log_performance(logger, "create_order", customer_id="CUS00001"):
        ...     ...
    """
    return PerformanceLogger(logger, operation, **context)
