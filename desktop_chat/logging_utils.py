"""
Centralized logging and error classification utilities for desktop-chat.

This module provides decorators and helper functions to standardize logging
and error reporting across the codebase.

Features:
- Structured logging with contextual information
- Error classification for the streaming client taxonomy
- Timing for store operations and chat turns
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import structlog
from pydantic import ValidationError

from .exceptions import (
    ApiError,
    ParseError,
    RequestCancelledError,
    TransportError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def configure_logging(config: dict[str, Any]) -> None:
    """
    Apply the `logging` section of config.yaml to the stdlib root logger.

    structlog routes through stdlib, so this sets the level for both.
    """
    level_name = str(config.get("level", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level '{level_name}'")

    logging.basicConfig(
        level=level,
        format=config.get("format", "%(message)s"),
    )
    logging.getLogger().setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(
        str(config.get("httpx_level", "WARNING")).upper()
    )


class ErrorHandler:
    """Centralized error classification with structured logging."""

    @staticmethod
    def classify_error(error: Exception) -> str:
        """
        Classify an error into a logging category.

        Args:
            error: The exception to classify

        Returns:
            The error category name
        """
        if isinstance(error, RequestCancelledError):
            return "cancelled"
        if isinstance(error, ApiError):
            return "api_error"
        if isinstance(error, ParseError):
            return "parse_error"
        if isinstance(error, TransportError):
            return "transport_error"
        if isinstance(error, ValidationError):
            return "validation_error"
        if isinstance(error, TimeoutError):
            return "timeout_error"
        if isinstance(error, ConnectionError | OSError):
            return "connection_error"
        if isinstance(error, ValueError | TypeError):
            return "parameter_error"
        return "unknown_error"

    @staticmethod
    def log_error(
        error: Exception,
        operation: str,
        context: dict[str, Any] | None = None,
    ) -> str:
        """
        Log an error with its category and return the category.

        Args:
            error: Original exception
            operation: Description of the operation that failed
            context: Additional context for logging
        """
        category = ErrorHandler.classify_error(error)
        logger.error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=category,
            error_message=str(error),
            **(context or {}),
        )
        return category


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def log_operation(
    operation: str,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator timing an async store operation.

    Success is logged at debug level; failures are logged with their
    category and re-raised.
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            operation_logger = logger.bind(operation=operation)
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                operation_logger.error(
                    "Operation failed",
                    error_type=type(e).__name__,
                    error_category=ErrorHandler.classify_error(e),
                    error_message=str(e),
                    duration_ms=_elapsed_ms(start),
                )
                raise

            operation_logger.debug("Operation completed", duration_ms=_elapsed_ms(start))
            return result

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
):
    """
    Log the start, end and duration of a block at info level.

    Yields the bound logger so the block can add its own entries.
    """
    operation_logger = logger.bind(operation=operation, **(context or {}))
    operation_logger.info("Operation started")
    start = time.perf_counter()

    try:
        yield operation_logger
    except Exception as e:
        operation_logger.error(
            "Operation failed",
            error_type=type(e).__name__,
            error_message=str(e),
            duration_ms=_elapsed_ms(start),
        )
        raise

    operation_logger.info("Operation completed", duration_ms=_elapsed_ms(start))


class ContextualLogger:
    """Logger that maintains context across related operations."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = base_context or {}
        self._logger = logger.bind(**self.base_context)

    def bind(self, **context: Any) -> ContextualLogger:
        """Create a new logger with additional context."""
        merged_context = {**self.base_context, **context}
        return ContextualLogger(merged_context)

    def info(self, message: str, **context: Any) -> None:
        self._logger.info(message, **context)

    def error(self, message: str, **context: Any) -> None:
        self._logger.error(message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self._logger.debug(message, **context)
