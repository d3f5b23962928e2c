"""
Centralized logging and error classification utilities.

This module standardizes logging and error reporting for the streaming
server, the stream client and the repository layer.

Features:
- Structured logging with contextual information
- Error classification into HTTP status and category
- Operation timing for coroutines and async blocks
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from streamchat.exceptions import (
    ConfigurationError,
    DecodeError,
    InvalidRequestError,
    StreamFailedError,
)
from streamchat.llm.exceptions import LLMError

_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.dev.ConsoleRenderer(colors=True),
]

# Configure structured logging
structlog.configure(
    processors=_PROCESSORS,
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def configure_logging(config: dict[str, Any] | None = None) -> None:
    """Apply the ``logging`` section of the configuration."""
    level_name = str((config or {}).get("level", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ConfigurationError(f"logging.level '{level_name}' is not a valid level")

    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger().setLevel(level)


class ErrorClassifier:
    """Maps exceptions to an HTTP status and a log category."""

    @staticmethod
    def classify_error(error: BaseException) -> tuple[int, str]:
        """
        Classify an error and return the matching HTTP status and category.

        Args:
            error: The exception to classify

        Returns:
            Tuple of (http_status, error_category)
        """
        if isinstance(error, InvalidRequestError | ValidationError):
            return 400, "validation_error"
        if isinstance(error, ConfigurationError):
            return 500, "configuration_error"
        if isinstance(error, DecodeError):
            return 502, "decode_error"
        if isinstance(error, StreamFailedError):
            return 502, "stream_error"
        if isinstance(error, LLMError):
            return error.status_code or 502, "provider_error"
        if isinstance(error, httpx.TimeoutException | TimeoutError):
            return 504, "timeout_error"
        if isinstance(error, httpx.TransportError | ConnectionError | OSError):
            return 502, "connection_error"
        return 500, "unknown_error"


def log_operation(
    operation: str,
    *,
    log_args: bool = False,
    log_result: bool = False,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging async operations with structured context.

    Args:
        operation: Description of the operation being performed
        log_args: Whether to log function arguments
        log_result: Whether to log function result
        log_timing: Whether to log execution timing
        context: Additional context to include in logs

    Returns:
        Decorated function with logging
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            operation_logger = logger.bind(
                operation=operation,
                function=func.__name__,
                **(context or {}),
            )

            log_data = {}
            if log_args:
                log_data.update({
                    "args": args[1:] if args else [],  # Skip 'self' if present
                    "kwargs": kwargs,
                })

            operation_logger.debug("Operation started", **log_data)

            start_time = time.perf_counter() if log_timing else None

            try:
                result = await func(*args, **kwargs)

                end_log_data: dict[str, Any] = {}
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    end_log_data["duration_ms"] = duration
                if log_result:
                    end_log_data["result"] = result

                operation_logger.debug(
                    "Operation completed successfully", **end_log_data
                )
                return result

            except Exception as e:
                error_log_data: dict[str, Any] = {
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    error_log_data["duration_ms"] = duration

                operation_logger.error("Operation failed", **error_log_data)
                raise

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
):
    """
    Async context manager for operation logging.

    Args:
        operation: Description of the operation
        context: Additional context for logging
        log_timing: Whether to log operation timing

    Yields:
        Bound logger for the operation
    """
    operation_logger = logger.bind(
        operation=operation,
        **(context or {}),
    )

    operation_logger.info("Operation started")
    start_time = time.perf_counter() if log_timing else None

    try:
        yield operation_logger

        log_data: dict[str, Any] = {}
        if log_timing and start_time is not None:
            duration = round((time.perf_counter() - start_time) * 1000, 2)
            log_data["duration_ms"] = duration

        operation_logger.info("Operation completed successfully", **log_data)

    except Exception as e:
        error_log_data: dict[str, Any] = {
            "error_type": type(e).__name__,
            "error_message": str(e),
        }
        if log_timing and start_time is not None:
            duration = round((time.perf_counter() - start_time) * 1000, 2)
            error_log_data["duration_ms"] = duration

        operation_logger.error("Operation failed", **error_log_data)
        raise


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

    def warning(self, message: str, **context: Any) -> None:
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        self._logger.error(message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self._logger.debug(message, **context)
