"""
Error handling utilities for fcmpush.

Provides decorators and helpers for consistent error handling and logging.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from fcmpush.utils.redaction import redact_sensitive_data

logger = logging.getLogger(__name__)

T = TypeVar("T")


def log_errors(operation_name: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to log errors with context.

    Automatically logs exceptions with structured context including
    operation name, function name, and error details. The exception
    is re-raised after logging.

    Args:
        operation_name: Name of the operation for logging context

    Returns:
        Decorated function that logs errors before re-raising

    Example:
        @log_errors("resolve_credential")
        def resolve(source: CredentialSource) -> MessagingClient:
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Error in {operation_name}",
                    extra={
                        "operation": operation_name,
                        "error_type": type(e).__name__,
                        "function": func.__name__,
                        "error": redact_sensitive_data(str(e)),
                    },
                )
                raise

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Error in {operation_name}",
                    extra={
                        "operation": operation_name,
                        "error_type": type(e).__name__,
                        "function": func.__name__,
                        "error": redact_sensitive_data(str(e)),
                    },
                )
                raise

        if inspect.iscoroutinefunction(func):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper  # type: ignore[return-value]

    return decorator


def format_exception(e: Exception) -> dict[str, object]:
    """
    Format an exception as a plain dict for CLI or JSON output.

    Args:
        e: Exception to format

    Returns:
        Dictionary with error type, redacted message and context when present
    """
    from fcmpush.exceptions import FcmPushError

    error_dict: dict[str, object] = {
        "error": type(e).__name__,
        "message": redact_sensitive_data(str(e)),
    }

    if isinstance(e, FcmPushError) and e.context:
        error_dict["context"] = e.context

    return error_dict
