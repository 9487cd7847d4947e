"""
Decorators
Shared decorator functions
"""
import asyncio
import functools
import logging
from typing import Any, Callable

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

from metaplatform.utils.errors import (
    AppError,
    AuthorizationError,
    ConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _translate(exc: Exception, resource: str, operation: str = None) -> AppError:
    if isinstance(exc, ValueError):
        logger.warning(f"{resource} validation error: {exc}")
        return ValidationError(str(exc))
    if isinstance(exc, PermissionError):
        logger.warning(f"{resource} permission denied: {exc}")
        return AuthorizationError(str(exc))
    if isinstance(exc, IntegrityError):
        logger.warning(f"{resource} integrity error: {exc.orig}")
        return ConflictError(f"{resource} conflicts with existing data")

    op_msg = f" during {operation}" if operation else ""
    logger.error(
        f"Error in {resource}{op_msg}: {exc}",
        exc_info=True,
        extra={
            "resource": resource,
            "operation": operation,
            "error_type": type(exc).__name__,
        },
    )
    return AppError(f"Failed to process {resource}: {exc}")


def handle_service_errors(resource: str, operation: str = None):
    """
    Map service exceptions onto domain errors consistently

    Args:
        resource: resource name (e.g. "bot", "schema")
        operation: operation name (e.g. "create", "start")

    Usage:
        @handle_service_errors(resource="bot", operation="start")
        def start_bot(bot_id: UUID, ...):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            try:
                return await func(*args, **kwargs)
            except (AppError, HTTPException):
                raise
            except Exception as e:
                raise _translate(e, resource, operation) from e

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)
            except (AppError, HTTPException):
                raise
            except Exception as e:
                raise _translate(e, resource, operation) from e

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
