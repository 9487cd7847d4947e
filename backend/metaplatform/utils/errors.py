"""
Error utilities
Domain exceptions, error classification and user-facing error payloads
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(str, Enum):
    """Error category"""
    VALIDATION = "validation"        # invalid input
    AUTHENTICATION = "auth"          # authentication failed
    AUTHORIZATION = "permission"     # not allowed
    NOT_FOUND = "not_found"          # missing resource
    CONFLICT = "conflict"            # duplicates, state conflicts
    RATE_LIMIT = "rate_limit"        # provider quota exceeded
    SERVICE = "service"              # external service failure
    DATABASE = "database"            # DB failure
    TOOL = "tool"                    # bot tool failure
    INTERNAL = "internal"            # unexpected server error
    NETWORK = "network"              # network failure
    TIMEOUT = "timeout"              # timeout


# ========== Domain exceptions ==========


class AppError(Exception):
    """Base class for errors that map onto an HTTP status"""

    status_code: int = 500
    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationError(AppError):
    status_code = 400
    category = ErrorCategory.VALIDATION


class AuthorizationError(AppError):
    status_code = 403
    category = ErrorCategory.AUTHORIZATION


class NotFoundError(AppError):
    status_code = 404
    category = ErrorCategory.NOT_FOUND


class ConflictError(AppError):
    status_code = 409
    category = ErrorCategory.CONFLICT


class ToolExecutionError(AppError):
    status_code = 400
    category = ErrorCategory.TOOL


class LLMServiceError(AppError):
    status_code = 502
    category = ErrorCategory.SERVICE


class QueueUnavailableError(AppError):
    status_code = 503
    category = ErrorCategory.SERVICE


def raise_not_found(resource: str, resource_id: Any = None):
    """Raise NotFoundError with a uniform message"""
    if resource_id is None:
        raise NotFoundError(f"{resource} not found")
    raise NotFoundError(f"{resource} not found: {resource_id}")


# ========== User-facing classification ==========


@dataclass
class UserFriendlyError:
    """User-facing error"""
    category: ErrorCategory
    message: str
    suggestion: Optional[str] = None
    technical_detail: Optional[str] = None
    http_status: int = 500
    retryable: bool = False


ERROR_MESSAGES: Dict[str, UserFriendlyError] = {
    # LLM provider errors
    "rate_limit_error": UserFriendlyError(
        category=ErrorCategory.RATE_LIMIT,
        message="AI service rate limit exceeded.",
        suggestion="Please try again in a moment.",
        http_status=429,
        retryable=True,
    ),
    "invalid_api_key": UserFriendlyError(
        category=ErrorCategory.AUTHENTICATION,
        message="AI service authentication failed.",
        suggestion="Please contact the administrator.",
        http_status=503,
        retryable=False,
    ),
    "overloaded_error": UserFriendlyError(
        category=ErrorCategory.SERVICE,
        message="AI service is currently overloaded.",
        suggestion="Please try again in a moment.",
        http_status=503,
        retryable=True,
    ),

    # Database errors
    "connection_error": UserFriendlyError(
        category=ErrorCategory.DATABASE,
        message="Database connection failed.",
        suggestion="Please try again in a moment.",
        http_status=503,
        retryable=True,
    ),
    "duplicate_key": UserFriendlyError(
        category=ErrorCategory.CONFLICT,
        message="Data already exists.",
        suggestion="Please enter a different value.",
        http_status=409,
        retryable=False,
    ),

    # Network errors
    "timeout": UserFriendlyError(
        category=ErrorCategory.TIMEOUT,
        message="The operation timed out.",
        suggestion="Please try again.",
        http_status=504,
        retryable=True,
    ),
    "network_error": UserFriendlyError(
        category=ErrorCategory.NETWORK,
        message="Network connection error.",
        suggestion="Please check the service connection.",
        http_status=503,
        retryable=True,
    ),
}

STATUS_CATEGORIES: Dict[int, ErrorCategory] = {
    400: ErrorCategory.VALIDATION,
    401: ErrorCategory.AUTHENTICATION,
    403: ErrorCategory.AUTHORIZATION,
    404: ErrorCategory.NOT_FOUND,
    405: ErrorCategory.VALIDATION,
    409: ErrorCategory.CONFLICT,
    422: ErrorCategory.VALIDATION,
    429: ErrorCategory.RATE_LIMIT,
    503: ErrorCategory.SERVICE,
    504: ErrorCategory.TIMEOUT,
}


def classify_error(exception: Exception) -> UserFriendlyError:
    """
    Convert an exception into a user-facing error

    Args:
        exception: raised exception

    Returns:
        UserFriendlyError
    """
    if isinstance(exception, AppError):
        return UserFriendlyError(
            category=exception.category,
            message=exception.message,
            technical_detail="; ".join(exception.details) or None,
            http_status=exception.status_code,
            retryable=exception.status_code >= 500,
        )

    error_str = str(exception).lower()
    error_type = type(exception).__name__.lower()

    # LLM provider errors
    if "rate" in error_str and "limit" in error_str:
        return ERROR_MESSAGES["rate_limit_error"]
    if "api_key" in error_str or "authentication" in error_str:
        return ERROR_MESSAGES["invalid_api_key"]
    if "overloaded" in error_str:
        return ERROR_MESSAGES["overloaded_error"]

    # DB errors
    if "connection" in error_str and ("refused" in error_str or "failed" in error_str):
        return ERROR_MESSAGES["connection_error"]
    if "duplicate" in error_str or "unique" in error_str:
        return ERROR_MESSAGES["duplicate_key"]

    # Network errors
    if "timeout" in error_str or "timed out" in error_str:
        return ERROR_MESSAGES["timeout"]
    if "connectionerror" in error_type or "networkerror" in error_type:
        return ERROR_MESSAGES["network_error"]

    return UserFriendlyError(
        category=ErrorCategory.INTERNAL,
        message="An unexpected error occurred.",
        suggestion="If the problem persists, please contact the administrator.",
        technical_detail=str(exception),
        http_status=500,
        retryable=False,
    )


def classify_http_status(status_code: int, detail: Any) -> UserFriendlyError:
    """User-facing error for an HTTPException raised by the framework or a router"""
    return UserFriendlyError(
        category=STATUS_CATEGORIES.get(status_code, ErrorCategory.INTERNAL),
        message=str(detail),
        http_status=status_code,
        retryable=status_code in (429, 503, 504),
    )


def format_error_response(
    error: UserFriendlyError,
    include_technical: bool = False,
    details: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Format an error as an API response body

    Args:
        error: UserFriendlyError
        include_technical: include the technical detail
        details: per-field validation messages

    Returns:
        Response dictionary
    """
    response: Dict[str, Any] = {
        "error": {
            "category": error.category.value,
            "message": error.message,
            "retryable": error.retryable,
        }
    }

    if error.suggestion:
        response["error"]["suggestion"] = error.suggestion

    if details:
        response["error"]["details"] = details

    if include_technical and error.technical_detail:
        response["error"]["detail"] = error.technical_detail

    return response
