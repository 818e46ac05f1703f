"""Base exceptions for planner-auth.

This module defines the root of the exception hierarchy. Every exception
carries an error code, optional details and maps to an HTTP status code for
API responses.
"""

from typing import Any, Dict, Optional


class PlannerAuthError(Exception):
    """Base exception for all planner-auth errors.

    All exceptions in the package inherit from this base class and include
    structured error information for logging and API responses.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        *args,
        **kwargs
    ):
        super().__init__(message, *args, **kwargs)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


def get_http_status_code(exception: Exception) -> int:
    """Get HTTP status code for exception.

    Args:
        exception: The exception instance

    Returns:
        HTTP status code
    """
    from .http_mapping import get_http_status_code as get_mapped_status_code
    return get_mapped_status_code(exception)


def create_error_response(exception: PlannerAuthError) -> Dict[str, Any]:
    """Create the `{error, message}` response body for an exception.

    Args:
        exception: The planner-auth exception

    Returns:
        Error response dictionary
    """
    body: Dict[str, Any] = {
        "error": exception.error_code,
        "message": exception.message,
    }
    reset_at = exception.details.get("reset_at")
    if reset_at is not None:
        body["resetAt"] = reset_at
    return body
