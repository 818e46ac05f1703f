"""HTTP status code mapping for exceptions."""

from typing import Dict, Type

from .auth import (
    AuthenticationError,
    DuplicateAccountError,
    InvalidCredentialsError,
    InvalidSessionError,
    InvalidTokenError,
    RateLimitedError,
    SessionNotFoundError,
    UserInactiveError,
)
from .authorization import (
    AuthorizationError,
    PermissionDeniedError,
    PermissionServiceUnavailableError,
    RelationshipCycleError,
)
from .base import PlannerAuthError
from .domain import (
    CacheError,
    ConfigurationError,
    IdentityStoreError,
    ResourceNotFoundError,
    ValidationError,
)


HTTP_STATUS_MAP: Dict[Type[Exception], int] = {
    # 400 Bad Request
    ValidationError: 400,
    RelationshipCycleError: 400,

    # 401 Unauthorized
    AuthenticationError: 401,
    InvalidCredentialsError: 401,
    InvalidSessionError: 401,
    InvalidTokenError: 401,
    SessionNotFoundError: 401,
    UserInactiveError: 401,

    # 403 Forbidden
    AuthorizationError: 403,
    PermissionDeniedError: 403,
    # Unreachable policy engine is indistinguishable from a denial
    PermissionServiceUnavailableError: 403,

    # 404 Not Found
    ResourceNotFoundError: 404,

    # 409 Conflict
    DuplicateAccountError: 409,

    # 429 Too Many Requests
    RateLimitedError: 429,

    # 500 Internal Server Error
    ConfigurationError: 500,

    # 503 Service Unavailable
    CacheError: 503,
    IdentityStoreError: 503,

    PlannerAuthError: 500,
}


def get_http_status_code(exception: Exception) -> int:
    """Resolve the status code by walking the exception's MRO."""
    for exc_type in type(exception).__mro__:
        if exc_type in HTTP_STATUS_MAP:
            return HTTP_STATUS_MAP[exc_type]
    return 500
