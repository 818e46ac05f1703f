"""Exception hierarchy for planner-auth."""

from .base import (
    PlannerAuthError,
    create_error_response,
    get_http_status_code,
)
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
from .domain import (
    CacheError,
    ConfigurationError,
    IdentityStoreError,
    ResourceNotFoundError,
    ValidationError,
)

__all__ = [
    "PlannerAuthError",
    "create_error_response",
    "get_http_status_code",

    # Authentication
    "AuthenticationError",
    "DuplicateAccountError",
    "InvalidCredentialsError",
    "InvalidSessionError",
    "InvalidTokenError",
    "RateLimitedError",
    "SessionNotFoundError",
    "UserInactiveError",

    # Authorization
    "AuthorizationError",
    "PermissionDeniedError",
    "PermissionServiceUnavailableError",
    "RelationshipCycleError",

    # Domain / infrastructure
    "CacheError",
    "ConfigurationError",
    "IdentityStoreError",
    "ResourceNotFoundError",
    "ValidationError",
]
