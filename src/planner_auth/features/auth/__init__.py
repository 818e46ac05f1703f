"""Authentication, authorization and the HTTP access layer."""

from .dependencies import AccessDependencyError, AccessMiddleware
from .entities import AccessContext, LoginResult, SessionState
from .services import UNSET, AuthorizationService, PasswordHasher

__all__ = [
    "AccessDependencyError",
    "AccessMiddleware",
    "AccessContext",
    "LoginResult",
    "SessionState",
    "UNSET",
    "AuthorizationService",
    "PasswordHasher",
]
