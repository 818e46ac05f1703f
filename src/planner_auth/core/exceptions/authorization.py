"""Authorization exceptions."""

from .base import PlannerAuthError


class AuthorizationError(PlannerAuthError):
    """Base exception for authorization errors."""
    pass


class PermissionDeniedError(AuthorizationError):
    """Raised when a subject lacks a permission.

    Also raised when the permission service could not be reached, so callers
    never learn the difference.
    """

    def __init__(self, message: str = "Insufficient permissions", **kwargs):
        super().__init__(message, **kwargs)


class PermissionServiceUnavailableError(AuthorizationError):
    """Raised by relationship stores that cannot answer a check."""
    pass


class RelationshipCycleError(AuthorizationError):
    """Raised when a parent-link tuple would make a resource its own ancestor."""
    pass
