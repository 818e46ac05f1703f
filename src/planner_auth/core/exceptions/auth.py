"""Authentication and session exceptions.

Messages raised from here reach clients, so they stay generic: a caller must
not be able to tell which validation step failed.
"""

from datetime import datetime
from typing import Optional

from .base import PlannerAuthError


class AuthenticationError(PlannerAuthError):
    """Base exception for authentication errors."""
    pass


class InvalidCredentialsError(AuthenticationError):
    """Raised for unknown identities, deactivated accounts and wrong secrets alike."""

    def __init__(self, message: str = "Invalid credentials", **kwargs):
        super().__init__(message, **kwargs)


class DuplicateAccountError(PlannerAuthError):
    """Raised when registering an identity that already exists."""

    def __init__(self, message: str = "An account with this email already exists", **kwargs):
        super().__init__(message, **kwargs)


class RateLimitedError(PlannerAuthError):
    """Raised when an action exceeded its rate limit window."""

    def __init__(
        self,
        retry_after: int,
        reset_at: Optional[datetime] = None,
        message: Optional[str] = None,
        limit: Optional[int] = None,
        remaining: Optional[int] = None,
    ):
        super().__init__(
            message or f"Too many attempts. Try again in {retry_after} seconds",
            details={
                "retry_after": retry_after,
                "reset_at": reset_at.isoformat() if reset_at else None,
                "limit": limit,
                "remaining": remaining,
            },
        )
        self.retry_after = retry_after
        self.reset_at = reset_at
        self.limit = limit
        self.remaining = remaining


class SessionNotFoundError(AuthenticationError):
    """Raised when updating a session that does not exist."""
    pass


class InvalidSessionError(AuthenticationError):
    """Raised when a session id is unknown or expired."""

    def __init__(self, message: str = "Invalid session", **kwargs):
        super().__init__(message, **kwargs)


class InvalidTokenError(AuthenticationError):
    """Raised when the bearer token does not match the session."""

    def __init__(self, message: str = "Invalid token", **kwargs):
        super().__init__(message, **kwargs)


class UserInactiveError(AuthenticationError):
    """Raised when the identity behind a session has been deactivated."""

    def __init__(self, message: str = "User is not active", **kwargs):
        super().__init__(message, **kwargs)
