"""Authentication services."""

from .password_hasher import PasswordHasher
from .auth_service import UNSET, AuthorizationService

__all__ = ["PasswordHasher", "UNSET", "AuthorizationService"]
