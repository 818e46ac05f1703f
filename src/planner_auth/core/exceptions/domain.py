"""Domain and infrastructure exceptions."""

from .base import PlannerAuthError


class ValidationError(PlannerAuthError):
    """Raised when input fails domain validation."""
    pass


class ResourceNotFoundError(PlannerAuthError):
    """Raised when a referenced record does not exist."""
    pass


class ConfigurationError(PlannerAuthError):
    """Raised when settings are missing or inconsistent."""
    pass


class CacheError(PlannerAuthError):
    """Raised when the session cache cannot be reached."""
    pass


class IdentityStoreError(PlannerAuthError):
    """Raised when the durable identity store fails."""
    pass
