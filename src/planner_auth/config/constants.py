"""Constants shared across features."""

from enum import Enum


class StorageBackend(str, Enum):
    """Backends the service can be wired against."""
    POSTGRES = "postgres"
    MEMORY = "memory"


class CacheTTL:
    """Default cache lifetimes in seconds."""
    SESSION = 86400      # 24 hours
    SETTING = 3600       # 1 hour


class CacheKeys:
    """Key templates below the configured prefix."""
    SESSION = "session:{session_id}"
    SETTING = "setting:{entity_type}:{entity_id}:{setting_key}"
    # Present only while every setting of the entity is cached
    SETTINGS_COMPLETE = "settings-complete:{entity_type}:{entity_id}"
    RATE_LIMIT = "ratelimit:{action}:{identifier}"


class AuditAction:
    """Audit log action names."""
    LOGIN = "login"
    LOGOUT = "logout"
    REGISTER = "register"
    DEACTIVATE = "deactivate_user"
    UPDATE_ROLES = "update_user_roles"
    PERMISSION_CHECK = "permission_check_{permission}"


# Permissions whose checks are always audited
SENSITIVE_PERMISSIONS = frozenset({"delete", "manage_members", "update"})

# Entity types that carry settings
SETTING_ENTITY_TYPES = frozenset({"user", "organization", "team", "project"})
