"""Configuration for planner-auth."""

from .constants import (
    AuditAction,
    CacheKeys,
    CacheTTL,
    SENSITIVE_PERMISSIONS,
    SETTING_ENTITY_TYPES,
    StorageBackend,
)
from .logging_config import LogFormat, LoggingConfig
from .settings import AuthSettings, get_settings

__all__ = [
    "AuditAction",
    "CacheKeys",
    "CacheTTL",
    "SENSITIVE_PERMISSIONS",
    "SETTING_ENTITY_TYPES",
    "StorageBackend",
    "LogFormat",
    "LoggingConfig",
    "AuthSettings",
    "get_settings",
]
