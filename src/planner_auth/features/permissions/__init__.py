"""Role permission lists and wildcard matching."""

from .matcher import PermissionSet, has_permission, validate_permissions

__all__ = ["PermissionSet", "has_permission", "validate_permissions"]
