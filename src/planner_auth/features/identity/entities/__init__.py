"""Identity entities and protocols."""

from .user import ExternalIdentity, User
from .organization import Group, Organization, Role
from .audit import AuditLogEntry
from .protocols import ROLE_ASSIGNMENT_FIELDS, IdentityStoreProtocol

__all__ = [
    "ExternalIdentity",
    "User",
    "Group",
    "Organization",
    "Role",
    "AuditLogEntry",
    "ROLE_ASSIGNMENT_FIELDS",
    "IdentityStoreProtocol",
]
