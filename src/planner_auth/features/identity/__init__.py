"""Identity record store: users, organization hierarchy, settings and audit log."""

from .entities import (
    AuditLogEntry,
    ExternalIdentity,
    Group,
    IdentityStoreProtocol,
    Organization,
    Role,
    User,
)
from .repositories import AsyncPGIdentityStore, MemoryIdentityStore

__all__ = [
    "AuditLogEntry",
    "ExternalIdentity",
    "Group",
    "IdentityStoreProtocol",
    "Organization",
    "Role",
    "User",
    "AsyncPGIdentityStore",
    "MemoryIdentityStore",
]
