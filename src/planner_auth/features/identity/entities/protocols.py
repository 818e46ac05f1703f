"""Protocol interface for the identity record store."""

from abc import abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from .audit import AuditLogEntry
from .organization import Group, Organization, Role
from .user import ExternalIdentity, User

# Columns update_user_roles accepts
ROLE_ASSIGNMENT_FIELDS = ("organization_id", "group_id", "role_id")


@runtime_checkable
class IdentityStoreProtocol(Protocol):
    """Durable source of truth for identities, the org hierarchy, settings and audit."""

    # Users

    @abstractmethod
    async def create_user(self, user: User) -> User:
        """Persist a user; raises DuplicateAccountError for a taken email or external id."""
        ...

    @abstractmethod
    async def create_account(self, user: User, organization: Organization) -> User:
        """Persist a user together with its default organization, atomically."""
        ...

    @abstractmethod
    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def find_user_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup."""
        ...

    @abstractmethod
    async def find_user_by_external_id(self, external_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def update_external_profile(self, user_id: str, identity: ExternalIdentity) -> Optional[User]:
        """Refresh provider attributes and touch last login / last seen."""
        ...

    @abstractmethod
    async def update_last_login(self, user_id: str) -> None:
        ...

    @abstractmethod
    async def update_last_seen(self, user_id: str) -> None:
        ...

    @abstractmethod
    async def deactivate_user(self, user_id: str) -> bool:
        ...

    @abstractmethod
    async def update_user_roles(self, user_id: str, changes: Mapping[str, Optional[str]]) -> Optional[User]:
        """Apply the given organization/group/role references; absent keys stay unchanged."""
        ...

    # Organization hierarchy

    @abstractmethod
    async def create_organization(self, organization: Organization) -> Organization:
        ...

    @abstractmethod
    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        ...

    @abstractmethod
    async def delete_organization(self, organization_id: str) -> bool:
        """Delete with its groups and roles; users referencing any of them are unassigned."""
        ...

    @abstractmethod
    async def create_group(self, group: Group) -> Group:
        ...

    @abstractmethod
    async def get_group(self, group_id: str) -> Optional[Group]:
        ...

    @abstractmethod
    async def list_groups(self, organization_id: str) -> List[Group]:
        ...

    @abstractmethod
    async def delete_group(self, group_id: str) -> bool:
        """Delete with its roles; users referencing any of them are unassigned."""
        ...

    @abstractmethod
    async def create_role(self, role: Role) -> Role:
        ...

    @abstractmethod
    async def get_role(self, role_id: str) -> Optional[Role]:
        ...

    @abstractmethod
    async def list_roles(self, group_id: str) -> List[Role]:
        """Roles of a group, highest priority first."""
        ...

    @abstractmethod
    async def delete_role(self, role_id: str) -> bool:
        ...

    # Settings

    @abstractmethod
    async def get_setting(self, entity_type: str, entity_id: str, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    async def list_settings(self, entity_type: str, entity_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def upsert_setting(self, entity_type: str, entity_id: str, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def delete_setting(self, entity_type: str, entity_id: str, key: str) -> bool:
        ...

    # Audit

    @abstractmethod
    async def create_audit_log_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        ...

    @abstractmethod
    async def list_audit_log(self, user_id: Optional[str] = None, limit: int = 50) -> List[AuditLogEntry]:
        """Newest first."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...
