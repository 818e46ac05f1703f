"""In-process identity store for development and tests."""

import copy
import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ....core.exceptions import DuplicateAccountError, IdentityStoreError
from ....utils.datetime import utc_now
from ..entities import (
    ROLE_ASSIGNMENT_FIELDS,
    AuditLogEntry,
    ExternalIdentity,
    Group,
    Organization,
    Role,
    User,
)

logger = logging.getLogger(__name__)

SettingKey = Tuple[str, str, str]


class MemoryIdentityStore:
    """Identity store kept in dictionaries.

    Returned entities are copies; mutating them does not touch the store.
    Set `available = False` to make every call raise IdentityStoreError.
    """

    def __init__(self):
        self.available = True
        self._users: Dict[str, User] = {}
        self._organizations: Dict[str, Organization] = {}
        self._groups: Dict[str, Group] = {}
        self._roles: Dict[str, Role] = {}
        self._settings: Dict[SettingKey, Any] = {}
        self._audit: List[AuditLogEntry] = []

    def _check(self) -> None:
        if not self.available:
            raise IdentityStoreError("Identity store is unavailable")

    # Users

    def _ensure_unique(self, user: User) -> None:
        for existing in self._users.values():
            if user.email and existing.email and existing.email.lower() == user.email.lower():
                raise DuplicateAccountError()
            if user.external_id and existing.external_id == user.external_id:
                raise DuplicateAccountError("An account for this identity already exists")

    async def create_user(self, user: User) -> User:
        self._check()
        self._ensure_unique(user)
        stored = replace(user, email=user.email.lower() if user.email else None)
        self._users[stored.id] = stored
        logger.info(f"User created: {stored.id}")
        return replace(stored)

    async def create_account(self, user: User, organization: Organization) -> User:
        self._check()
        created = await self.create_user(user)
        self._organizations[organization.id] = replace(organization)
        return created

    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        self._check()
        user = self._users.get(str(user_id))
        return replace(user) if user else None

    async def find_user_by_email(self, email: str) -> Optional[User]:
        self._check()
        email = (email or "").lower()
        for user in self._users.values():
            if user.email and user.email == email:
                return replace(user)
        return None

    async def find_user_by_external_id(self, external_id: str) -> Optional[User]:
        self._check()
        for user in self._users.values():
            if user.external_id == external_id:
                return replace(user)
        return None

    async def update_external_profile(self, user_id: str, identity: ExternalIdentity) -> Optional[User]:
        self._check()
        user = self._users.get(user_id)
        if user is None:
            return None
        now = utc_now()
        user.display_name = identity.display_name
        user.avatar_url = identity.avatar_url
        user.trust_level = identity.trust_level
        user.is_admin = identity.is_admin
        user.is_moderator = identity.is_moderator
        user.last_login_at = now
        user.last_seen_at = now
        user.updated_at = now
        return replace(user)

    async def update_last_login(self, user_id: str) -> None:
        self._check()
        user = self._users.get(user_id)
        if user:
            user.last_login_at = utc_now()

    async def update_last_seen(self, user_id: str) -> None:
        self._check()
        user = self._users.get(user_id)
        if user:
            user.last_seen_at = utc_now()

    async def deactivate_user(self, user_id: str) -> bool:
        self._check()
        user = self._users.get(user_id)
        if user is None:
            return False
        user.is_active = False
        user.updated_at = utc_now()
        return True

    async def update_user_roles(self, user_id: str, changes: Mapping[str, Optional[str]]) -> Optional[User]:
        self._check()
        user = self._users.get(user_id)
        if user is None:
            return None
        for field_name in ROLE_ASSIGNMENT_FIELDS:
            if field_name in changes:
                setattr(user, field_name, changes[field_name])
        user.updated_at = utc_now()
        return replace(user)

    def _unassign(self, field_name: str, ids: Iterable[str]) -> int:
        ids = set(ids)
        count = 0
        for user in self._users.values():
            if getattr(user, field_name) in ids:
                setattr(user, field_name, None)
                count += 1
        return count

    # Organization hierarchy

    async def create_organization(self, organization: Organization) -> Organization:
        self._check()
        self._organizations[organization.id] = replace(organization)
        return replace(organization)

    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        self._check()
        organization = self._organizations.get(organization_id)
        return replace(organization) if organization else None

    async def delete_organization(self, organization_id: str) -> bool:
        self._check()
        if self._organizations.pop(organization_id, None) is None:
            return False
        group_ids = [g.id for g in self._groups.values() if g.organization_id == organization_id]
        role_ids = [r.id for r in self._roles.values() if r.group_id in group_ids]
        for role_id in role_ids:
            del self._roles[role_id]
        for group_id in group_ids:
            del self._groups[group_id]
        self._unassign("role_id", role_ids)
        self._unassign("group_id", group_ids)
        self._unassign("organization_id", [organization_id])
        return True

    async def create_group(self, group: Group) -> Group:
        self._check()
        if group.organization_id not in self._organizations:
            raise IdentityStoreError(f"Organization {group.organization_id} does not exist")
        self._groups[group.id] = replace(group)
        return replace(group)

    async def get_group(self, group_id: str) -> Optional[Group]:
        self._check()
        group = self._groups.get(group_id)
        return replace(group) if group else None

    async def list_groups(self, organization_id: str) -> List[Group]:
        self._check()
        groups = [g for g in self._groups.values() if g.organization_id == organization_id]
        return [replace(g) for g in sorted(groups, key=lambda g: g.name)]

    async def delete_group(self, group_id: str) -> bool:
        self._check()
        if self._groups.pop(group_id, None) is None:
            return False
        role_ids = [r.id for r in self._roles.values() if r.group_id == group_id]
        for role_id in role_ids:
            del self._roles[role_id]
        self._unassign("role_id", role_ids)
        self._unassign("group_id", [group_id])
        return True

    async def create_role(self, role: Role) -> Role:
        self._check()
        if role.group_id not in self._groups:
            raise IdentityStoreError(f"Group {role.group_id} does not exist")
        stored = replace(role, permissions=list(role.permissions))
        self._roles[role.id] = stored
        return replace(stored, permissions=list(stored.permissions))

    async def get_role(self, role_id: str) -> Optional[Role]:
        self._check()
        role = self._roles.get(role_id)
        return replace(role, permissions=list(role.permissions)) if role else None

    async def list_roles(self, group_id: str) -> List[Role]:
        self._check()
        roles = [r for r in self._roles.values() if r.group_id == group_id]
        roles.sort(key=lambda r: (-r.priority, r.name))
        return [replace(r, permissions=list(r.permissions)) for r in roles]

    async def delete_role(self, role_id: str) -> bool:
        self._check()
        if self._roles.pop(role_id, None) is None:
            return False
        self._unassign("role_id", [role_id])
        return True

    # Settings

    async def get_setting(self, entity_type: str, entity_id: str, key: str, default: Any = None) -> Any:
        self._check()
        value = self._settings.get((entity_type, str(entity_id), key), default)
        return copy.deepcopy(value)

    async def list_settings(self, entity_type: str, entity_id: str) -> Dict[str, Any]:
        self._check()
        return {
            key: copy.deepcopy(value)
            for (etype, eid, key), value in self._settings.items()
            if etype == entity_type and eid == str(entity_id)
        }

    async def upsert_setting(self, entity_type: str, entity_id: str, key: str, value: Any) -> None:
        self._check()
        self._settings[(entity_type, str(entity_id), key)] = copy.deepcopy(value)

    async def delete_setting(self, entity_type: str, entity_id: str, key: str) -> bool:
        self._check()
        setting_key = (entity_type, str(entity_id), key)
        if setting_key not in self._settings:
            return False
        del self._settings[setting_key]
        return True

    # Audit

    async def create_audit_log_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        self._check()
        stored = replace(entry, id=len(self._audit) + 1)
        self._audit.append(stored)
        return replace(stored)

    async def list_audit_log(self, user_id: Optional[str] = None, limit: int = 50) -> List[AuditLogEntry]:
        self._check()
        entries = [e for e in self._audit if user_id is None or e.user_id == user_id]
        return [replace(e) for e in reversed(entries)][:limit]

    async def health_check(self) -> bool:
        return self.available
