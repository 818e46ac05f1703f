"""Organization hierarchy management.

Durable records live in the identity store; the organization admin grant
lives in the relationship store. Deletes remove the durable records first,
then the tuples written on the organization.
"""

import logging
import re
import time
from typing import Iterable, List, Optional

from ....core.exceptions import ResourceNotFoundError, ValidationError
from ....utils.uuid import generate_uuid_v7
from ...identity.entities import Group, IdentityStoreProtocol, Organization, Role
from ...permissions import validate_permissions
from ...relationships.entities import RelationshipStoreProtocol

logger = logging.getLogger(__name__)


def make_slug(name: str) -> str:
    """URL-safe slug with a time suffix so repeated names stay unique."""
    base = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-") or "org"
    return f"{base[:40]}-{int(time.time() * 1000)}"


class OrganizationService:
    """Creates and deletes organizations, groups and roles."""

    def __init__(self, identity_store: IdentityStoreProtocol, relationship_store: RelationshipStoreProtocol):
        self.identity_store = identity_store
        self.relationship_store = relationship_store

    async def create_organization(
        self,
        name: str,
        created_by: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Organization:
        """Create an organization; its creator becomes organization admin."""
        if not name or not name.strip():
            raise ValidationError("Organization name is required")

        organization = await self.identity_store.create_organization(
            Organization(
                id=generate_uuid_v7(),
                name=name.strip(),
                slug=make_slug(name),
                created_by=created_by,
                color=color,
            )
        )
        if created_by:
            await self.relationship_store.make_organization_admin(created_by, organization.id)

        logger.info(f"Organization created: {organization.id} ({organization.name})")
        return organization

    async def delete_organization(self, organization_id: str) -> None:
        """Delete an organization with its groups and roles.

        Users referencing any deleted record keep their account with that
        reference cleared.
        """
        if not await self.identity_store.delete_organization(organization_id):
            raise ResourceNotFoundError(f"Organization {organization_id} not found")

        removed = await self.relationship_store.delete_all_relationships_for_resource(
            "organization", organization_id
        )
        logger.info(f"Organization deleted: {organization_id} ({removed} relationships removed)")

    async def create_group(self, organization_id: str, name: str, color: Optional[str] = None) -> Group:
        if not name or not name.strip():
            raise ValidationError("Group name is required")
        if await self.identity_store.get_organization(organization_id) is None:
            raise ResourceNotFoundError(f"Organization {organization_id} not found")

        group = await self.identity_store.create_group(
            Group(id=generate_uuid_v7(), organization_id=organization_id, name=name.strip(), color=color)
        )
        logger.info(f"Group created: {group.id} in organization {organization_id}")
        return group

    async def delete_group(self, group_id: str) -> None:
        if not await self.identity_store.delete_group(group_id):
            raise ResourceNotFoundError(f"Group {group_id} not found")
        logger.info(f"Group deleted: {group_id}")

    async def create_role(
        self,
        group_id: str,
        name: str,
        permissions: Iterable[str] = (),
        priority: int = 0,
        color: Optional[str] = None,
    ) -> Role:
        if not name or not name.strip():
            raise ValidationError("Role name is required")
        try:
            normalized = validate_permissions(permissions)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if await self.identity_store.get_group(group_id) is None:
            raise ResourceNotFoundError(f"Group {group_id} not found")

        role = await self.identity_store.create_role(
            Role(
                id=generate_uuid_v7(),
                group_id=group_id,
                name=name.strip(),
                permissions=normalized,
                priority=priority,
                color=color,
            )
        )
        logger.info(f"Role created: {role.id} in group {group_id}")
        return role

    async def delete_role(self, role_id: str) -> None:
        if not await self.identity_store.delete_role(role_id):
            raise ResourceNotFoundError(f"Role {role_id} not found")
        logger.info(f"Role deleted: {role_id}")

    async def list_groups(self, organization_id: str) -> List[Group]:
        return await self.identity_store.list_groups(organization_id)

    async def list_roles(self, group_id: str) -> List[Role]:
        return await self.identity_store.list_roles(group_id)
