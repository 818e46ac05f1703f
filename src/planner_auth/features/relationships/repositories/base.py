"""Permission resolution shared by every relationship store backend.

Backends only provide tuple primitives; the walk along parent links lives
here so that every backend resolves permissions identically.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ....core.exceptions import (
    PermissionServiceUnavailableError,
    RelationshipCycleError,
    ValidationError,
)
from ..entities.relationship import ObjectRef, RelationshipTuple
from ..entities.schema import DEFAULT_SCHEMA, PermissionSchema

logger = logging.getLogger(__name__)

USER_TYPE = "user"


def _ref(object_type: str, object_id) -> ObjectRef:
    try:
        return ObjectRef(object_type, object_id)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def _tuple(resource_type, resource_id, relation, subject_type, subject_id) -> RelationshipTuple:
    if not relation:
        raise ValidationError("Relation must not be empty")
    return RelationshipTuple(_ref(resource_type, resource_id), relation, _ref(subject_type, subject_id))


class BaseRelationshipStore(ABC):
    """Relationship store with schema-driven permission resolution."""

    def __init__(self, schema: PermissionSchema = DEFAULT_SCHEMA, check_timeout: float = 2.0):
        self.schema = schema
        self.check_timeout = check_timeout

    # Backend primitives

    @abstractmethod
    async def _subject_relations(self, resource: ObjectRef, subject: ObjectRef) -> Set[str]:
        """Relations the subject holds directly on the resource."""

    @abstractmethod
    async def _parents(self, resource: ObjectRef, link: str) -> List[ObjectRef]:
        """Subjects of the given parent-link relation on the resource."""

    @abstractmethod
    async def _insert(self, relationship: RelationshipTuple) -> bool:
        """Insert unless present; True when a row was added."""

    @abstractmethod
    async def _remove(self, relationship: RelationshipTuple) -> bool:
        """Remove if present; True when a row was removed."""

    @abstractmethod
    async def _select(
        self, resource_type: str, resource_id: str, relation: Optional[str]
    ) -> List[RelationshipTuple]:
        """Tuples written on the resource."""

    @abstractmethod
    async def _candidate_ids(self, resource_type: str) -> List[str]:
        """Ids of resources of the type that carry at least one tuple."""

    @abstractmethod
    async def _remove_all(self, resource_type: str, resource_id: str) -> int:
        """Remove every tuple written on the resource."""

    @abstractmethod
    async def _ping(self) -> None:
        """Raise when the backend cannot be reached."""

    # Permission checks

    async def check_permission(
        self,
        subject_id: str,
        permission: str,
        resource_type: str,
        resource_id: str,
    ) -> bool:
        """Check whether a user holds a permission on a resource.

        Resolves direct relations and walks parent links as the schema
        declares. Raises PermissionServiceUnavailableError on timeout or
        backend failure; never answers True on error.
        """
        subject = _ref(USER_TYPE, subject_id)
        resource = _ref(resource_type, resource_id)

        try:
            allowed = await asyncio.wait_for(
                self._resolve(subject, permission, resource, {}, set()),
                timeout=self.check_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Permission check timed out: {subject} {permission} {resource}")
            raise PermissionServiceUnavailableError("Permission check timed out") from e
        except Exception as e:
            logger.error(f"Permission check failed: {subject} {permission} {resource}: {e}")
            raise PermissionServiceUnavailableError("Permission service unavailable") from e

        logger.debug(f"Permission check: {subject} {permission} {resource} = {allowed}")
        return allowed

    async def _resolve(
        self,
        subject: ObjectRef,
        permission: str,
        resource: ObjectRef,
        relation_memo: Dict[ObjectRef, Set[str]],
        visited: Set[Tuple[ObjectRef, str]],
    ) -> bool:
        key = (resource, permission)
        if key in visited:
            return False
        visited.add(key)

        definition = self.schema.get(resource.type)
        if definition is None:
            return False

        if permission in definition.relations:
            if definition.is_parent_link(permission):
                return False
            relations = relation_memo.get(resource)
            if relations is None:
                relations = await self._subject_relations(resource, subject)
                relation_memo[resource] = relations
            return permission in relations

        for term in definition.permissions.get(permission, ()):
            if term.is_arrow:
                for parent in await self._parents(resource, term.via):
                    if await self._resolve(subject, term.name, parent, relation_memo, visited):
                        return True
            elif await self._resolve(subject, term.name, resource, relation_memo, visited):
                return True
        return False

    async def check_permissions(
        self,
        subject_id: str,
        permission: str,
        resources: Sequence[ObjectRef],
    ) -> Dict[str, bool]:
        """Check one permission on many resources concurrently."""
        results = await asyncio.gather(*(
            self.check_permission(subject_id, permission, resource.type, resource.id)
            for resource in resources
        ))
        return {resource.id: allowed for resource, allowed in zip(resources, results)}

    async def lookup_resources(self, subject_id: str, permission: str, resource_type: str) -> Set[str]:
        """Find every resource of a type the user holds the permission on."""
        if resource_type not in self.schema:
            return set()

        try:
            candidates = await self._candidate_ids(resource_type)
        except Exception as e:
            logger.error(f"Failed to list {resource_type} candidates: {e}")
            raise PermissionServiceUnavailableError("Permission service unavailable") from e

        results = await self.check_permissions(
            subject_id, permission, [ObjectRef(resource_type, rid) for rid in candidates]
        )
        allowed = {rid for rid, ok in results.items() if ok}
        logger.debug(f"Lookup: user:{subject_id} can {permission} {len(allowed)} {resource_type}(s)")
        return allowed

    # Relationship management

    async def write_relationship(
        self,
        resource_type: str,
        resource_id: str,
        relation: str,
        subject_type: str,
        subject_id: str,
    ) -> None:
        """Touch a tuple: writing an existing tuple is a no-op."""
        relationship = _tuple(resource_type, resource_id, relation, subject_type, subject_id)
        self._validate(relationship)

        definition = self.schema.get(resource_type)
        if definition.is_parent_link(relation):
            await self._ensure_acyclic(relationship)

        inserted = await self._guarded(self._insert(relationship), "write relationship")
        if inserted:
            logger.info(f"Relationship created: {relationship}")

    async def delete_relationship(
        self,
        resource_type: str,
        resource_id: str,
        relation: str,
        subject_type: str,
        subject_id: str,
    ) -> None:
        """Remove a tuple; removing an absent tuple is not an error."""
        relationship = _tuple(resource_type, resource_id, relation, subject_type, subject_id)
        removed = await self._guarded(self._remove(relationship), "delete relationship")
        if removed:
            logger.info(f"Relationship deleted: {relationship}")

    async def read_relationships(
        self,
        resource_type: str,
        resource_id: str,
        relation: Optional[str] = None,
    ) -> List[RelationshipTuple]:
        return await self._guarded(
            self._select(resource_type, str(resource_id), relation), "read relationships"
        )

    async def delete_all_relationships_for_resource(self, resource_type: str, resource_id: str) -> int:
        count = await self._guarded(self._remove_all(resource_type, str(resource_id)), "delete relationships")
        if count:
            logger.info(f"Deleted {count} relationships for {resource_type}:{resource_id}")
        return count

    async def health_check(self) -> bool:
        try:
            await self._ping()
            return True
        except Exception as e:
            logger.error(f"Relationship store health check failed: {e}")
            return False

    # Common scenarios

    async def make_organization_admin(self, user_id: str, organization_id: str) -> None:
        await self.write_relationship("organization", organization_id, "admin", USER_TYPE, user_id)

    async def add_team_member(self, user_id: str, team_id: str) -> None:
        await self.write_relationship("team", team_id, "member", USER_TYPE, user_id)

    async def link_team_to_organization(self, team_id: str, organization_id: str) -> None:
        await self.write_relationship("team", team_id, "parent_organization", "organization", organization_id)

    async def link_project_to_team(self, project_id: str, team_id: str) -> None:
        await self.write_relationship("project", project_id, "parent_team", "team", team_id)

    async def link_board_to_project(self, board_id: str, project_id: str) -> None:
        await self.write_relationship("board", board_id, "parent_project", "project", project_id)

    async def link_card_to_board(self, card_id: str, board_id: str) -> None:
        await self.write_relationship("card", card_id, "parent_board", "board", board_id)

    # Helpers

    def _validate(self, relationship: RelationshipTuple) -> None:
        definition = self.schema.get(relationship.resource.type)
        if definition is None:
            raise ValidationError(f"Unknown resource type: {relationship.resource.type}")
        if relationship.relation not in definition.relations:
            raise ValidationError(
                f"{relationship.resource.type} has no relation {relationship.relation}"
            )

        expected = (
            definition.parent.resource_type
            if definition.is_parent_link(relationship.relation)
            else USER_TYPE
        )
        if relationship.subject.type != expected:
            raise ValidationError(
                f"{relationship.resource.type}#{relationship.relation} expects a {expected} subject, "
                f"got {relationship.subject.type}"
            )

    async def _ensure_acyclic(self, relationship: RelationshipTuple) -> None:
        """Reject a parent link whose target already descends from the resource."""
        queue = deque([relationship.subject])
        seen: Set[ObjectRef] = set()

        while queue:
            current = queue.popleft()
            if current == relationship.resource:
                raise RelationshipCycleError(
                    f"{relationship} would make {relationship.resource} its own ancestor"
                )
            if current in seen:
                continue
            seen.add(current)

            definition = self.schema.get(current.type)
            if definition is None or definition.parent is None:
                continue
            parents = await self._guarded(self._parents(current, definition.parent.relation), "read parents")
            queue.extend(parents)

    async def _guarded(self, operation, action: str):
        try:
            return await operation
        except Exception as e:
            logger.error(f"Failed to {action}: {e}")
            raise PermissionServiceUnavailableError(f"Failed to {action}") from e
