"""In-process relationship store for development and tests."""

import logging
from typing import List, Optional, Set

from ..entities.relationship import ObjectRef, RelationshipTuple
from ..entities.schema import DEFAULT_SCHEMA, PermissionSchema
from .base import BaseRelationshipStore

logger = logging.getLogger(__name__)


class MemoryRelationshipStore(BaseRelationshipStore):
    """Keeps tuples in a set; every read sees the latest write.

    Set `available = False` to make every primitive raise, which lets
    callers exercise the unreachable-store path.
    """

    def __init__(self, schema: PermissionSchema = DEFAULT_SCHEMA, check_timeout: float = 2.0):
        super().__init__(schema=schema, check_timeout=check_timeout)
        self._tuples: Set[RelationshipTuple] = set()
        self.available = True

    def _ensure_available(self) -> None:
        if not self.available:
            raise ConnectionError("Relationship store is unavailable")

    async def _subject_relations(self, resource: ObjectRef, subject: ObjectRef) -> Set[str]:
        self._ensure_available()
        return {t.relation for t in self._tuples if t.resource == resource and t.subject == subject}

    async def _parents(self, resource: ObjectRef, link: str) -> List[ObjectRef]:
        self._ensure_available()
        return [t.subject for t in self._tuples if t.resource == resource and t.relation == link]

    async def _insert(self, relationship: RelationshipTuple) -> bool:
        self._ensure_available()
        if relationship in self._tuples:
            return False
        self._tuples.add(relationship)
        return True

    async def _remove(self, relationship: RelationshipTuple) -> bool:
        self._ensure_available()
        if relationship not in self._tuples:
            return False
        self._tuples.discard(relationship)
        return True

    async def _select(
        self, resource_type: str, resource_id: str, relation: Optional[str]
    ) -> List[RelationshipTuple]:
        self._ensure_available()
        matches = [
            t for t in self._tuples
            if t.resource.type == resource_type
            and t.resource.id == resource_id
            and (relation is None or t.relation == relation)
        ]
        return sorted(matches, key=lambda t: (t.relation, t.subject.type, t.subject.id))

    async def _candidate_ids(self, resource_type: str) -> List[str]:
        self._ensure_available()
        return sorted({t.resource.id for t in self._tuples if t.resource.type == resource_type})

    async def _remove_all(self, resource_type: str, resource_id: str) -> int:
        self._ensure_available()
        doomed = {
            t for t in self._tuples
            if t.resource.type == resource_type and t.resource.id == resource_id
        }
        self._tuples -= doomed
        return len(doomed)

    async def _ping(self) -> None:
        self._ensure_available()

    def __len__(self) -> int:
        return len(self._tuples)
