"""AsyncPG implementation of the relationship store."""

import logging
from typing import List, Optional, Set

from ....database import DatabaseManager
from ..entities.relationship import ObjectRef, RelationshipTuple
from ..entities.schema import DEFAULT_SCHEMA, PermissionSchema
from .base import BaseRelationshipStore

logger = logging.getLogger(__name__)


class AsyncPGRelationshipStore(BaseRelationshipStore):
    """
    PostgreSQL relationship store using asyncpg.

    Every query runs against the primary pool inside the request, so checks
    always observe the latest committed write.
    """

    def __init__(
        self,
        database: DatabaseManager,
        schema: PermissionSchema = DEFAULT_SCHEMA,
        check_timeout: float = 2.0,
        table: str = "relationship_tuples",
    ):
        super().__init__(schema=schema, check_timeout=check_timeout)
        self.database = database
        self.table = table

    async def _subject_relations(self, resource: ObjectRef, subject: ObjectRef) -> Set[str]:
        query = f"""
            SELECT relation FROM {self.table}
            WHERE resource_type = $1 AND resource_id = $2
              AND subject_type = $3 AND subject_id = $4
        """
        rows = await self.database.fetch(query, resource.type, resource.id, subject.type, subject.id)
        return {row["relation"] for row in rows}

    async def _parents(self, resource: ObjectRef, link: str) -> List[ObjectRef]:
        query = f"""
            SELECT subject_type, subject_id FROM {self.table}
            WHERE resource_type = $1 AND resource_id = $2 AND relation = $3
        """
        rows = await self.database.fetch(query, resource.type, resource.id, link)
        return [ObjectRef(row["subject_type"], row["subject_id"]) for row in rows]

    async def _insert(self, relationship: RelationshipTuple) -> bool:
        query = f"""
            INSERT INTO {self.table} (resource_type, resource_id, relation, subject_type, subject_id)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT DO NOTHING
        """
        status = await self.database.execute(query, *self._params(relationship))
        return _affected(status) > 0

    async def _remove(self, relationship: RelationshipTuple) -> bool:
        query = f"""
            DELETE FROM {self.table}
            WHERE resource_type = $1 AND resource_id = $2 AND relation = $3
              AND subject_type = $4 AND subject_id = $5
        """
        status = await self.database.execute(query, *self._params(relationship))
        return _affected(status) > 0

    async def _select(
        self, resource_type: str, resource_id: str, relation: Optional[str]
    ) -> List[RelationshipTuple]:
        query = f"""
            SELECT resource_type, resource_id, relation, subject_type, subject_id
            FROM {self.table}
            WHERE resource_type = $1 AND resource_id = $2
              AND ($3::text IS NULL OR relation = $3)
            ORDER BY relation, subject_type, subject_id
        """
        rows = await self.database.fetch(query, resource_type, resource_id, relation)
        return [
            RelationshipTuple.of(
                row["resource_type"], row["resource_id"], row["relation"],
                row["subject_type"], row["subject_id"],
            )
            for row in rows
        ]

    async def _candidate_ids(self, resource_type: str) -> List[str]:
        query = f"SELECT DISTINCT resource_id FROM {self.table} WHERE resource_type = $1 ORDER BY resource_id"
        rows = await self.database.fetch(query, resource_type)
        return [row["resource_id"] for row in rows]

    async def _remove_all(self, resource_type: str, resource_id: str) -> int:
        query = f"DELETE FROM {self.table} WHERE resource_type = $1 AND resource_id = $2"
        status = await self.database.execute(query, resource_type, resource_id)
        return _affected(status)

    async def _ping(self) -> None:
        await self.database.fetchval("SELECT 1")

    @staticmethod
    def _params(relationship: RelationshipTuple):
        return (
            relationship.resource.type,
            relationship.resource.id,
            relationship.relation,
            relationship.subject.type,
            relationship.subject.id,
        )


def _affected(status: str) -> int:
    """Row count from an asyncpg command status such as `INSERT 0 1`."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0
