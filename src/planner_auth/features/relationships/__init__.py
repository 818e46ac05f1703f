"""Relationship graph: tuples, schema-driven permission resolution and stores."""

from .entities import (
    DEFAULT_SCHEMA,
    ObjectRef,
    PermissionSchema,
    RelationshipStoreProtocol,
    RelationshipTuple,
)
from .repositories import (
    AsyncPGRelationshipStore,
    BaseRelationshipStore,
    MemoryRelationshipStore,
)

__all__ = [
    "DEFAULT_SCHEMA",
    "ObjectRef",
    "PermissionSchema",
    "RelationshipStoreProtocol",
    "RelationshipTuple",
    "AsyncPGRelationshipStore",
    "BaseRelationshipStore",
    "MemoryRelationshipStore",
]
