"""Relationship entities, schema and protocols."""

from .relationship import ObjectRef, RelationshipTuple
from .schema import (
    DEFAULT_SCHEMA,
    ParentLink,
    PermissionSchema,
    PermissionTerm,
    ResourceDefinition,
)
from .protocols import RelationshipStoreProtocol

__all__ = [
    "ObjectRef",
    "RelationshipTuple",
    "DEFAULT_SCHEMA",
    "ParentLink",
    "PermissionSchema",
    "PermissionTerm",
    "ResourceDefinition",
    "RelationshipStoreProtocol",
]
