"""Relationship store backends."""

from .base import BaseRelationshipStore
from .memory_store import MemoryRelationshipStore
from .asyncpg_store import AsyncPGRelationshipStore

__all__ = [
    "BaseRelationshipStore",
    "MemoryRelationshipStore",
    "AsyncPGRelationshipStore",
]
