"""Identity store backends."""

from .memory_store import MemoryIdentityStore
from .asyncpg_store import AsyncPGIdentityStore

__all__ = ["MemoryIdentityStore", "AsyncPGIdentityStore"]
