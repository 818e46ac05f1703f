"""Session cache adapters."""

from .redis_cache import RedisSessionCache
from .memory_cache import MemoryKeyValueStore, MemorySessionCache

__all__ = ["RedisSessionCache", "MemoryKeyValueStore", "MemorySessionCache"]
