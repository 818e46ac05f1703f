"""Session cache: sessions, cached settings and rate limit counters."""

from .entities import RateLimitResult, SessionCacheProtocol, SessionRecord
from .adapters import MemoryKeyValueStore, MemorySessionCache, RedisSessionCache

__all__ = [
    "RateLimitResult",
    "SessionCacheProtocol",
    "SessionRecord",
    "MemoryKeyValueStore",
    "MemorySessionCache",
    "RedisSessionCache",
]
