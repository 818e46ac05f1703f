"""In-process key-value store with expiry, speaking the subset of Redis
commands the session cache uses."""

import asyncio
import math
import re
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Callable, Dict, Optional, Tuple

from ....config.constants import CacheTTL
from ....utils.datetime import utc_now
from .redis_cache import RedisSessionCache


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern:
    """Translate a Redis glob into a regex.

    Supports `*`, `?`, `[...]` classes (with `^` negation and ranges) and
    backslash escapes, as Redis SCAN MATCH does.
    """
    parts = []
    i, n = 0, len(pattern)
    while i < n:
        char = pattern[i]
        if char == "\\" and i + 1 < n:
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "[":
            end = i + 1
            members = []
            if end < n and pattern[end] == "^":
                members.append("^")
                end += 1
            while end < n and pattern[end] != "]":
                if pattern[end] == "\\" and end + 1 < n:
                    end += 1
                    members.append(re.escape(pattern[end]))
                elif pattern[end] == "-" and members and end + 1 < n and pattern[end + 1] != "]":
                    members.append("-")
                else:
                    members.append(re.escape(pattern[end]))
                end += 1
            if end >= n or members in ([], ["^"]):
                # Unterminated or empty class matches literally
                parts.append(re.escape(char))
            else:
                parts.append(f"[{''.join(members)}]")
                i = end
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("".join(parts) + r"\Z", re.DOTALL)


class MemoryKeyValueStore:
    """Single-process storage for development and tests.

    Values expire lazily on access, measured against the injected clock.
    Set `available = False` to make every command raise ConnectionError.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self.available = True
        self._data: Dict[str, Tuple[str, Optional[datetime]]] = {}
        self._lock = asyncio.Lock()

    def _check(self) -> None:
        if not self.available:
            raise ConnectionError("Key-value store is unavailable")

    def _live(self, key: str) -> Optional[Tuple[str, Optional[datetime]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        self._check()
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self._check()
        expires_at = self.clock() + timedelta(seconds=ex) if ex else None
        self._data[key] = (str(value), expires_at)
        return True

    async def setex(self, key: str, seconds: int, value: str) -> bool:
        return await self.set(key, value, ex=seconds)

    async def delete(self, *keys: str) -> int:
        self._check()
        count = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                count += 1
        return count

    async def exists(self, *keys: str) -> int:
        self._check()
        return sum(1 for key in keys if self._live(key) is not None)

    async def ttl(self, key: str) -> int:
        self._check()
        entry = self._live(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return math.ceil((entry[1] - self.clock()).total_seconds())

    async def expire(self, key: str, seconds: int) -> bool:
        self._check()
        entry = self._live(key)
        if entry is None:
            return False
        self._data[key] = (entry[0], self.clock() + timedelta(seconds=seconds))
        return True

    async def incr(self, key: str) -> int:
        self._check()
        async with self._lock:
            entry = self._live(key)
            value = int(entry[0]) + 1 if entry else 1
            self._data[key] = (str(value), entry[1] if entry else None)
            return value

    async def scan_iter(self, match: str = "*", count: Optional[int] = None):
        self._check()
        regex = compile_glob(match)
        for key in list(self._data):
            if regex.match(key) and self._live(key) is not None:
                yield key

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        self._data.clear()


class MemorySessionCache(RedisSessionCache):
    """Session cache backed by a MemoryKeyValueStore."""

    def __init__(
        self,
        key_prefix: str = "planner",
        session_ttl: int = CacheTTL.SESSION,
        setting_ttl: int = CacheTTL.SETTING,
        session_max_lifetime: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(
            MemoryKeyValueStore(clock=clock),
            key_prefix=key_prefix,
            session_ttl=session_ttl,
            setting_ttl=setting_ttl,
            session_max_lifetime=session_max_lifetime,
            clock=clock,
        )

    @property
    def store(self) -> MemoryKeyValueStore:
        return self.client
