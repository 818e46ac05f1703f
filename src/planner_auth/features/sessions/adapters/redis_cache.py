"""Redis session cache.

Sessions, cached settings and rate limit counters all live under one key
prefix:

- `{prefix}:session:{session_id}`
- `{prefix}:setting:{entity_type}:{entity_id}:{key}`
- `{prefix}:settings-complete:{entity_type}:{entity_id}` (key names of a full listing)
- `{prefix}:ratelimit:{action}:{identifier}`
"""

import json
import logging
import re
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from redis.exceptions import RedisError

from ....config.constants import CacheKeys, CacheTTL
from ....core.exceptions import CacheError, SessionNotFoundError
from ....utils.datetime import utc_now
from ..entities.session import RateLimitResult, SessionRecord

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters so the value only matches itself."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


class RedisSessionCache:
    """Session cache on `redis.asyncio` (or any client with the same commands)."""

    def __init__(
        self,
        client,
        key_prefix: str = "planner",
        session_ttl: int = CacheTTL.SESSION,
        setting_ttl: int = CacheTTL.SETTING,
        session_max_lifetime: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the cache.

        Args:
            client: Redis client created with `decode_responses=True`
            key_prefix: Namespace for every key
            session_ttl: Default session lifetime in seconds
            setting_ttl: Lifetime of cached settings in seconds
            session_max_lifetime: Optional cap on sliding expiration, from creation
            clock: Source of the current time
        """
        if client is None:
            raise ValueError("Redis client is required")
        self.client = client
        self.key_prefix = key_prefix
        self.session_ttl = session_ttl
        self.setting_ttl = setting_ttl
        self.session_max_lifetime = session_max_lifetime
        self.clock = clock

    def _make_key(self, suffix: str) -> str:
        return f"{self.key_prefix}:{suffix}" if self.key_prefix else suffix

    def _session_key(self, session_id: str) -> str:
        return self._make_key(CacheKeys.SESSION.format(session_id=session_id))

    def _setting_key(self, entity_type: str, entity_id: str, key: str) -> str:
        return self._make_key(
            CacheKeys.SETTING.format(entity_type=entity_type, entity_id=entity_id, setting_key=key)
        )

    def _setting_prefix(self, entity_type: str, entity_id: str) -> str:
        return self._setting_key(entity_type, entity_id, "")

    def _setting_pattern(self, entity_type: str, entity_id: str) -> str:
        return escape_glob(self._setting_prefix(entity_type, entity_id)) + "*"

    def _settings_complete_key(self, entity_type: str, entity_id: str) -> str:
        return self._make_key(
            CacheKeys.SETTINGS_COMPLETE.format(entity_type=entity_type, entity_id=entity_id)
        )

    @contextmanager
    def _errors(self, action: str):
        try:
            yield
        except (RedisError, OSError) as e:
            logger.error(f"Session cache failed to {action}: {e}")
            raise CacheError(f"Session cache unavailable ({action})") from e

    async def _scan(self, pattern: str) -> List[str]:
        keys = []
        async for key in self.client.scan_iter(match=pattern, count=100):
            keys.append(key.decode() if isinstance(key, bytes) else key)
        return keys

    # Sessions

    async def create_session(
        self, session_id: str, data: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> SessionRecord:
        ttl = ttl_seconds or self.session_ttl
        record = SessionRecord.new(session_id, data, ttl, self.clock())

        with self._errors("create session"):
            await self.client.setex(self._session_key(session_id), ttl, json.dumps(record.to_dict()))

        logger.debug(f"Session created: {session_id} for user {record.user_id} ({ttl}s)")
        return record

    async def _load_session(self, key: str) -> Optional[SessionRecord]:
        raw = await self.client.get(key)
        if raw is None:
            return None
        try:
            return SessionRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Dropping unreadable session entry {key}: {e}")
            await self.client.delete(key)
            return None

    async def peek_session(self, session_id: str) -> Optional[SessionRecord]:
        """Read a session without sliding its expiry."""
        with self._errors("read session"):
            return await self._load_session(self._session_key(session_id))

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        key = self._session_key(session_id)

        with self._errors("read session"):
            record = await self._load_session(key)
            if record is None:
                return None

            now = self.clock()
            ttl = record.extension(now, self.session_max_lifetime)
            if ttl <= 0:
                await self.client.delete(key)
                logger.info(f"Session {session_id} reached its maximum lifetime")
                return None

            record.last_accessed_at = now
            record.expires_at = now + timedelta(seconds=ttl)
            await self.client.setex(key, ttl, json.dumps(record.to_dict()))

        return record

    async def update_session(self, session_id: str, updates: Dict[str, Any]) -> SessionRecord:
        key = self._session_key(session_id)

        with self._errors("update session"):
            record = await self._load_session(key)
            if record is None:
                raise SessionNotFoundError(f"Session {session_id} not found")

            remaining = await self.client.ttl(key)
            ttl = remaining if remaining and remaining > 0 else record.ttl_seconds

            record.merge(updates)
            record.expires_at = self.clock() + timedelta(seconds=ttl)
            await self.client.setex(key, ttl, json.dumps(record.to_dict()))

        return record

    async def delete_session(self, session_id: str) -> bool:
        with self._errors("delete session"):
            deleted = await self.client.delete(self._session_key(session_id))
        return deleted > 0

    async def delete_all_sessions_for_subject(self, user_id: str) -> int:
        count = 0
        with self._errors("revoke sessions"):
            for key in await self._scan(escape_glob(self._session_key("")) + "*"):
                record = await self._load_session(key)
                # Sessions created after the scan started may be missed
                if record is not None and record.user_id == str(user_id):
                    count += await self.client.delete(key)

        logger.info(f"Deleted {count} sessions for user {user_id}")
        return count

    # Settings

    async def get_setting(self, entity_type: str, entity_id: str, key: str, default: Any = None) -> Any:
        with self._errors("read setting"):
            raw = await self.client.get(self._setting_key(entity_type, entity_id, key))
        if raw is None:
            return default
        return json.loads(raw)

    async def set_setting(
        self, entity_type: str, entity_id: str, key: str, value: Any, ttl_seconds: Optional[int] = None
    ) -> None:
        with self._errors("write setting"):
            await self.client.setex(
                self._setting_key(entity_type, entity_id, key),
                ttl_seconds or self.setting_ttl,
                json.dumps(value),
            )

    async def invalidate_setting(self, entity_type: str, entity_id: str, key: Optional[str] = None) -> int:
        with self._errors("invalidate setting"):
            if key is not None:
                return await self.client.delete(self._setting_key(entity_type, entity_id, key))

            await self.client.delete(self._settings_complete_key(entity_type, entity_id))
            keys = await self._scan(self._setting_pattern(entity_type, entity_id))
            if not keys:
                return 0
            return await self.client.delete(*keys)

    async def get_all_settings(self, entity_type: str, entity_id: str) -> Dict[str, Any]:
        """Whatever settings of the entity are cached right now."""
        prefix = self._setting_prefix(entity_type, entity_id)
        settings = {}

        with self._errors("read settings"):
            for key in await self._scan(self._setting_pattern(entity_type, entity_id)):
                raw = await self.client.get(key)
                if raw is not None:
                    settings[key[len(prefix):]] = json.loads(raw)

        return settings

    async def set_all_settings(
        self, entity_type: str, entity_id: str, settings: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> None:
        """Cache a full listing and mark it complete.

        The marker is written last and records the listed key names, so a
        partially written listing is never reported as complete.
        """
        ttl = ttl_seconds or self.setting_ttl
        with self._errors("write settings"):
            for key, value in settings.items():
                await self.client.setex(self._setting_key(entity_type, entity_id, key), ttl, json.dumps(value))
            await self.client.setex(
                self._settings_complete_key(entity_type, entity_id), ttl, json.dumps(sorted(settings))
            )

    async def get_complete_settings(self, entity_type: str, entity_id: str) -> Optional[Dict[str, Any]]:
        """Cached listing of the entity, or None unless it is known to be complete.

        Keys written after the listing are included. A listed key that has
        since expired or been invalidated makes the listing incomplete.
        """
        with self._errors("read settings"):
            raw = await self.client.get(self._settings_complete_key(entity_type, entity_id))
        if raw is None:
            return None

        settings = await self.get_all_settings(entity_type, entity_id)
        if not set(json.loads(raw)) <= set(settings):
            return None
        return settings

    async def forget_settings_listing(self, entity_type: str, entity_id: str) -> None:
        """Drop the completeness marker, keeping the cached values."""
        with self._errors("invalidate settings"):
            await self.client.delete(self._settings_complete_key(entity_type, entity_id))

    # Rate limiting

    async def check_rate_limit(
        self, identifier: str, action: str, max_requests: int, window_seconds: int
    ) -> RateLimitResult:
        key = self._make_key(CacheKeys.RATE_LIMIT.format(action=action, identifier=identifier))

        with self._errors("check rate limit"):
            current = await self.client.incr(key)
            if current == 1:
                await self.client.expire(key, window_seconds)
                ttl = window_seconds
            else:
                ttl = await self.client.ttl(key)
                if ttl is None or ttl < 0:
                    # Counter lost its expiry; restart the window
                    await self.client.expire(key, window_seconds)
                    ttl = window_seconds

        allowed = current <= max_requests
        result = RateLimitResult(
            allowed=allowed,
            remaining=max(0, max_requests - current),
            reset_at=self.clock() + timedelta(seconds=ttl),
            current=current,
            limit=max_requests,
        )
        if not allowed:
            logger.warning(f"Rate limit exceeded: {action} by {identifier} ({current}/{max_requests})")
        return result

    # Generic values

    async def get(self, key: str, default: Any = None) -> Any:
        with self._errors("read value"):
            raw = await self.client.get(self._make_key(key))
        return default if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        with self._errors("write value"):
            if ttl_seconds:
                await self.client.setex(self._make_key(key), ttl_seconds, json.dumps(value))
            else:
                await self.client.set(self._make_key(key), json.dumps(value))

    async def delete(self, key: str) -> bool:
        with self._errors("delete value"):
            return await self.client.delete(self._make_key(key)) > 0

    async def exists(self, key: str) -> bool:
        with self._errors("check value"):
            return await self.client.exists(self._make_key(key)) > 0

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.error(f"Session cache ping failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
