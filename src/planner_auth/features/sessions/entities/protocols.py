"""Protocol interface for the session cache."""

from abc import abstractmethod
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from .session import RateLimitResult, SessionRecord


@runtime_checkable
class SessionCacheProtocol(Protocol):
    """Ephemeral key-value storage with expiration; nothing survives a restart."""

    # Sessions

    @abstractmethod
    async def create_session(
        self, session_id: str, data: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> SessionRecord:
        """Store a new session with an absolute expiry."""
        ...

    @abstractmethod
    async def peek_session(self, session_id: str) -> Optional[SessionRecord]:
        """Return the session without touching its expiry."""
        ...

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        """Return the session and slide its expiry back to the full TTL."""
        ...

    @abstractmethod
    async def update_session(self, session_id: str, updates: Dict[str, Any]) -> SessionRecord:
        """Merge fields into a session; raises SessionNotFoundError when absent."""
        ...

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        ...

    @abstractmethod
    async def delete_all_sessions_for_subject(self, user_id: str) -> int:
        """Best-effort scan-and-delete of every session of one user."""
        ...

    # Settings

    @abstractmethod
    async def get_setting(self, entity_type: str, entity_id: str, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    async def set_setting(
        self, entity_type: str, entity_id: str, key: str, value: Any, ttl_seconds: Optional[int] = None
    ) -> None:
        ...

    @abstractmethod
    async def invalidate_setting(self, entity_type: str, entity_id: str, key: Optional[str] = None) -> int:
        """Drop one cached setting, or all settings of the entity when key is None."""
        ...

    @abstractmethod
    async def get_all_settings(self, entity_type: str, entity_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def set_all_settings(
        self, entity_type: str, entity_id: str, settings: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> None:
        """Cache the full settings listing of an entity and mark it complete."""
        ...

    @abstractmethod
    async def get_complete_settings(self, entity_type: str, entity_id: str) -> Optional[Dict[str, Any]]:
        """Cached listing, or None when the cache may be missing some settings."""
        ...

    @abstractmethod
    async def forget_settings_listing(self, entity_type: str, entity_id: str) -> None:
        ...

    # Rate limiting

    @abstractmethod
    async def check_rate_limit(
        self, identifier: str, action: str, max_requests: int, window_seconds: int
    ) -> RateLimitResult:
        """Increment the fixed-window counter and compare it to the limit."""
        ...

    @abstractmethod
    async def ping(self) -> bool:
        ...
