"""Session record and rate limit result."""

from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

# Fields a session update may never change
IMMUTABLE_FIELDS = frozenset({"session_id", "user_id", "created_at", "ttl_seconds"})


@dataclass
class SessionRecord:
    """Ephemeral session as held by the session cache.

    `attributes` carries denormalized display data (name, email, avatar,
    flags) so that request handlers need no durable lookup to render them.
    """

    session_id: str
    user_id: str
    token: str
    created_at: datetime
    last_accessed_at: datetime
    ttl_seconds: int
    expires_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, session_id: str, data: Dict[str, Any], ttl_seconds: int, now: datetime) -> "SessionRecord":
        """Build a record from caller data; unknown keys become attributes."""
        if not data.get("user_id"):
            raise ValueError("Session data requires a user_id")
        data = dict(data)
        attributes = dict(data.pop("attributes", None) or {})
        known = {f.name for f in fields(cls)} - {"attributes"}
        kwargs = {k: data.pop(k) for k in list(data) if k in known}
        attributes.update(data)
        kwargs.update(
            session_id=session_id,
            user_id=str(kwargs["user_id"]),
            token=kwargs.get("token", ""),
            created_at=now,
            last_accessed_at=now,
            ttl_seconds=ttl_seconds,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        return cls(attributes=attributes, **kwargs)

    def merge(self, updates: Dict[str, Any]) -> None:
        """Apply a partial update in place."""
        for key, value in updates.items():
            if key in IMMUTABLE_FIELDS:
                continue
            if key == "attributes":
                self.attributes.update(value or {})
            elif hasattr(self, key):
                setattr(self, key, value)
            else:
                self.attributes[key] = value

    def extension(self, now: datetime, max_lifetime: Optional[int] = None) -> int:
        """Seconds the session lives after being accessed at `now`.

        The full original TTL, unless a maximum lifetime measured from
        creation cuts it short. Zero or less means the session is over.
        """
        ttl = self.ttl_seconds
        if max_lifetime is not None:
            hard_stop = self.created_at + timedelta(seconds=max_lifetime)
            ttl = min(ttl, int((hard_stop - now).total_seconds()))
        return ttl

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "token": self.token,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "ttl_seconds": self.ttl_seconds,
            "expires_at": self.expires_at.isoformat(),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "attributes": self.attributes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        return cls(
            session_id=data["session_id"],
            user_id=data["user_id"],
            token=data["token"],
            created_at=datetime.fromisoformat(data["created_at"]),
            last_accessed_at=datetime.fromisoformat(data["last_accessed_at"]),
            ttl_seconds=int(data["ttl_seconds"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
            attributes=data.get("attributes") or {},
        )

    def public_dict(self) -> Dict[str, Any]:
        """Session fields safe to return to clients (no token)."""
        data = self.to_dict()
        data.pop("token")
        return data


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one rate limit increment."""

    allowed: bool
    remaining: int
    reset_at: datetime
    current: int
    limit: int

    def retry_after(self, now: datetime) -> int:
        return max(0, int((self.reset_at - now).total_seconds()))
