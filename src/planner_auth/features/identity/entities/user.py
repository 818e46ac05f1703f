"""User identity record."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ....utils.datetime import utc_now


@dataclass(frozen=True)
class ExternalIdentity:
    """Verified identity handed over by the external identity provider."""

    external_id: str
    display_name: str
    avatar_url: Optional[str] = None
    trust_level: int = 0
    is_admin: bool = False
    is_moderator: bool = False


@dataclass
class User:
    """Durable user record.

    Users are never deleted, only deactivated. Local accounts carry an email
    and a password hash; identity-provider accounts carry an external id.
    """

    id: str
    email: Optional[str] = None
    password_hash: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    external_id: Optional[str] = None
    avatar_url: Optional[str] = None

    # Trust metadata from the identity provider
    trust_level: int = 0
    is_admin: bool = False
    is_moderator: bool = False

    is_active: bool = True

    # Role assignment
    organization_id: Optional[str] = None
    group_id: Optional[str] = None
    role_id: Optional[str] = None

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    last_login_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        if self.display_name:
            return self.display_name
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.email or self.id

    def to_public_dict(self) -> Dict[str, Any]:
        """User attributes safe to hand to clients. Never includes the hash."""
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.name,
            "avatar_url": self.avatar_url,
            "trust_level": self.trust_level,
            "is_admin": self.is_admin,
            "is_moderator": self.is_moderator,
            "is_active": self.is_active,
            "organization_id": self.organization_id,
            "group_id": self.group_id,
            "role_id": self.role_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
        }
