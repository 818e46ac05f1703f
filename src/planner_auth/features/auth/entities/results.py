"""Values returned to the HTTP layer."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ...sessions.entities import RateLimitResult, SessionRecord
from .session_state import SessionState


@dataclass(frozen=True)
class LoginResult:
    """Sanitized user attributes plus the new session credentials.

    `rate_limit` is the login counter state when the limiter was reachable.
    """

    user: Dict[str, Any]
    session_id: str
    token: str
    expires_at: datetime
    rate_limit: Optional[RateLimitResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": self.user,
            "session_id": self.session_id,
            "token": self.token,
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass
class AccessContext:
    """Authenticated principal attached to a request."""

    session: SessionRecord
    state: SessionState = SessionState.AUTHENTICATED
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> str:
        return self.session.user_id

    @property
    def session_id(self) -> str:
        return self.session.session_id
