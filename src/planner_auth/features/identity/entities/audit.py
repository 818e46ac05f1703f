"""Audit log entry."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ....utils.datetime import utc_now


@dataclass
class AuditLogEntry:
    """Append-only record of a security relevant action."""

    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    user_id: Optional[str] = None
    before_value: Optional[Any] = None
    after_value: Optional[Any] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "before_value": self.before_value,
            "after_value": self.after_value,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": self.created_at.isoformat(),
        }
