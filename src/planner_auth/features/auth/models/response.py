"""Auth response models."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..entities import SessionState


class UserResponse(BaseModel):
    """Sanitized user attributes."""

    id: str = Field(..., description="User ID")
    email: Optional[str] = Field(None, description="Email address")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    display_name: Optional[str] = Field(None, description="Display name")
    avatar_url: Optional[str] = Field(None, description="Avatar URL")
    trust_level: int = Field(default=0, description="Identity provider trust level")
    is_admin: bool = Field(default=False, description="Platform admin flag")
    is_moderator: bool = Field(default=False, description="Moderator flag")
    is_active: bool = Field(default=True, description="Account is active")
    organization_id: Optional[str] = Field(None, description="Assigned organization")
    group_id: Optional[str] = Field(None, description="Assigned group")
    role_id: Optional[str] = Field(None, description="Assigned role")
    created_at: Optional[datetime] = Field(None, description="Creation time")
    last_login_at: Optional[datetime] = Field(None, description="Last login time")


class LoginResponse(BaseModel):
    """Session credentials returned after a successful login."""

    user: UserResponse = Field(..., description="Logged in user")
    session_id: str = Field(..., description="Session ID, sent back in the session header")
    token: str = Field(..., description="Bearer token")
    expires_at: datetime = Field(..., description="Session expiry (slides on use)")


class SessionResponse(BaseModel):
    """Lifecycle state of the presented session credentials."""

    state: SessionState = Field(..., description="Session state")
    session_id: Optional[str] = Field(None, description="Session ID")
    user_id: Optional[str] = Field(None, description="User ID")
    expires_at: Optional[datetime] = Field(None, description="Current expiry")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Display attributes")


class SettingResponse(BaseModel):
    key: str
    value: Any = None


class MessageResponse(BaseModel):
    message: str
