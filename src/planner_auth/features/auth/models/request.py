"""Auth request models."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    """Request model for local account registration."""

    email: str = Field(..., max_length=320, description="Email address")
    password: str = Field(..., max_length=256, description="Password")
    first_name: str = Field(..., max_length=100, description="First name")
    last_name: Optional[str] = Field(None, max_length=100, description="Last name")


class LoginRequest(BaseModel):
    """Request model for local account login."""

    email: str = Field(..., max_length=320, description="Email address")
    password: str = Field(..., max_length=256, description="Password")


class SettingValueRequest(BaseModel):
    """Request model for writing one setting."""

    value: Any = Field(..., description="JSON value of the setting")
