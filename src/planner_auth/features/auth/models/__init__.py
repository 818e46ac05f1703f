from .request import LoginRequest, RegisterRequest, SettingValueRequest
from .response import LoginResponse, MessageResponse, SessionResponse, SettingResponse, UserResponse

__all__ = [
    "LoginRequest",
    "RegisterRequest",
    "SettingValueRequest",
    "LoginResponse",
    "MessageResponse",
    "SessionResponse",
    "SettingResponse",
    "UserResponse",
]
