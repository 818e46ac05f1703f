from .auth_router import create_auth_router
from .settings_router import create_settings_router

__all__ = ["create_auth_router", "create_settings_router"]
