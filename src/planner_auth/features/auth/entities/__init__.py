"""Authentication entities."""

from .session_state import SessionState, can_transition
from .results import AccessContext, LoginResult

__all__ = ["SessionState", "can_transition", "AccessContext", "LoginResult"]
