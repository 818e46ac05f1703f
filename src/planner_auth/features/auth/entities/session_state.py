"""Session lifecycle states."""

from enum import Enum


class SessionState(str, Enum):
    """Anonymous -> Authenticating -> Authenticated -> Revoked | Expired."""

    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REVOKED = "revoked"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.REVOKED, SessionState.EXPIRED)


TRANSITIONS = {
    SessionState.ANONYMOUS: frozenset({SessionState.AUTHENTICATING}),
    SessionState.AUTHENTICATING: frozenset({SessionState.AUTHENTICATED, SessionState.ANONYMOUS}),
    SessionState.AUTHENTICATED: frozenset({SessionState.REVOKED, SessionState.EXPIRED}),
    SessionState.REVOKED: frozenset(),
    SessionState.EXPIRED: frozenset(),
}


def can_transition(current: SessionState, target: SessionState) -> bool:
    return target in TRANSITIONS[current]
