"""Session entities and protocols."""

from .session import RateLimitResult, SessionRecord
from .protocols import SessionCacheProtocol

__all__ = ["RateLimitResult", "SessionRecord", "SessionCacheProtocol"]
