"""FastAPI access dependencies.

Authentication failures answer 401 and authorization failures 403, both
with generic messages. Permission checks fail closed; the rate limiter
fails open when its counter store is unreachable.
"""

import logging
from typing import Annotated, Dict, Optional

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...core.exceptions import CacheError
from ...utils.datetime import utc_now
from ..sessions.entities import RateLimitResult, SessionCacheProtocol
from .entities import AccessContext
from .services.auth_service import AuthorizationService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class AccessDependencyError(HTTPException):
    """HTTP error raised by access dependencies, rendered as `{error, message}`."""

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_401_UNAUTHORIZED,
        error: str = "unauthorized",
        headers: Optional[Dict[str, str]] = None,
        reset_at: Optional[str] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error = error
        self.reset_at = reset_at


def client_ip(request: Request) -> Optional[str]:
    """Client address, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": result.reset_at.isoformat(),
    }


class AccessMiddleware:
    """Factory for the per-request access dependencies."""

    def __init__(
        self,
        auth_service: AuthorizationService,
        session_cache: SessionCacheProtocol,
        session_header: str = "X-Session-Id",
    ):
        self.auth_service = auth_service
        self.session_cache = session_cache
        self.session_header = session_header

    async def require_auth(
        self,
        request: Request,
        credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    ) -> AccessContext:
        """Resolve the session from the session id header and the bearer token."""
        session_id = request.headers.get(self.session_header)
        token = credentials.credentials if credentials else None

        if not session_id or not token:
            raise AccessDependencyError("Authentication required")

        try:
            session = await self.auth_service.validate_session(session_id, token)
        except Exception as e:
            logger.info(f"Session rejected: {type(e).__name__}")
            raise AccessDependencyError("Authentication required")

        context = AccessContext(
            session=session,
            client_ip=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        request.state.access = context
        return context

    def require_permission(self, resource_type: str, permission: str):
        """Require a relationship permission on the resource named by `{resource_type}_id`."""
        param = f"{resource_type}_id"

        async def dependency(
            request: Request,
            context: Annotated[AccessContext, Depends(self.require_auth)],
        ) -> AccessContext:
            resource_id = request.path_params.get(param)
            if not resource_id:
                raise AccessDependencyError(
                    f"Missing {param}",
                    status_code=status.HTTP_400_BAD_REQUEST,
                    error="invalid_request",
                )

            try:
                allowed = await self.auth_service.authorize(
                    context.user_id,
                    permission,
                    resource_type,
                    resource_id,
                    client_ip=context.client_ip,
                    user_agent=context.user_agent,
                )
            except Exception as e:
                logger.error(f"Permission check errored, denying: {e}")
                allowed = False

            if not allowed:
                logger.warning(
                    f"User {context.user_id} denied {permission} on {resource_type}:{resource_id}"
                )
                raise AccessDependencyError(
                    "Permission denied",
                    status_code=status.HTTP_403_FORBIDDEN,
                    error="forbidden",
                )
            return context

        return dependency

    def require_role_permission(self, permission: str):
        """Require a permission from the user's role permission list."""

        async def dependency(
            context: Annotated[AccessContext, Depends(self.require_auth)],
        ) -> AccessContext:
            try:
                allowed = await self.auth_service.has_role_permission(context.user_id, permission)
            except Exception as e:
                logger.error(f"Role permission check errored, denying: {e}")
                allowed = False

            if not allowed:
                logger.warning(f"User {context.user_id} lacks role permission: {permission}")
                raise AccessDependencyError(
                    "Permission denied",
                    status_code=status.HTTP_403_FORBIDDEN,
                    error="forbidden",
                )
            return context

        return dependency

    def rate_limit(self, action: str, max_requests: int, window_seconds: int):
        """Fixed-window limit keyed by user id when authenticated, else client IP."""

        async def dependency(request: Request, response: Response) -> None:
            context = getattr(request.state, "access", None)
            identifier = context.user_id if context else (client_ip(request) or "unknown")

            try:
                result = await self.session_cache.check_rate_limit(
                    identifier, action, max_requests, window_seconds
                )
            except CacheError as e:
                logger.warning(f"Rate limiter unavailable for {action}, allowing request: {e}")
                return

            headers = rate_limit_headers(result)
            if not result.allowed:
                retry_after = result.retry_after(utc_now())
                raise AccessDependencyError(
                    f"Too many requests. Try again in {retry_after} seconds",
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    error="rate_limited",
                    headers={**headers, "Retry-After": str(retry_after)},
                    reset_at=result.reset_at.isoformat(),
                )
            response.headers.update(headers)

        return dependency
