"""Authentication endpoints under /api/auth."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials

from ....config.settings import AuthSettings
from ..dependencies import AccessMiddleware, bearer_scheme, client_ip, rate_limit_headers
from ..entities import AccessContext
from ..models import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    SessionResponse,
    UserResponse,
)
from ..services import AuthorizationService

logger = logging.getLogger(__name__)


def create_auth_router(
    auth_service: AuthorizationService,
    access: AccessMiddleware,
    settings: AuthSettings,
) -> APIRouter:
    """Build the auth router bound to the given service instances."""
    router = APIRouter(prefix="/api/auth", tags=["Authentication"])

    @router.post(
        "/register",
        response_model=UserResponse,
        status_code=status.HTTP_201_CREATED,
        dependencies=[
            Depends(access.rate_limit("register", settings.register_rate_limit, settings.register_rate_window))
        ],
    )
    async def register(request: Request, body: RegisterRequest) -> UserResponse:
        user = await auth_service.register(
            body.email,
            body.password,
            body.first_name,
            body.last_name,
            client_ip=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        return UserResponse(**user.to_public_dict())

    # Login is rate limited inside the service, keyed by client IP
    @router.post("/login", response_model=LoginResponse)
    async def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
        result = await auth_service.login(
            body.email,
            body.password,
            client_ip=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        if result.rate_limit is not None:
            response.headers.update(rate_limit_headers(result.rate_limit))
        return LoginResponse(**result.to_dict())

    @router.post("/logout", response_model=MessageResponse)
    async def logout(
        context: Annotated[AccessContext, Depends(access.require_auth)],
    ) -> MessageResponse:
        await auth_service.logout(context.session_id, context.client_ip, context.user_agent)
        return MessageResponse(message="Logged out")

    @router.get("/me", response_model=UserResponse)
    async def me(
        context: Annotated[AccessContext, Depends(access.require_auth)],
    ) -> UserResponse:
        user = await auth_service.current_user(context.user_id)
        return UserResponse(**user.to_public_dict())

    @router.get("/session", response_model=SessionResponse)
    async def session(
        request: Request,
        credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    ) -> SessionResponse:
        state, record = await auth_service.session_state(
            request.headers.get(access.session_header),
            credentials.credentials if credentials else None,
        )
        if record is None:
            return SessionResponse(state=state)
        return SessionResponse(
            state=state,
            session_id=record.session_id,
            user_id=record.user_id,
            expires_at=record.expires_at,
            attributes=record.attributes,
        )

    return router
