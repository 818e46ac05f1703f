"""
Exception handlers for the planner-auth application.

Every error response body has the shape `{error, message}`; rate limit
responses add `resetAt`.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..core.exceptions import (
    PlannerAuthError,
    RateLimitedError,
    create_error_response,
    get_http_status_code,
)
from ..features.auth.dependencies import AccessDependencyError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI, is_production: bool = True) -> None:
    """Register exception handlers for the application.

    Args:
        app: FastAPI application instance
        is_production: Hide unexpected error details when True
    """

    @app.exception_handler(PlannerAuthError)
    async def planner_auth_error_handler(request: Request, exc: PlannerAuthError):
        status_code = get_http_status_code(exc)
        if status_code >= 500:
            logger.error(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")

        headers = None
        if isinstance(exc, RateLimitedError):
            headers = {"Retry-After": str(exc.retry_after)}
            if exc.limit is not None:
                headers["X-RateLimit-Limit"] = str(exc.limit)
            if exc.remaining is not None:
                headers["X-RateLimit-Remaining"] = str(exc.remaining)
            if exc.reset_at:
                headers["X-RateLimit-Reset"] = exc.reset_at.isoformat()

        return JSONResponse(status_code=status_code, content=create_error_response(exc), headers=headers)

    @app.exception_handler(AccessDependencyError)
    async def access_error_handler(request: Request, exc: AccessDependencyError):
        content = {"error": exc.error, "message": exc.detail}
        if exc.reset_at:
            content["resetAt"] = exc.reset_at
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg')}" if location else "Malformed request"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "validation_error", "message": message},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        message = "An unexpected error occurred" if is_production else str(exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "internal_error", "message": message},
        )
