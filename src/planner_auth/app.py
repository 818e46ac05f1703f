"""planner-auth FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .__version__ import __version__
from .api import register_exception_handlers
from .config.settings import AuthSettings, get_settings
from .container import ServiceContainer
from .features.auth.routers import create_auth_router, create_settings_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[AuthSettings] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    """Create the application.

    Args:
        settings: Service settings; loaded from the environment when omitted
        container: Pre-wired services, e.g. memory backends in tests

    Returns:
        Configured FastAPI application
    """
    settings = settings or (container.settings if container else get_settings())
    container = container or ServiceContainer.build(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open connections on startup and release them on shutdown."""
        await container.start()
        yield
        await container.close()

    app = FastAPI(
        title="planner-auth",
        version=__version__,
        description="Authorization, sessions and permissions for the team planner",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.container = container

    register_exception_handlers(app, is_production=settings.is_production)

    app.include_router(create_auth_router(container.auth_service, container.access, settings))
    app.include_router(create_settings_router(container.auth_service, container.access))

    @app.get("/health", tags=["System"])
    async def health():
        checks = await container.health()
        healthy = all(checks.values())
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={"status": "healthy" if healthy else "degraded", "checks": checks},
        )

    logger.info(f"Created planner-auth application ({settings.environment})")
    return app
