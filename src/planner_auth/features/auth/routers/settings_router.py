"""Settings endpoints under /api/settings.

Settings of a user are readable and writable by that user only. Settings of
other entities need `view` to read and `update` to write on the entity.
"""

import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends

from ....config.constants import SETTING_ENTITY_TYPES
from ....core.exceptions import PermissionDeniedError, ResourceNotFoundError, ValidationError
from ..dependencies import AccessMiddleware
from ..entities import AccessContext
from ..models import MessageResponse, SettingResponse, SettingValueRequest
from ..services import AuthorizationService

logger = logging.getLogger(__name__)

_MISSING = object()


def create_settings_router(auth_service: AuthorizationService, access: AccessMiddleware) -> APIRouter:
    """Build the settings router bound to the given service instances."""
    router = APIRouter(prefix="/api/settings", tags=["Settings"])

    async def ensure_access(context: AccessContext, entity_type: str, entity_id: str, write: bool) -> None:
        if entity_type not in SETTING_ENTITY_TYPES:
            raise ValidationError(f"Unsupported entity type: {entity_type}")

        if entity_type == "user":
            if entity_id != context.user_id:
                raise PermissionDeniedError("Permission denied")
            return

        await auth_service.require_permission(
            context.user_id,
            "update" if write else "view",
            entity_type,
            entity_id,
            client_ip=context.client_ip,
            user_agent=context.user_agent,
        )

    @router.get("/{entity_type}/{entity_id}")
    async def list_settings(
        entity_type: str,
        entity_id: str,
        context: Annotated[AccessContext, Depends(access.require_auth)],
    ) -> Dict[str, Any]:
        await ensure_access(context, entity_type, entity_id, write=False)
        return await auth_service.get_all_settings(entity_type, entity_id)

    @router.get("/{entity_type}/{entity_id}/{key}", response_model=SettingResponse)
    async def get_setting(
        entity_type: str,
        entity_id: str,
        key: str,
        context: Annotated[AccessContext, Depends(access.require_auth)],
    ) -> SettingResponse:
        await ensure_access(context, entity_type, entity_id, write=False)
        value = await auth_service.get_setting(entity_type, entity_id, key, _MISSING)
        if value is _MISSING:
            raise ResourceNotFoundError(f"Setting {key} not found")
        return SettingResponse(key=key, value=value)

    @router.put("/{entity_type}/{entity_id}/{key}", response_model=SettingResponse)
    async def put_setting(
        entity_type: str,
        entity_id: str,
        key: str,
        body: SettingValueRequest,
        context: Annotated[AccessContext, Depends(access.require_auth)],
    ) -> SettingResponse:
        await ensure_access(context, entity_type, entity_id, write=True)
        await auth_service.set_setting(entity_type, entity_id, key, body.value)
        logger.info(f"Setting {entity_type}:{entity_id}:{key} written by {context.user_id}")
        return SettingResponse(key=key, value=body.value)

    @router.delete("/{entity_type}/{entity_id}/{key}", response_model=MessageResponse)
    async def delete_setting(
        entity_type: str,
        entity_id: str,
        key: str,
        context: Annotated[AccessContext, Depends(access.require_auth)],
    ) -> MessageResponse:
        await ensure_access(context, entity_type, entity_id, write=True)
        if not await auth_service.delete_setting(entity_type, entity_id, key):
            raise ResourceNotFoundError(f"Setting {key} not found")
        return MessageResponse(message="Setting deleted")

    return router
