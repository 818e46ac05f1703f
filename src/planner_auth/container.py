"""Service container.

Every component is constructed once per application and handed to its
consumers explicitly; nothing is reached through module-level getters.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import redis.asyncio as redis

from .config.constants import StorageBackend
from .config.settings import AuthSettings
from .database import DatabaseManager
from .features.auth import AccessMiddleware, AuthorizationService, PasswordHasher
from .features.identity import AsyncPGIdentityStore, MemoryIdentityStore
from .features.organizations import OrganizationService
from .features.relationships import AsyncPGRelationshipStore, MemoryRelationshipStore
from .features.sessions import MemorySessionCache, RedisSessionCache

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Wired components of one application instance."""

    settings: AuthSettings
    identity_store: Any
    session_cache: Any
    relationship_store: Any
    auth_service: AuthorizationService
    organization_service: OrganizationService
    access: AccessMiddleware
    database: Optional[DatabaseManager] = None

    @classmethod
    def build(cls, settings: AuthSettings) -> "ServiceContainer":
        """Construct the components for the configured storage backend.

        Nothing connects here; connections open in `start()`.
        """
        database = None

        if settings.storage_backend == StorageBackend.MEMORY:
            logger.warning("Using in-memory storage; all state is lost on restart")
            identity_store = MemoryIdentityStore()
            relationship_store = MemoryRelationshipStore(check_timeout=settings.permission_check_timeout)
            session_cache = MemorySessionCache(
                key_prefix=settings.cache_key_prefix,
                session_ttl=settings.session_ttl,
                setting_ttl=settings.setting_ttl,
                session_max_lifetime=settings.session_max_lifetime,
            )
        else:
            database = DatabaseManager(
                settings.database_url,
                application_name=settings.app_name,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
                command_timeout=settings.db_command_timeout,
            )
            identity_store = AsyncPGIdentityStore(database)
            relationship_store = AsyncPGRelationshipStore(
                database, check_timeout=settings.permission_check_timeout
            )
            client = redis.from_url(
                settings.redis_url,
                password=settings.redis_password_value,
                decode_responses=True,
                socket_timeout=settings.redis_socket_timeout,
                socket_connect_timeout=settings.redis_socket_timeout,
            )
            session_cache = RedisSessionCache(
                client,
                key_prefix=settings.cache_key_prefix,
                session_ttl=settings.session_ttl,
                setting_ttl=settings.setting_ttl,
                session_max_lifetime=settings.session_max_lifetime,
            )

        return cls.assemble(settings, identity_store, session_cache, relationship_store, database)

    @classmethod
    def assemble(
        cls,
        settings: AuthSettings,
        identity_store,
        session_cache,
        relationship_store,
        database: Optional[DatabaseManager] = None,
    ) -> "ServiceContainer":
        """Wire services around already constructed stores."""
        auth_service = AuthorizationService(
            identity_store=identity_store,
            session_cache=session_cache,
            relationship_store=relationship_store,
            password_hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
            settings=settings,
        )
        return cls(
            settings=settings,
            identity_store=identity_store,
            session_cache=session_cache,
            relationship_store=relationship_store,
            auth_service=auth_service,
            organization_service=OrganizationService(identity_store, relationship_store),
            access=AccessMiddleware(auth_service, session_cache, session_header=settings.session_header),
            database=database,
        )

    async def start(self) -> None:
        if self.database is not None:
            await self.database.create_pool()
            await self.identity_store.initialize_schema()
        logger.info(f"Services started ({self.settings.storage_backend.value} backend)")

    async def close(self) -> None:
        try:
            await self.session_cache.close()
        except Exception as e:
            logger.warning(f"Error closing session cache: {e}")
        if self.database is not None:
            await self.database.close_pool()
        logger.info("Services stopped")

    async def health(self) -> Dict[str, bool]:
        return {
            "identity_store": await self.identity_store.health_check(),
            "session_cache": await self.session_cache.ping(),
            "relationship_store": await self.relationship_store.health_check(),
        }
