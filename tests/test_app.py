"""Tests for application assembly and the health endpoint."""

import logging

import pytest
from fastapi.testclient import TestClient

from planner_auth.app import create_app
from planner_auth.config.constants import StorageBackend
from planner_auth.config.logging_config import LoggingConfig
from planner_auth.config.settings import AuthSettings
from planner_auth.container import ServiceContainer
from planner_auth.features.identity import AsyncPGIdentityStore, MemoryIdentityStore
from planner_auth.features.relationships import AsyncPGRelationshipStore
from planner_auth.features.sessions import MemorySessionCache, RedisSessionCache


class TestServiceContainer:
    def test_memory_backend(self, settings):
        container = ServiceContainer.build(settings)

        assert isinstance(container.identity_store, MemoryIdentityStore)
        assert isinstance(container.session_cache, MemorySessionCache)
        assert container.database is None
        assert container.auth_service.session_cache is container.session_cache
        assert container.access.auth_service is container.auth_service

    def test_postgres_backend_builds_without_connecting(self):
        settings = AuthSettings(_env_file=None, storage_backend=StorageBackend.POSTGRES, cache_key_prefix="pa")

        container = ServiceContainer.build(settings)

        assert isinstance(container.identity_store, AsyncPGIdentityStore)
        assert isinstance(container.relationship_store, AsyncPGRelationshipStore)
        assert isinstance(container.session_cache, RedisSessionCache)
        assert container.session_cache.key_prefix == "pa"
        assert container.database.pool is None

    def test_settings_validation(self):
        with pytest.raises(ValueError):
            AuthSettings(_env_file=None, bcrypt_rounds=2)
        with pytest.raises(ValueError):
            AuthSettings(_env_file=None, session_ttl=0)


class TestHealth:
    def test_healthy(self, container):
        with TestClient(create_app(container=container)) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "checks": {"identity_store": True, "session_cache": True, "relationship_store": True},
        }

    def test_degraded(self, container, relationship_store):
        relationship_store.available = False

        with TestClient(create_app(container=container)) as client:
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
        assert response.json()["checks"]["relationship_store"] is False

    def test_unexpected_errors_are_500(self, container, mocker):
        mocker.patch.object(container.auth_service, "session_state", side_effect=RuntimeError("boom"))

        with TestClient(create_app(container=container), raise_server_exceptions=False) as client:
            response = client.get("/api/auth/session")

        assert response.status_code == 500
        assert response.json()["error"] == "internal_error"


class TestLoggingConfig:
    def test_unknown_level_falls_back_to_info(self):
        LoggingConfig.configure(log_level="chatty", log_format="detailed")

        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger("asyncpg").level == logging.WARNING

    def test_debug_level(self):
        LoggingConfig.configure(log_level="debug")

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.ERROR
