"""Pytest configuration and fixtures for planner-auth tests."""

from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from planner_auth.config.constants import StorageBackend
from planner_auth.config.settings import AuthSettings
from planner_auth.container import ServiceContainer
from planner_auth.features.identity import MemoryIdentityStore
from planner_auth.features.relationships import MemoryRelationshipStore
from planner_auth.features.sessions import MemorySessionCache


class FakeClock:
    """Controllable time source."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    """Settings for the memory backend with a cheap bcrypt cost."""
    return AuthSettings(
        _env_file=None,
        storage_backend=StorageBackend.MEMORY,
        bcrypt_rounds=4,
        session_ttl=3600,
        setting_ttl=600,
    )


@pytest.fixture
def identity_store():
    return MemoryIdentityStore()


@pytest.fixture
def relationship_store():
    return MemoryRelationshipStore(check_timeout=1.0)


@pytest.fixture
def session_cache(clock):
    return MemorySessionCache(key_prefix="test", session_ttl=3600, setting_ttl=600, clock=clock)


@pytest.fixture
def container(settings, identity_store, session_cache, relationship_store):
    return ServiceContainer.assemble(settings, identity_store, session_cache, relationship_store)


@pytest.fixture
def auth_service(container):
    return container.auth_service


@pytest.fixture
def organization_service(container):
    return container.organization_service


@pytest.fixture
def mock_database():
    """Mock DatabaseManager for driver-level tests."""
    mock_db = AsyncMock()
    mock_db.fetchrow = AsyncMock()
    mock_db.fetch = AsyncMock()
    mock_db.fetchval = AsyncMock()
    mock_db.execute = AsyncMock()
    return mock_db
