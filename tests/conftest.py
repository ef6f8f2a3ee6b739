"""
Shared pytest fixtures for qcap-registry tests.

This module provides common fixtures including:
- FakeClock: controllable time source for expiry tests
- Registry and app fixtures wired to the fake clock
- Redis mocks for event publishing tests
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from qcap_registry.main import create_app
from qcap_registry.modules.auth import ApiKeyAuth
from qcap_registry.modules.config import ConfigModule
from qcap_registry.modules.registry import CapabilityRegistry


# =============================================================================
# Time
# =============================================================================


class FakeClock:
    """
    Callable clock that only moves when told to.

    Usage:
        def test_expiry(clock, registry):
            registry.register("svc-a", ttl=60)
            clock.advance(61)
    """

    def __init__(self, start: datetime = datetime(2025, 1, 1, tzinfo=UTC)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    """Registry driven by the fake clock."""
    return CapabilityRegistry(clock=clock)


# =============================================================================
# Application
# =============================================================================


@pytest.fixture
def config():
    """Configuration built from an empty environment (all defaults)."""
    return ConfigModule(environ={})


@pytest.fixture
def app(config, registry):
    return create_app(config=config, registry=registry)


@pytest.fixture
def client(app):
    """Test client without lifespan (no background sweeper)."""
    return TestClient(app)


@pytest.fixture
def auth_app(config, registry):
    return create_app(
        config=config,
        registry=registry,
        auth=ApiKeyAuth("admin-key,orchestrator:orch-key"),
    )


# =============================================================================
# Redis Mocking Infrastructure
# =============================================================================


@pytest.fixture
def mock_redis():
    """Create a mock Redis client for async operations."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    redis.lpush = AsyncMock(return_value=1)
    redis.ltrim = AsyncMock(return_value=True)
    redis.lrange = AsyncMock(return_value=[])
    redis.ping = AsyncMock(return_value=True)
    redis.close = AsyncMock()
    return redis


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring infrastructure"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
