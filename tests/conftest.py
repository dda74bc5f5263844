"""Shared test fixtures for modelbridge."""

from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from modelbridge.config import AppConfig, Environment, ProviderConfig, ProviderType
from modelbridge.services.discovery import ModelPoolManager
from modelbridge.services.events import EventBus
from modelbridge.services.providers import MockChatModelProvider
from modelbridge.tools import ToolFactory, ToolRegistry


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration for an app backed by the mock provider."""
    return AppConfig(
        environment=Environment.TESTING,
        provider=ProviderConfig(provider_type=ProviderType.MOCK, vendor="mock"),
    )


@pytest.fixture
def mock_provider() -> MockChatModelProvider:
    """Mock provider with one model per pool tier."""
    return MockChatModelProvider()


@pytest.fixture
def event_log() -> list:
    return []


@pytest.fixture
def event_bus(event_log: list) -> EventBus:
    """Event bus that records every published event."""
    bus = EventBus()
    bus.subscribe(event_log.append)
    return bus


@pytest.fixture
async def pool_manager(mock_provider: MockChatModelProvider, event_bus: EventBus) -> AsyncIterator[ModelPoolManager]:
    """Pool manager that has completed one discovery pass."""
    manager = ModelPoolManager(mock_provider, event_bus=event_bus)
    await manager.discover_all()
    yield manager
    await manager.stop()


@pytest.fixture
def registry(tmp_path: Path, event_bus: EventBus) -> ToolRegistry:
    """Default tool registry confined to a temporary directory."""
    return ToolFactory.create_default_registry(event_bus=event_bus, base_directory=str(tmp_path))


@pytest.fixture
def app(app_config: AppConfig, mock_provider: MockChatModelProvider):
    from modelbridge.main import create_app

    return create_app(app_config, provider=mock_provider)


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    """Test client with the lifespan run, so the pool is discovered."""
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
