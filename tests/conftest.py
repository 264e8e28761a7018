"""Shared fixtures for the engine test suite."""

import pytest

from flowys.core.config import Settings
from flowys.core.encryption import create_encryption_service
from flowys.services.ai import AIService
from flowys.services.integrations import InMemoryConnectionStore, IntegrationRegistry
from flowys.services.node_executor import NodeExecutor

TEST_ENCRYPTION_KEY = "test-credential-key-0123456789abcdef"


@pytest.fixture
def settings():
    """Settings with no provider keys"""
    return Settings(openai_api_key=None, anthropic_api_key=None, notification_webhook_url=None)


@pytest.fixture
def encryption():
    """Fast-iteration encryption service"""
    return create_encryption_service(TEST_ENCRYPTION_KEY, "test-salt", iterations=1000)


@pytest.fixture
def ai_service(settings):
    """AIService without real providers"""
    return AIService(settings)


@pytest.fixture
def connection_store(encryption):
    return InMemoryConnectionStore(encryption)


@pytest.fixture
def integration_registry():
    return IntegrationRegistry()


@pytest.fixture
def node_executor(ai_service, integration_registry, connection_store, encryption):
    """NodeExecutor with the built-in handlers"""
    return NodeExecutor(ai_service, integration_registry, connection_store, encryption)
