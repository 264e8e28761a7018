"""Third-party integration framework used by the Integration node."""

from .base import (
    ActionContext,
    ActionResult,
    BaseIntegration,
    ConnectionData,
    CredentialCheck,
    IntegrationAction,
    IntegrationConfig,
    IntegrationDefinition,
)
from .registry import IntegrationRegistry, create_default_registry
from .store import ConnectionStore, InMemoryConnectionStore, StoredConnection

__all__ = [
    "ActionContext",
    "ActionResult",
    "BaseIntegration",
    "ConnectionData",
    "CredentialCheck",
    "IntegrationAction",
    "IntegrationConfig",
    "IntegrationDefinition",
    "IntegrationRegistry",
    "create_default_registry",
    "ConnectionStore",
    "InMemoryConnectionStore",
    "StoredConnection",
]
