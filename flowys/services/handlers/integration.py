"""Integration node handler - runs an action on a stored third-party connection."""

from typing import Any, Dict

from flowys.constants import INTEGRATION_NODE
from flowys.core.encryption import EncryptionService
from flowys.core.logging import get_logger
from flowys.services.integrations import (
    ActionContext,
    ConnectionData,
    ConnectionStore,
    IntegrationRegistry,
)
from .base import ConfigValidation, NodeContext, NodeResult, error_message

logger = get_logger(__name__)


class IntegrationNodeHandler:
    """Looks up the connection, decrypts its credentials and delegates to the
    registered provider. Upstream inputs override ``config.input`` on key
    collision.
    """

    type = INTEGRATION_NODE

    def __init__(self, registry: IntegrationRegistry, connections: ConnectionStore,
                 encryption: EncryptionService):
        self._registry = registry
        self._connections = connections
        self._encryption = encryption

    async def execute(self, context: NodeContext) -> NodeResult:
        config = context.config
        connection_id = config.get("connectionId")
        action_id = config.get("actionId")

        if not connection_id:
            return NodeResult.fail("Connection ID is required")
        if not action_id:
            return NodeResult.fail("Action ID is required")

        try:
            stored = await self._connections.get(connection_id)
            if stored is None:
                return NodeResult.fail(f"Connection not found: {connection_id}")
            if not stored.enabled:
                return NodeResult.fail("Connection is disabled")

            integration = self._registry.get(stored.integration_id)
            if integration is None:
                return NodeResult.fail(f"Integration not found: {stored.integration_id}")
            if integration.get_action(action_id) is None:
                return NodeResult.fail(f"Action not found: {action_id}")

            connection = ConnectionData(
                id=stored.id,
                integration_id=stored.integration_id,
                name=stored.name,
                credentials=self._encryption.decrypt_credentials(stored.encrypted_credentials),
                metadata=stored.metadata,
                enabled=stored.enabled,
                last_used_at=stored.last_used_at,
            )
            action_input = {**(config.get("input") or {}), **context.inputs}

            logger.info("[Integration] Executing action", node_id=context.node_id,
                        integration_id=stored.integration_id, action_id=action_id)
            result = await integration.execute_action(
                action_id, ActionContext(connection=connection, input=action_input)
            )
            await self._connections.touch(stored.id)

            if result.success:
                return NodeResult.ok(result.output or {})
            return NodeResult.fail(result.error or "Integration action failed")

        except Exception as e:
            logger.error("Integration execution failed", node_id=context.node_id, error=error_message(e))
            return NodeResult.fail(str(e) or "Integration execution failed")

    def validate_config(self, config: Dict[str, Any]) -> ConfigValidation:
        errors = []
        if not config.get("connectionId"):
            errors.append("Connection ID is required")
        if not config.get("integrationId"):
            errors.append("Integration ID is required")
        if not config.get("actionId"):
            errors.append("Action ID is required")
        return ConfigValidation.from_errors(errors)
