"""Node Executor - Single node execution with handler dispatch.

Uses a registry pattern for clean handler dispatch without if-else chains.
Adding a node type means adding one handler class and one registry entry.
"""

from typing import Any, Dict, List, Optional

import httpx

from flowys.core.encryption import EncryptionService
from flowys.core.logging import get_logger
from flowys.services.ai import AIService
from flowys.services.handlers import (
    AiNodeHandler,
    ApiNodeHandler,
    ConfigValidation,
    InputNodeHandler,
    IntegrationNodeHandler,
    LogicNodeHandler,
    NodeContext,
    NodeHandler,
    NodeResult,
    OutputNodeHandler,
    WebhookNodeHandler,
)
from flowys.services.integrations import ConnectionStore, IntegrationRegistry

logger = get_logger(__name__)


class UnknownNodeTypeError(ValueError):
    """Dispatch was asked for a node type with no registered handler."""

    def __init__(self, node_type: str):
        super().__init__(f"Unknown node type: {node_type}")
        self.node_type = node_type


class NodeExecutor:
    """Executes individual workflow nodes using registry-based dispatch."""

    def __init__(
        self,
        ai_service: AIService,
        integration_registry: IntegrationRegistry,
        connection_store: ConnectionStore,
        encryption: EncryptionService,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.ai_service = ai_service
        self.integration_registry = integration_registry
        self.connection_store = connection_store
        self.encryption = encryption
        self._http_transport = http_transport
        self._handlers = self._build_handler_registry()

    def _build_handler_registry(self) -> Dict[str, NodeHandler]:
        """Build handler registry with service dependencies injected."""
        handlers: List[NodeHandler] = [
            InputNodeHandler(),
            ApiNodeHandler(transport=self._http_transport),
            AiNodeHandler(self.ai_service),
            LogicNodeHandler(),
            OutputNodeHandler(),
            WebhookNodeHandler(transport=self._http_transport),
            IntegrationNodeHandler(self.integration_registry, self.connection_store, self.encryption),
        ]
        return {handler.type: handler for handler in handlers}

    def register(self, handler: NodeHandler) -> None:
        """Add or replace the handler for ``handler.type``."""
        self._handlers[handler.type] = handler

    @property
    def node_types(self) -> List[str]:
        return list(self._handlers)

    def has_handler(self, node_type: str) -> bool:
        return node_type in self._handlers

    def get_handler(self, node_type: str) -> NodeHandler:
        handler = self._handlers.get(node_type)
        if handler is None:
            raise UnknownNodeTypeError(node_type)
        return handler

    async def execute(self, node_type: str, context: NodeContext) -> NodeResult:
        """Dispatch a node to its handler.

        Raises:
            UnknownNodeTypeError: no handler is registered for ``node_type``
        """
        handler = self.get_handler(node_type)
        logger.debug("Dispatching node", node_id=context.node_id, node_type=node_type)
        return await handler.execute(context)

    def validate_config(self, node_type: str, config: Dict[str, Any]) -> ConfigValidation:
        return self.get_handler(node_type).validate_config(config or {})
