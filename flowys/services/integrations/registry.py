"""Central registry of available integration providers."""

from typing import Dict, List, Optional

from flowys.core.logging import get_logger
from .base import BaseIntegration, IntegrationDefinition

logger = get_logger(__name__)


class IntegrationRegistry:
    """Maps integration id to provider instance."""

    def __init__(self):
        self._integrations: Dict[str, BaseIntegration] = {}

    def register(self, integration: BaseIntegration) -> None:
        self._integrations[integration.id] = integration
        logger.debug("Integration registered", integration_id=integration.id)

    def get(self, integration_id: str) -> Optional[BaseIntegration]:
        return self._integrations.get(integration_id)

    def get_all(self) -> List[BaseIntegration]:
        return list(self._integrations.values())

    def get_all_definitions(self) -> List[IntegrationDefinition]:
        return [integration.definition for integration in self.get_all()]

    def get_by_category(self, category: str) -> List[BaseIntegration]:
        return [i for i in self.get_all() if i.definition.config.category == category]

    def search(self, query: str) -> List[BaseIntegration]:
        """Case-insensitive match on name or description."""
        needle = query.lower()
        return [
            i for i in self.get_all()
            if needle in i.definition.config.name.lower()
            or needle in i.definition.config.description.lower()
        ]


def create_default_registry() -> IntegrationRegistry:
    """Registry with the bundled providers."""
    from .slack import SlackIntegration

    registry = IntegrationRegistry()
    registry.register(SlackIntegration())
    return registry
