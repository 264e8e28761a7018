"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from flowys.core.config import Settings
from flowys.core.encryption import create_encryption_service
from flowys.services.ai import AIService
from flowys.services.integrations import InMemoryConnectionStore, create_default_registry
from flowys.services.node_executor import NodeExecutor
from flowys.services.notifications import create_notifier
from flowys.services.pricing import InMemoryCreditLedger
from flowys.services.workflow import WorkflowService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Credential encryption (server-scoped key)
    encryption = providers.Singleton(
        create_encryption_service,
        key=settings.provided.credential_encryption_key,
        salt=settings.provided.credential_encryption_salt,
    )

    # Services
    ai_service = providers.Singleton(
        AIService,
        settings=settings
    )

    integration_registry = providers.Singleton(
        create_default_registry
    )

    connection_store = providers.Singleton(
        InMemoryConnectionStore,
        encryption=encryption
    )

    node_executor = providers.Singleton(
        NodeExecutor,
        ai_service=ai_service,
        integration_registry=integration_registry,
        connection_store=connection_store,
        encryption=encryption
    )

    credit_ledger = providers.Singleton(
        InMemoryCreditLedger,
        default_balance=settings.provided.default_credit_balance
    )

    notifier = providers.Singleton(
        create_notifier,
        url=settings.provided.notification_webhook_url,
        secret=settings.provided.notification_webhook_secret
    )

    workflow_service = providers.Singleton(
        WorkflowService,
        node_executor=node_executor,
        credit_ledger=credit_ledger,
        notifier=notifier
    )


# Global container instance
container = Container()
