"""
Unit tests for the Integration node, the registry and the Slack provider
"""

import json

import httpx
import pytest

from flowys.core.encryption import create_encryption_service
from flowys.services.handlers import IntegrationNodeHandler, NodeContext
from flowys.services.integrations import (
    ActionContext,
    ActionResult,
    BaseIntegration,
    ConnectionData,
    CredentialCheck,
    IntegrationAction,
    IntegrationConfig,
    IntegrationDefinition,
    IntegrationRegistry,
)
from flowys.services.integrations.slack import SlackIntegration


class EchoIntegration(BaseIntegration):
    """Returns the action input and the decrypted token it was given"""

    definition = IntegrationDefinition(
        config=IntegrationConfig(id="echo", name="Echo", description="Echoes input back",
                                 category="testing", auth_type="api_key"),
        actions=[IntegrationAction(id="echo", name="Echo", description="Echo input")],
    )

    async def execute_action(self, action_id, context: ActionContext) -> ActionResult:
        if context.input.get("fail"):
            return ActionResult.fail("echo refused")
        return ActionResult.ok({"input": context.input, "apiKey": context.connection.credentials["apiKey"]})

    async def validate_credentials(self, credentials):
        return CredentialCheck(valid=bool(credentials.get("apiKey")))


@pytest.fixture
def handler(integration_registry, connection_store, encryption):
    integration_registry.register(EchoIntegration())
    return IntegrationNodeHandler(integration_registry, connection_store, encryption)


@pytest.mark.asyncio
async def test_executes_action_with_decrypted_credentials(handler, connection_store):
    """Upstream inputs override config input"""
    stored = connection_store.add("echo", "Echo", {"apiKey": "k-123"})

    result = await handler.execute(NodeContext(
        node_id="int", inputs={"text": "from upstream"},
        config={"connectionId": stored.id, "actionId": "echo", "input": {"text": "static", "channel": "c"}},
    ))

    assert result.success
    assert result.output == {"input": {"text": "from upstream", "channel": "c"}, "apiKey": "k-123"}
    assert stored.last_used_at is not None
    assert "k-123" not in stored.encrypted_credentials


@pytest.mark.asyncio
async def test_lookup_failures(handler, connection_store):
    disabled = connection_store.add("echo", "Off", {"apiKey": "k"}, enabled=False)
    orphan = connection_store.add("gone", "Orphan", {"apiKey": "k"})
    live = connection_store.add("echo", "Echo", {"apiKey": "k"})

    async def error_for(config):
        result = await handler.execute(NodeContext(node_id="int", config=config))
        assert not result.success
        return result.error

    assert await error_for({"actionId": "echo"}) == "Connection ID is required"
    assert await error_for({"connectionId": "x"}) == "Action ID is required"
    assert await error_for({"connectionId": "x", "actionId": "echo"}) == "Connection not found: x"
    assert await error_for({"connectionId": disabled.id, "actionId": "echo"}) == "Connection is disabled"
    assert await error_for({"connectionId": orphan.id, "actionId": "echo"}) == "Integration not found: gone"
    assert await error_for({"connectionId": live.id, "actionId": "nope"}) == "Action not found: nope"
    assert await error_for({"connectionId": live.id, "actionId": "echo", "input": {"fail": True}}) == "echo refused"


@pytest.mark.asyncio
async def test_credentials_need_the_same_key(connection_store):
    """A different key cannot decrypt stored credentials"""
    stored = connection_store.add("echo", "Echo", {"apiKey": "k"})
    other = create_encryption_service("another-credential-key-0123456789ab", "test-salt", iterations=1000)

    with pytest.raises(ValueError, match="Decryption failed"):
        other.decrypt_credentials(stored.encrypted_credentials)


def test_integration_validate_config(handler):
    result = handler.validate_config({})

    assert result.errors == ["Connection ID is required", "Integration ID is required", "Action ID is required"]


def test_registry_lookup():
    registry = IntegrationRegistry()
    registry.register(EchoIntegration())
    registry.register(SlackIntegration())

    assert registry.get("echo").id == "echo"
    assert registry.get("missing") is None
    assert [i.id for i in registry.get_by_category("communication")] == ["slack"]
    assert [i.id for i in registry.search("ECHOES")] == ["echo"]
    assert [d.config.id for d in registry.get_all_definitions()] == ["echo", "slack"]


def test_auth_headers_by_credential_kind():
    integration = EchoIntegration()

    assert integration.auth_headers({"accessToken": "t"}) == {"Authorization": "Bearer t"}
    assert integration.auth_headers({"apiKey": "k"}) == {"Authorization": "Bearer k"}
    assert integration.auth_headers({"username": "u", "password": "p"}) == {"Authorization": "Basic dTpw"}
    assert integration.needs_refresh({"expiresAt": "2000-01-01T00:00:00Z"})
    assert not integration.needs_refresh({})


@pytest.mark.asyncio
async def test_slack_send_message():
    requests = []

    def respond(request):
        requests.append(request)
        return httpx.Response(200, json={"ok": True, "ts": "1.2", "channel": "C1"})

    slack = SlackIntegration(transport=httpx.MockTransport(respond))
    connection = ConnectionData(id="c", integration_id="slack", name="Slack",
                                credentials={"accessToken": "xoxb-1"})

    result = await slack.execute_action("send_message", ActionContext(
        connection=connection, input={"channel": "#general", "text": "hi"},
    ))

    assert result.success
    assert result.output == {"ok": True, "ts": "1.2", "channel": "C1"}
    assert requests[0].url.path == "/api/chat.postMessage"
    assert requests[0].headers["Authorization"] == "Bearer xoxb-1"
    assert json.loads(requests[0].content)["text"] == "hi"


@pytest.mark.asyncio
async def test_slack_api_error_is_reported():
    slack = SlackIntegration(transport=httpx.MockTransport(
        lambda r: httpx.Response(200, json={"ok": False, "error": "channel_not_found"})
    ))
    connection = ConnectionData(id="c", integration_id="slack", name="Slack", credentials={"accessToken": "t"})

    result = await slack.execute_action("send_message", ActionContext(connection=connection, input={}))
    unknown = await slack.execute_action("archive", ActionContext(connection=connection, input={}))

    assert result.error == "channel_not_found"
    assert unknown.error == "Unknown action: archive"
