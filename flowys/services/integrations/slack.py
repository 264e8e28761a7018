"""Slack integration - messages and channels via the Slack Web API."""

from typing import Any, Dict

import httpx

from flowys.core.logging import get_logger
from .base import (
    ActionContext,
    ActionResult,
    BaseIntegration,
    CredentialCheck,
    IntegrationAction,
    IntegrationConfig,
    IntegrationDefinition,
)

logger = get_logger(__name__)

SLACK_API = "https://slack.com/api"


class SlackIntegration(BaseIntegration):
    definition = IntegrationDefinition(
        config=IntegrationConfig(
            id="slack",
            name="Slack",
            description="Send messages, create channels, and manage your Slack workspace",
            category="communication",
            auth_type="oauth2",
            website="https://slack.com",
            docs_url="https://api.slack.com/docs",
        ),
        actions=[
            IntegrationAction(
                id="send_message",
                name="Send Message",
                description="Send a message to a Slack channel or user",
                input_schema={
                    "channel": {"type": "string", "required": True,
                                "description": "Channel ID or name (e.g., #general or C01234567)"},
                    "text": {"type": "string", "required": True,
                             "description": "Message text (supports Slack markdown)"},
                    "blocks": {"type": "array", "required": False,
                               "description": "Optional Block Kit blocks for rich formatting"},
                },
                output_schema={
                    "ok": {"type": "boolean"},
                    "ts": {"type": "string", "description": "Message timestamp ID"},
                    "channel": {"type": "string"},
                },
            ),
            IntegrationAction(
                id="create_channel",
                name="Create Channel",
                description="Create a new Slack channel",
                input_schema={
                    "name": {"type": "string", "required": True,
                             "description": "Channel name (lowercase, no spaces)"},
                    "is_private": {"type": "boolean", "default": False},
                },
                output_schema={"ok": {"type": "boolean"}, "channel": {"type": "object"}},
            ),
            IntegrationAction(
                id="list_channels",
                name="List Channels",
                description="Get a list of channels in the workspace",
                input_schema={"limit": {"type": "number", "default": 100}},
                output_schema={"ok": {"type": "boolean"}, "channels": {"type": "array"}},
            ),
        ],
    )

    async def execute_action(self, action_id: str, context: ActionContext) -> ActionResult:
        credentials = context.connection.credentials
        actions = {
            "send_message": self._send_message,
            "create_channel": self._create_channel,
            "list_channels": self._list_channels,
        }
        action = actions.get(action_id)
        if action is None:
            return ActionResult.fail(f"Unknown action: {action_id}")

        try:
            return await action(credentials, context.input)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Slack action failed", action_id=action_id, error=str(e))
            return ActionResult.fail(str(e) or "Request failed")

    async def validate_credentials(self, credentials: Dict[str, Any]) -> CredentialCheck:
        try:
            response = await self.make_request("POST", f"{SLACK_API}/auth.test", credentials)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return CredentialCheck(valid=False, error=str(e) or "Validation failed")

        if data.get("ok"):
            return CredentialCheck(valid=True, metadata={
                "team": data.get("team"),
                "teamId": data.get("team_id"),
                "user": data.get("user"),
                "userId": data.get("user_id"),
            })
        return CredentialCheck(valid=False, error=data.get("error") or "Invalid credentials")

    async def _send_message(self, credentials: Dict[str, Any], data: Dict[str, Any]) -> ActionResult:
        response = await self.make_request(
            "POST", f"{SLACK_API}/chat.postMessage", credentials,
            json={"channel": data.get("channel"), "text": data.get("text"), "blocks": data.get("blocks")},
        )
        body = response.json()
        if body.get("ok"):
            return ActionResult.ok({"ok": True, "ts": body.get("ts"), "channel": body.get("channel")})
        return ActionResult.fail(body.get("error") or "Failed to send message")

    async def _create_channel(self, credentials: Dict[str, Any], data: Dict[str, Any]) -> ActionResult:
        response = await self.make_request(
            "POST", f"{SLACK_API}/conversations.create", credentials,
            json={"name": data.get("name"), "is_private": bool(data.get("is_private", False))},
        )
        body = response.json()
        if body.get("ok"):
            channel = body.get("channel") or {}
            return ActionResult.ok({"ok": True, "channel": {"id": channel.get("id"), "name": channel.get("name")}})
        return ActionResult.fail(body.get("error") or "Failed to create channel")

    async def _list_channels(self, credentials: Dict[str, Any], data: Dict[str, Any]) -> ActionResult:
        limit = data.get("limit") or 100
        response = await self.make_request(
            "GET", f"{SLACK_API}/conversations.list", credentials, params={"limit": limit},
        )
        body = response.json()
        if body.get("ok"):
            return ActionResult.ok({
                "ok": True,
                "channels": [
                    {"id": ch.get("id"), "name": ch.get("name"), "is_private": ch.get("is_private")}
                    for ch in body.get("channels", [])
                ],
            })
        return ActionResult.fail(body.get("error") or "Failed to list channels")
