"""Workflow lifecycle notifications (workflow.started / completed / failed).

The engine only builds the event payload. Delivery goes through an
``EventNotifier``: ``NullNotifier`` when nothing is subscribed, or
``WebhookNotifier`` for a single signed HTTP POST per event. Delivery never
raises into the caller; failures are logged and reported in the result.
Retry scheduling is owned by whatever consumes the webhook.
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from flowys.constants import NOTIFIER_USER_AGENT
from flowys.core.encryption import generate_webhook_signature
from flowys.core.logging import get_logger
from flowys.services.handlers.base import utc_now_iso
from flowys.services.parameter_resolver import to_json

logger = get_logger(__name__)

WORKFLOW_STARTED = "workflow.started"
WORKFLOW_COMPLETED = "workflow.completed"
WORKFLOW_FAILED = "workflow.failed"


def build_run_data(workflow_id: Optional[str], workflow_name: Optional[str], execution_id: str,
                   status: str, input: Optional[Dict[str, Any]] = None,
                   output: Optional[Dict[str, Any]] = None,
                   error: Optional[str] = None) -> Dict[str, Any]:
    """Event data for one run; unset fields are omitted."""
    data = {
        "workflowId": workflow_id,
        "workflowName": workflow_name,
        "executionId": execution_id,
        "status": status,
        "input": input,
        "output": output,
        "error": error,
    }
    return {key: value for key, value in data.items() if value is not None}


def build_event_payload(event: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": event, "timestamp": utc_now_iso(), "data": data}


@dataclass
class DeliveryResult:
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    duration: int = 0  # milliseconds


class EventNotifier(Protocol):
    """Protocol for lifecycle notifiers (enables duck typing)."""

    async def notify(self, owner_id: str, event: str, data: Dict[str, Any]) -> DeliveryResult:
        ...


class NullNotifier:
    """No-op notifier when no endpoint is configured.

    This follows the Null Object pattern - all deliveries succeed silently.
    """

    async def notify(self, owner_id: str, event: str, data: Dict[str, Any]) -> DeliveryResult:
        logger.debug("Notifications disabled, skipping event", owner_id=owner_id, event_name=event)
        return DeliveryResult(success=True)


class WebhookNotifier:
    """POSTs each lifecycle event as JSON to one endpoint."""

    def __init__(self, url: str, secret: Optional[str] = None, webhook_id: Optional[str] = None,
                 headers: Optional[Dict[str, str]] = None, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.secret = secret
        self.webhook_id = webhook_id or str(uuid.uuid4())
        self.extra_headers = dict(headers or {})
        self.timeout = timeout
        self._transport = transport

    def build_headers(self, event: str, timestamp: str, body: str) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": NOTIFIER_USER_AGENT,
            "X-Webhook-Id": self.webhook_id,
            "X-Webhook-Event": event,
            "X-Webhook-Timestamp": timestamp,
            **self.extra_headers,
        }
        if self.secret:
            headers["X-Webhook-Signature"] = generate_webhook_signature(body, self.secret)
        return headers

    async def notify(self, owner_id: str, event: str, data: Dict[str, Any]) -> DeliveryResult:
        payload = build_event_payload(event, data)
        body = to_json(payload)
        headers = self.build_headers(event, payload["timestamp"], body)
        start = time.monotonic()

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(self.url, content=body.encode("utf-8"), headers=headers)
        except httpx.HTTPError as e:
            duration = int((time.monotonic() - start) * 1000)
            logger.warning("Webhook notification failed", owner_id=owner_id, event_name=event,
                           url=self.url, error=str(e) or type(e).__name__)
            return DeliveryResult(success=False, error=str(e) or type(e).__name__, duration=duration)

        duration = int((time.monotonic() - start) * 1000)
        if response.is_success:
            logger.info("Webhook notification delivered", owner_id=owner_id, event_name=event,
                        status_code=response.status_code, duration_ms=duration)
            return DeliveryResult(success=True, status_code=response.status_code, duration=duration)

        error = f"HTTP {response.status_code}: {response.text[:200]}"
        logger.warning("Webhook notification rejected", owner_id=owner_id, event_name=event,
                       status_code=response.status_code)
        return DeliveryResult(success=False, status_code=response.status_code, error=error, duration=duration)


def create_notifier(url: Optional[str], secret: Optional[str] = None,
                    transport: Optional[httpx.AsyncBaseTransport] = None) -> EventNotifier:
    """WebhookNotifier when a URL is configured, NullNotifier otherwise."""
    if url:
        logger.info("Webhook notifications enabled", url=url)
        return WebhookNotifier(url, secret=secret, transport=transport)
    logger.debug("Webhook notifications disabled")
    return NullNotifier()
