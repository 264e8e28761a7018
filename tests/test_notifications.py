"""
Unit tests for workflow lifecycle notifications
"""

import json

import httpx
import pytest

from flowys.core.encryption import verify_webhook_signature
from flowys.services.notifications import (
    WORKFLOW_COMPLETED,
    WORKFLOW_FAILED,
    WORKFLOW_STARTED,
    NullNotifier,
    WebhookNotifier,
    build_run_data,
    create_notifier,
)


def test_run_data_omits_unset_fields():
    data = build_run_data("wf-1", "Demo", "ex-1", "completed", output={"a": 1})

    assert data == {
        "workflowId": "wf-1",
        "workflowName": "Demo",
        "executionId": "ex-1",
        "status": "completed",
        "output": {"a": 1},
    }


@pytest.mark.asyncio
async def test_webhook_delivery_is_signed():
    """Body, event headers and signature all describe the same payload"""
    requests = []

    def respond(request):
        requests.append(request)
        return httpx.Response(200)

    notifier = WebhookNotifier("https://hooks.test/events", secret="topsecret", webhook_id="wh-1",
                               transport=httpx.MockTransport(respond))

    result = await notifier.notify("owner", WORKFLOW_COMPLETED, {"executionId": "ex-1"})

    assert result.success
    assert result.status_code == 200

    request = requests[0]
    body = request.content.decode()
    payload = json.loads(body)
    assert payload["event"] == "workflow.completed"
    assert payload["data"] == {"executionId": "ex-1"}
    assert request.headers["X-Webhook-Id"] == "wh-1"
    assert request.headers["X-Webhook-Event"] == "workflow.completed"
    assert request.headers["X-Webhook-Timestamp"] == payload["timestamp"]
    assert verify_webhook_signature(body, request.headers["X-Webhook-Signature"], "topsecret")


@pytest.mark.asyncio
async def test_rejected_delivery_reports_status():
    notifier = WebhookNotifier("https://hooks.test/events",
                               transport=httpx.MockTransport(lambda r: httpx.Response(503, text="down")))

    result = await notifier.notify("owner", WORKFLOW_COMPLETED, {})

    assert not result.success
    assert result.error == "HTTP 503: down"


@pytest.mark.asyncio
async def test_transport_failure_never_raises():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    notifier = WebhookNotifier("https://hooks.test/events", transport=httpx.MockTransport(refuse))

    result = await notifier.notify("owner", WORKFLOW_COMPLETED, {})

    assert not result.success
    assert result.error == "refused"


def test_create_notifier_selects_implementation():
    assert isinstance(create_notifier(None), NullNotifier)
    assert isinstance(create_notifier("https://hooks.test/events"), WebhookNotifier)


@pytest.mark.asyncio
async def test_null_notifier_accepts_every_event():
    notifier = NullNotifier()

    for event in (WORKFLOW_STARTED, WORKFLOW_COMPLETED, WORKFLOW_FAILED):
        result = await notifier.notify("owner", event, {"executionId": "ex-1"})
        assert result.success
