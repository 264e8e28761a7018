"""
API tests for the node and workflow routes
"""

import asyncio
import json

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from flowys.core.container import container
from flowys.main import app
from flowys.services.notifications import NullNotifier
from flowys.services.pricing import InMemoryCreditLedger
from flowys.services.workflow import WorkflowService

WORKFLOW = {
    "workflowId": "wf-42",
    "workflowName": "Scores",
    "nodes": [
        {"id": "in", "type": "input", "position": {"x": 0, "y": 0}, "data": {"label": "Input", "config": {}}},
        {"id": "keep", "type": "logic", "data": {"label": "Keep high", "config": {
            "operation": "filter", "condition": "item.score > 80"}}},
    ],
    "edges": [{"id": "e1", "source": "in", "target": "keep", "sourceHandle": None}],
    "input": {"data": [{"score": 95}, {"score": 20}]},
}


@pytest.fixture
def ledger():
    return InMemoryCreditLedger(default_balance=100)


@pytest.fixture
def client(node_executor, ledger):
    """TestClient with engine services swapped for test instances"""
    service = WorkflowService(node_executor, ledger, NullNotifier())
    with container.node_executor.override(providers.Object(node_executor)), \
            container.workflow_service.override(providers.Object(service)):
        with TestClient(app) as test_client:
            yield test_client


def parse_sse(text):
    events = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "OK"
    assert "logic" in response.json()["node_types"]


def test_list_node_types(client):
    response = client.get("/api/nodes")

    assert response.status_code == 200
    assert [d["type"] for d in response.json()] == [
        "input", "api", "ai", "logic", "output", "webhook", "integration",
    ]


def test_node_test_route(client):
    response = client.post("/api/nodes/test", json={
        "nodeType": "logic",
        "config": {"operation": "reduce", "expression": "count"},
        "input": {"data": [1, 2]},
    })

    assert response.status_code == 200
    assert response.json()["output"] == {"result": 2}


def test_node_test_rejects_missing_or_unknown_type(client):
    missing = client.post("/api/nodes/test", json={"config": {}})
    unknown = client.post("/api/nodes/test", json={"nodeType": "warp"})

    assert missing.status_code == 400
    assert missing.json() == {"error": "Node type is required"}
    assert unknown.status_code == 400
    assert unknown.json() == {"error": "Invalid node type: warp"}


def test_validate_route(client):
    response = client.post("/api/nodes/validate", json={"type": "output", "config": {"format": "yaml"}})
    invalid = client.post("/api/nodes/validate", json={"type": "warp"})

    assert response.json() == {"valid": False, "errors": ["format must be json, text, or markdown"]}
    assert invalid.status_code == 400


def test_execute_workflow(client, ledger):
    response = client.post("/api/workflows/execute", json=WORKFLOW)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["workflowId"] == "wf-42"
    assert body["output"] == {"data": [{"score": 95}], "count": 1}
    assert [log["nodeName"] for log in body["logs"]] == ["Input", "Keep high"]
    assert body["credits"] == {"used": 1, "remaining": 99}


def test_execute_without_credits_returns_402(client, ledger):
    asyncio.run(ledger.set_balance("default", 0))

    response = client.post("/api/workflows/execute", json=WORKFLOW)

    assert response.status_code == 402
    assert response.json() == {
        "error": "Insufficient credits",
        "details": "This workflow requires 1 credits, but you only have 0 remaining.",
        "code": "INSUFFICIENT_CREDITS",
        "required": 1,
        "remaining": 0,
    }


def test_execute_stream(client):
    """started, one update per transition, then completed"""
    response = client.post("/api/workflows/execute/stream", json=WORKFLOW)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    events = parse_sse(response.text)
    names = [name for name, _ in events]
    assert names == ["started", "node-update", "node-update", "node-update", "node-update", "completed"]
    assert events[0][1] == {"workflowId": "wf-42", "nodeCount": 2}
    assert events[1][1]["log"]["status"] == "running"
    assert events[4][1]["log"]["status"] == "completed"
    assert len(events[4][1]["logs"]) == 2
    assert events[-1][1]["status"] == "completed"


def test_execute_stream_cycle_reports_failed_run(client):
    cyclic = {
        **WORKFLOW,
        "edges": [{"source": "in", "target": "keep"}, {"source": "keep", "target": "in"}],
    }

    events = parse_sse(client.post("/api/workflows/execute/stream", json=cyclic).text)

    assert [name for name, _ in events] == ["started", "completed"]
    assert events[-1][1]["success"] is False
    assert events[-1][1]["error"] == "Workflow contains a cycle - cannot execute"
