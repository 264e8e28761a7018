"""Workflow execution routes (blocking and Server-Sent Events)."""

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional

import orjson
from fastapi import APIRouter, Depends
from fastapi.responses import ORJSONResponse, StreamingResponse

from flowys.core.container import container
from flowys.core.logging import get_logger
from flowys.models.workflow import WorkflowExecutionRequest
from flowys.services.execution import ExecutionLog
from flowys.services.handlers.base import error_message
from flowys.services.pricing import InsufficientCreditsError
from flowys.services.workflow import WorkflowService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/workflows", tags=["workflows"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def format_sse(event: str, data: Any) -> bytes:
    return b"event: " + event.encode() + b"\ndata: " + orjson.dumps(data) + b"\n\n"


def insufficient_credits_body(e: InsufficientCreditsError) -> Dict[str, Any]:
    return {
        "error": "Insufficient credits",
        "details": f"This workflow requires {e.required} credits, but you only have {e.remaining} remaining.",
        "code": "INSUFFICIENT_CREDITS",
        "required": e.required,
        "remaining": e.remaining,
    }


@router.post("/execute")
async def execute_workflow(
    request: WorkflowExecutionRequest,
    workflow_service: WorkflowService = Depends(lambda: container.workflow_service())
):
    """Run a workflow and return the full execution record."""
    try:
        run = await workflow_service.run(
            request.nodes, request.edges, request.input,
            owner_id=request.owner_id,
            workflow_id=request.workflow_id,
            workflow_name=request.workflow_name,
        )
    except InsufficientCreditsError as e:
        return ORJSONResponse(status_code=402, content=insufficient_credits_body(e))

    return run.to_dict()


@router.post("/execute/stream")
async def execute_workflow_stream(
    request: WorkflowExecutionRequest,
    workflow_service: WorkflowService = Depends(lambda: container.workflow_service())
):
    """Run a workflow, streaming node updates as Server-Sent Events."""
    queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()

    def on_node_update(log: ExecutionLog, logs: List[ExecutionLog]) -> None:
        queue.put_nowait(format_sse("node-update", {
            "log": log.to_dict(),
            "logs": [entry.to_dict() for entry in logs],
        }))

    async def produce() -> None:
        try:
            queue.put_nowait(format_sse("started", {
                "workflowId": request.workflow_id,
                "nodeCount": len(request.nodes),
            }))
            run = await workflow_service.run(
                request.nodes, request.edges, request.input,
                owner_id=request.owner_id,
                workflow_id=request.workflow_id,
                workflow_name=request.workflow_name,
                on_node_update=on_node_update,
            )
            queue.put_nowait(format_sse("completed", run.to_dict()))
        except InsufficientCreditsError as e:
            queue.put_nowait(format_sse("error", insufficient_credits_body(e)))
        except Exception as e:
            logger.error("Streaming execution failed", error=error_message(e))
            queue.put_nowait(format_sse("error", {"error": error_message(e) or "Failed to execute workflow"}))
        finally:
            queue.put_nowait(None)

    async def stream() -> AsyncIterator[bytes]:
        task = asyncio.create_task(produce())
        try:
            while True:
                chunk = await queue.get()
                if chunk is None:
                    break
                yield chunk
        finally:
            if not task.done():
                task.cancel()

    return StreamingResponse(stream(), media_type="text/event-stream", headers=SSE_HEADERS)
