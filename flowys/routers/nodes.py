"""Node catalogue, single-node test and config validation routes."""

from fastapi import APIRouter, Depends
from fastapi.responses import ORJSONResponse

from flowys.constants import NODE_TYPE_DEFINITIONS
from flowys.core.container import container
from flowys.core.logging import get_logger
from flowys.models.workflow import NodeTestRequest, NodeValidateRequest
from flowys.services.handlers.base import error_message
from flowys.services.workflow import WorkflowService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/nodes", tags=["nodes"])


@router.get("")
async def list_node_types():
    """Registered node types with their config fields."""
    return NODE_TYPE_DEFINITIONS


@router.post("/test")
async def test_node(
    request: NodeTestRequest,
    workflow_service: WorkflowService = Depends(lambda: container.workflow_service())
):
    """Run one node against the given input."""
    if not request.node_type:
        return ORJSONResponse(status_code=400, content={"error": "Node type is required"})
    if not workflow_service.node_executor.has_handler(request.node_type):
        return ORJSONResponse(status_code=400, content={"error": f"Invalid node type: {request.node_type}"})

    try:
        return await workflow_service.test_node(
            request.node_type, request.config, request.input, node_id=request.node_id
        )
    except Exception as e:
        logger.error("Node test failed", node_type=request.node_type, error=error_message(e))
        return ORJSONResponse(status_code=500, content={"success": False, "error": error_message(e)})


@router.post("/validate")
async def validate_node(
    request: NodeValidateRequest,
    workflow_service: WorkflowService = Depends(lambda: container.workflow_service())
):
    """Check a node config without running it."""
    if not request.node_type or not workflow_service.node_executor.has_handler(request.node_type):
        return ORJSONResponse(status_code=400, content={"error": "Invalid node type"})
    return workflow_service.validate_node(request.node_type, request.config)
