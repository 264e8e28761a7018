from .workflow import (
    Edge,
    Node,
    NodeTestRequest,
    NodeValidateRequest,
    WorkflowExecutionRequest,
)

__all__ = [
    "Edge",
    "Node",
    "NodeTestRequest",
    "NodeValidateRequest",
    "WorkflowExecutionRequest",
]
