"""Pydantic models for workflow graphs and execution requests.

Nodes arrive either flat (``{id, type, label, config}``) or in the editor's
shape (``{id, type, position, data: {label, config}}``). Both validate to
the same ``Node``.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


# =============================================================================
# GRAPH MODELS
# =============================================================================

class Node(BaseModel):
    """One step in a workflow graph. ``config`` is opaque to the executor."""
    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    label: str = ""
    config: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def lift_editor_data(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        data = value.get("data")
        if not isinstance(data, dict):
            return value
        lifted = dict(value)
        lifted.setdefault("label", data.get("label") or "")
        if "config" not in lifted:
            lifted["config"] = data.get("config") or {}
        return lifted

    @model_validator(mode="after")
    def default_label(self) -> "Node":
        if not self.label:
            self.label = self.id
        return self


class Edge(BaseModel):
    """Directed dependency. A missing or ``"default"`` source handle means
    the whole source output."""
    id: str = ""
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    target_handle: Optional[str] = Field(default=None, alias="targetHandle")

    model_config = {"populate_by_name": True, "extra": "ignore"}


# =============================================================================
# REQUEST MODELS
# =============================================================================

class WorkflowExecutionRequest(BaseModel):
    """Request model for running a workflow graph."""
    nodes: List[Node]
    edges: List[Edge] = Field(default_factory=list)
    input: Dict[str, Any] = Field(default_factory=dict)
    workflow_id: Optional[str] = Field(default=None, alias="workflowId")
    workflow_name: str = Field(default="Untitled workflow", alias="workflowName")
    owner_id: str = Field(default="default", alias="ownerId")

    model_config = {"populate_by_name": True}


class NodeTestRequest(BaseModel):
    """Request model for running a single node."""
    node_type: Optional[str] = Field(default=None, alias="nodeType")
    config: Dict[str, Any] = Field(default_factory=dict)
    input: Dict[str, Any] = Field(default_factory=dict)
    node_id: str = Field(default="test_node", alias="nodeId")

    model_config = {"populate_by_name": True}


class NodeValidateRequest(BaseModel):
    node_type: Optional[str] = Field(default=None, alias="type")
    config: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}
