"""Execution engine state models.

All models serialize to the camelCase JSON shape the editor consumes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TaskStatus(str, Enum):
    """Node execution states.

    State transitions:
        PENDING -> RUNNING -> COMPLETED
                           -> FAILED
                           -> CANCELLED
    """
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ExecutionLog:
    """Per-node log entry. Created when the node starts and mutated in place
    until it completes, fails or is cancelled."""
    node_id: str
    node_name: str
    status: TaskStatus = TaskStatus.PENDING
    started_at: Optional[str] = None
    input: Optional[Dict[str, Any]] = None
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    completed_at: Optional[str] = None
    duration: Optional[int] = None  # milliseconds

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "nodeId": self.node_id,
            "nodeName": self.node_name,
            "status": self.status.value,
        }
        optional = {
            "startedAt": self.started_at,
            "input": self.input,
            "output": self.output,
            "error": self.error,
            "completedAt": self.completed_at,
            "duration": self.duration,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data


@dataclass
class ErrorAnalysis:
    """Advisory explanation of the first failure in a run."""
    summary: str
    failed_node: str
    failed_node_type: str
    possible_causes: List[str] = field(default_factory=list)
    suggested_fixes: List[str] = field(default_factory=list)
    affected_nodes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "failedNode": self.failed_node,
            "failedNodeType": self.failed_node_type,
            "possibleCauses": list(self.possible_causes),
            "suggestedFixes": list(self.suggested_fixes),
            "affectedNodes": list(self.affected_nodes),
        }


@dataclass
class WorkflowExecutionResult:
    success: bool
    logs: List[ExecutionLog] = field(default_factory=list)
    duration: int = 0  # milliseconds
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_analysis: Optional[ErrorAnalysis] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        if self.error_analysis is not None:
            data["errorAnalysis"] = self.error_analysis.to_dict()
        data["logs"] = [log.to_dict() for log in self.logs]
        data["duration"] = self.duration
        return data


@dataclass
class ExecutionContext:
    """Per-run state, owned by exactly one executor run.

    ``global_context`` accumulates every completed node's output keys;
    on key collision the node that ran last wins.
    """
    node_outputs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    global_context: Dict[str, Any] = field(default_factory=dict)
    logs: List[ExecutionLog] = field(default_factory=list)

    @classmethod
    def create(cls, input: Optional[Dict[str, Any]] = None) -> "ExecutionContext":
        return cls(global_context=dict(input or {}))

    def record_output(self, node_id: str, output: Optional[Dict[str, Any]]) -> None:
        self.node_outputs[node_id] = output or {}
        if output:
            self.global_context.update(output)
