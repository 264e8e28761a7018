"""Execution engine package.

Sequential workflow execution with:
- Kahn's algorithm ordering and cycle detection
- Upstream output threading through edge handles
- Halt-on-first-failure with rule-based diagnosis
"""

from .models import (
    TaskStatus,
    ExecutionLog,
    ErrorAnalysis,
    WorkflowExecutionResult,
    ExecutionContext,
)
from .diagnosis import analyze_error, find_affected_nodes
from .executor import (
    WorkflowExecutor,
    WorkflowStructureError,
    CycleError,
    ExecutionCallback,
    CANCELLED_ERROR,
)

__all__ = [
    # Models
    "TaskStatus",
    "ExecutionLog",
    "ErrorAnalysis",
    "WorkflowExecutionResult",
    "ExecutionContext",
    # Diagnosis
    "analyze_error",
    "find_affected_nodes",
    # Executor
    "WorkflowExecutor",
    "WorkflowStructureError",
    "CycleError",
    "ExecutionCallback",
    "CANCELLED_ERROR",
]
