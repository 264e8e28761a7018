"""Node handler contract shared by every node type."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol


@dataclass
class NodeContext:
    """Everything a handler may read while executing one node.

    ``inputs`` is this node's assembled input. ``global_context`` is the
    run-wide map of every earlier node's output keys (last writer wins); it is
    owned by the executor and must be treated as read-only by handlers.
    """
    node_id: str
    inputs: Dict[str, Any] = field(default_factory=dict)
    config: Dict[str, Any] = field(default_factory=dict)
    global_context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NodeResult:
    """A handler's only channel back to the executor."""
    success: bool
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, output: Optional[Dict[str, Any]] = None) -> "NodeResult":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str, output: Optional[Dict[str, Any]] = None) -> "NodeResult":
        return cls(success=False, error=error, output=output)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ConfigValidation:
    """Result of a handler's synchronous config check."""
    valid: bool
    errors: Optional[List[str]] = None

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ConfigValidation":
        return cls(valid=not errors, errors=errors or None)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"valid": self.valid}
        if self.errors:
            data["errors"] = self.errors
        return data


class NodeHandler(Protocol):
    """Protocol every node type implements (enables duck typing)."""

    type: str

    async def execute(self, context: NodeContext) -> NodeResult:
        """Run the node. Failures are returned, not raised."""
        ...

    def validate_config(self, config: Dict[str, Any]) -> ConfigValidation:
        """Pure check of the node's own config slice."""
        ...


def error_message(error: BaseException) -> str:
    """Exception text, falling back to the class name for empty messages."""
    return str(error) or type(error).__name__


def utc_now_iso() -> str:
    """UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
