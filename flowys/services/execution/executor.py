"""Workflow executor - sequential DAG execution in topological order.

Implements:
- Kahn's algorithm ordering with cycle detection before anything runs
- Per-node input assembly from upstream outputs and edge handles
- Halt on first failure with rule-based diagnosis
- Progress callbacks after every status transition
- Cooperative and task-level cancellation
"""

import asyncio
import inspect
import time
from collections import defaultdict, deque
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from flowys.constants import INPUT_NODE, OUTPUT_NODE
from flowys.core.logging import get_logger
from flowys.models.workflow import Edge, Node
from flowys.services.handlers.base import NodeContext, NodeResult, error_message, utc_now_iso
from flowys.services.node_executor import NodeExecutor
from .diagnosis import analyze_error
from .models import ExecutionContext, ExecutionLog, TaskStatus, WorkflowExecutionResult

logger = get_logger(__name__)

ExecutionCallback = Callable[[ExecutionLog, List[ExecutionLog]], Union[None, Awaitable[None]]]

CANCELLED_ERROR = "Workflow execution cancelled"


class WorkflowStructureError(ValueError):
    """The graph cannot be executed as given."""


class CycleError(WorkflowStructureError):
    def __init__(self):
        super().__init__("Workflow contains a cycle - cannot execute")


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class WorkflowExecutor:
    """Runs one workflow graph.

    Nodes run strictly one at a time. Independent siblings keep the order
    in which they appear in the node list, so repeated runs over the same
    graph are deterministic.
    """

    def __init__(self, nodes: Sequence[Union[Node, Dict[str, Any]]],
                 edges: Sequence[Union[Edge, Dict[str, Any]]],
                 node_executor: NodeExecutor):
        self.nodes: List[Node] = [n if isinstance(n, Node) else Node.model_validate(n) for n in nodes]
        self.edges: List[Edge] = [e if isinstance(e, Edge) else Edge.model_validate(e) for e in edges]
        self.node_executor = node_executor
        self._cancelled = False
        self._build_graph()

    def _build_graph(self) -> None:
        self.node_map: Dict[str, Node] = {}
        self.adjacency: Dict[str, List[str]] = {}
        self.in_degree: Dict[str, int] = {}
        self.incoming: Dict[str, List[Edge]] = defaultdict(list)

        for node in self.nodes:
            self.node_map.setdefault(node.id, node)
            self.adjacency.setdefault(node.id, [])
            self.in_degree.setdefault(node.id, 0)

        for edge in self.edges:
            if edge.source in self.adjacency and edge.target in self.in_degree:
                self.adjacency[edge.source].append(edge.target)
                self.in_degree[edge.target] += 1
            self.incoming[edge.target].append(edge)

    # =========================================================================
    # STRUCTURE
    # =========================================================================

    def validate_structure(self) -> None:
        """Raise WorkflowStructureError for duplicate ids, dangling edges or
        unregistered node types."""
        seen = set()
        for node in self.nodes:
            if node.id in seen:
                raise WorkflowStructureError(f"Duplicate node id: {node.id}")
            seen.add(node.id)
            if not self.node_executor.has_handler(node.type):
                raise WorkflowStructureError(f"Unknown node type: {node.type}")

        for edge in self.edges:
            for node_id in (edge.source, edge.target):
                if node_id not in self.node_map:
                    raise WorkflowStructureError(f"Edge references unknown node: {node_id}")

    def topological_order(self) -> List[str]:
        """Kahn's algorithm.

        Raises:
            CycleError: not every node could be ordered
            WorkflowStructureError: see validate_structure()
        """
        self.validate_structure()

        in_degree = dict(self.in_degree)
        queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
        order: List[str] = []

        while queue:
            node_id = queue.popleft()
            order.append(node_id)
            for neighbor in self.adjacency[node_id]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    queue.append(neighbor)

        if len(order) != len(self.nodes):
            raise CycleError()
        return order

    # =========================================================================
    # DATA FLOW
    # =========================================================================

    def get_node_inputs(self, node_id: str, context: ExecutionContext) -> Dict[str, Any]:
        """Merge upstream outputs into this node's input map.

        An edge without a source handle (or with ``"default"``) spreads the
        whole source output. A named handle copies ``output[handle]``, or the
        whole output when that key is absent.
        """
        inputs: Dict[str, Any] = {}
        for edge in self.incoming.get(node_id, []):
            source_output = context.node_outputs.get(edge.source)
            if source_output is None:
                continue
            key = edge.source_handle or "default"
            if key == "default":
                inputs.update(source_output)
            else:
                value = source_output.get(key)
                inputs[key] = source_output if value is None else value
        return inputs

    def _final_output(self, order: List[str], context: ExecutionContext) -> Dict[str, Any]:
        output_nodes = [node for node in self.nodes if node.type == OUTPUT_NODE]
        if output_nodes:
            final: Dict[str, Any] = {}
            for node in output_nodes:
                final.update(context.node_outputs.get(node.id) or {})
            return final
        if not order:
            return {}
        return context.node_outputs.get(order[-1]) or {}

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def cancel(self) -> None:
        """Stop before the next node starts."""
        self._cancelled = True

    async def _notify(self, callback: Optional[ExecutionCallback], log: ExecutionLog,
                      logs: List[ExecutionLog]) -> None:
        if callback is None:
            return
        try:
            result = callback(log, list(logs))
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("Node update callback failed", node_id=log.node_id, error=str(e))

    async def _run_handler(self, node: Node, inputs: Dict[str, Any],
                           context: ExecutionContext) -> NodeResult:
        try:
            return await self.node_executor.execute(node.type, NodeContext(
                node_id=node.id,
                inputs=inputs,
                config=node.config,
                global_context=context.global_context,
            ))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Node handler raised", node_id=node.id, node_type=node.type,
                         error=error_message(e))
            return NodeResult.fail(error_message(e))

    async def execute(self, input: Optional[Dict[str, Any]] = None,
                      on_node_update: Optional[ExecutionCallback] = None) -> WorkflowExecutionResult:
        """Run the graph. Never raises: every failure is reported in the result."""
        input = input or {}
        start = time.monotonic()
        context = ExecutionContext.create(input)

        try:
            order = self.topological_order()
        except WorkflowStructureError as e:
            logger.warning("Workflow rejected", error=str(e), node_count=len(self.nodes))
            return WorkflowExecutionResult(success=False, error=str(e), logs=[], duration=_elapsed_ms(start))

        logger.info("Starting workflow execution", node_count=len(self.nodes), edge_count=len(self.edges))
        log: Optional[ExecutionLog] = None

        try:
            for node_id in order:
                if self._cancelled:
                    raise asyncio.CancelledError()

                node = self.node_map[node_id]
                node_start = time.monotonic()
                log = ExecutionLog(node_id=node.id, node_name=node.label,
                                   status=TaskStatus.RUNNING, started_at=utc_now_iso())
                context.logs.append(log)
                await self._notify(on_node_update, log, context.logs)

                node_inputs = self.get_node_inputs(node_id, context)
                if node.type == INPUT_NODE:
                    node_inputs = {**input, **node_inputs}
                log.input = node_inputs

                result = await self._run_handler(node, node_inputs, context)
                log.completed_at = utc_now_iso()
                log.duration = _elapsed_ms(node_start)

                if not result.success:
                    error = result.error or "Unknown error"
                    log.status = TaskStatus.FAILED
                    log.error = error
                    logger.error("Node failed", node_id=node.id, node_type=node.type, error=error)
                    await self._notify(on_node_update, log, context.logs)

                    analysis = analyze_error(node, error, self.adjacency, self.node_map, node_inputs)
                    return WorkflowExecutionResult(
                        success=False,
                        error=f'Node "{node.label}" failed: {error}',
                        error_analysis=analysis,
                        logs=context.logs,
                        duration=_elapsed_ms(start),
                    )

                log.status = TaskStatus.COMPLETED
                log.output = result.output
                logger.info("Node completed", node_id=node.id, node_type=node.type, duration_ms=log.duration)
                await self._notify(on_node_update, log, context.logs)

                context.record_output(node_id, result.output)

        except asyncio.CancelledError:
            if log is not None and log.status == TaskStatus.RUNNING:
                log.status = TaskStatus.CANCELLED
                log.error = CANCELLED_ERROR
                log.completed_at = utc_now_iso()
            logger.info("Workflow execution cancelled", completed_nodes=len(context.node_outputs))
            return WorkflowExecutionResult(success=False, error=CANCELLED_ERROR,
                                           logs=context.logs, duration=_elapsed_ms(start))

        duration = _elapsed_ms(start)
        logger.info("Workflow execution completed", node_count=len(order), duration_ms=duration)
        return WorkflowExecutionResult(
            success=True,
            output=self._final_output(order, context),
            logs=context.logs,
            duration=duration,
        )
