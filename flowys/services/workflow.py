"""Workflow Service - Facade for triggering workflow runs.

Delegates to:
- NodeExecutor: single node dispatch
- WorkflowExecutor: sequential graph execution
- CreditLedger: pre-check and post-run deduction
- EventNotifier: workflow.started / completed / failed events
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

from flowys.core.logging import bind_run_context, get_logger
from flowys.models.workflow import Edge, Node
from flowys.services.execution import ExecutionCallback, WorkflowExecutionResult, WorkflowExecutor
from flowys.services.handlers import NodeContext
from flowys.services.node_executor import NodeExecutor
from flowys.services.notifications import (
    WORKFLOW_COMPLETED,
    WORKFLOW_FAILED,
    WORKFLOW_STARTED,
    EventNotifier,
    build_run_data,
)
from flowys.services.pricing import CreditLedger, InsufficientCreditsError, calculate_workflow_cost

logger = get_logger(__name__)


@dataclass
class WorkflowRun:
    """One triggered run: the execution record plus metering."""
    execution_id: str
    result: WorkflowExecutionResult
    credits_used: int
    credits_remaining: int
    workflow_id: Optional[str] = None

    @property
    def status(self) -> str:
        return "completed" if self.result.success else "failed"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "executionId": self.execution_id,
            "workflowId": self.workflow_id,
            "status": self.status,
            **self.result.to_dict(),
            "credits": {"used": self.credits_used, "remaining": self.credits_remaining},
        }
        return data


class WorkflowService:
    """Workflow execution service.

    Thin facade over the engine. Each run gets its own WorkflowExecutor, so
    concurrent runs share nothing except the credit ledger.
    """

    def __init__(self, node_executor: NodeExecutor, credit_ledger: CreditLedger, notifier: EventNotifier):
        self.node_executor = node_executor
        self.credit_ledger = credit_ledger
        self.notifier = notifier

    async def test_node(self, node_type: str, config: Optional[Dict[str, Any]] = None,
                        input: Optional[Dict[str, Any]] = None, node_id: str = "test_node") -> Dict[str, Any]:
        """Run one node in isolation; ``input`` doubles as the global context.

        Raises:
            UnknownNodeTypeError: no handler for ``node_type``
        """
        input = input or {}
        handler = self.node_executor.get_handler(node_type)
        start = time.monotonic()
        result = await handler.execute(NodeContext(
            node_id=node_id,
            inputs=input,
            config=config or {},
            global_context=input,
        ))
        duration = int((time.monotonic() - start) * 1000)
        logger.info("Node test finished", node_type=node_type, success=result.success, duration_ms=duration)
        return {
            "success": result.success,
            "output": result.output,
            "error": result.error,
            "duration": duration,
        }

    def validate_node(self, node_type: str, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.node_executor.validate_config(node_type, config or {}).to_dict()

    async def run(
        self,
        nodes: Sequence[Union[Node, Dict[str, Any]]],
        edges: Sequence[Union[Edge, Dict[str, Any]]],
        input: Optional[Dict[str, Any]] = None,
        owner_id: str = "default",
        workflow_id: Optional[str] = None,
        workflow_name: Optional[str] = None,
        on_node_update: Optional[ExecutionCallback] = None,
    ) -> WorkflowRun:
        """Credit check, started event, execute, deduct, completion event.

        Raises:
            InsufficientCreditsError: before any node runs
        """
        input = input or {}
        executor = WorkflowExecutor(nodes, edges, self.node_executor)

        check = await self.credit_ledger.has_enough_credits(owner_id, executor.nodes)
        if not check.has_credits:
            logger.warning("Run refused for insufficient credits", owner_id=owner_id,
                           required=check.required, remaining=check.remaining)
            raise InsufficientCreditsError(check.required, check.remaining)

        execution_id = str(uuid.uuid4())
        with bind_run_context(execution_id, workflow_id=workflow_id, owner_id=owner_id):
            logger.info("Workflow run started", node_count=len(executor.nodes))
            await self.notifier.notify(owner_id, WORKFLOW_STARTED, build_run_data(
                workflow_id, workflow_name, execution_id, "running", input=input,
            ))

            result = await executor.execute(input, on_node_update)

            credits_used = calculate_workflow_cost(executor.nodes)
            deduction = await self.credit_ledger.deduct_credits(owner_id, credits_used)
            if not deduction.success:
                logger.warning("Credit deduction failed", error=deduction.error)

            status = "completed" if result.success else "failed"
            await self.notifier.notify(
                owner_id,
                WORKFLOW_COMPLETED if result.success else WORKFLOW_FAILED,
                build_run_data(workflow_id, workflow_name, execution_id, status,
                               output=result.output, error=result.error),
            )
            logger.info("Workflow run finished", status=status,
                        duration_ms=result.duration, credits_used=credits_used)

        return WorkflowRun(
            execution_id=execution_id,
            result=result,
            credits_used=credits_used,
            credits_remaining=deduction.remaining,
            workflow_id=workflow_id,
        )
