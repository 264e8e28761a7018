"""
Unit tests for the workflow executor
"""

import asyncio

import pytest

from flowys.services.execution import CANCELLED_ERROR, CycleError, TaskStatus, WorkflowExecutor
from flowys.services.handlers import ConfigValidation, NodeContext, NodeResult
from tests.fakes import StubHandler


def node(node_id, node_type="step", **config):
    return {"id": node_id, "type": node_type, "label": node_id, "config": config}


def edge(source, target, handle=None):
    data = {"id": f"{source}-{target}", "source": source, "target": target}
    if handle:
        data["sourceHandle"] = handle
    return data


@pytest.fixture
def step(node_executor):
    """Generic succeeding handler registered as 'step'"""
    handler = StubHandler("step", output={"value": 1})
    node_executor.register(handler)
    return handler


@pytest.mark.asyncio
async def test_order_respects_every_edge(node_executor, step):
    """Nodes run after all of their predecessors"""
    executor = WorkflowExecutor(
        [node("C"), node("B"), node("A"), node("D")],
        [edge("A", "B"), edge("B", "C"), edge("A", "C"), edge("D", "C")],
        node_executor,
    )

    order = executor.topological_order()

    for e in executor.edges:
        assert order.index(e.source) < order.index(e.target)
    assert order[-1] == "C"


@pytest.mark.asyncio
async def test_independent_nodes_keep_list_order(node_executor, step):
    """Repeated runs over the same graph produce the same order"""
    nodes = [node("x"), node("y"), node("z")]

    first = await WorkflowExecutor(nodes, [], node_executor).execute()
    second = await WorkflowExecutor(nodes, [], node_executor).execute()

    assert [log.node_id for log in first.logs] == ["x", "y", "z"]
    assert [log.node_id for log in second.logs] == ["x", "y", "z"]


@pytest.mark.asyncio
async def test_repeated_runs_of_a_graph_are_identical(node_executor):
    """Same graph and input give the same order, node outputs and final output"""
    nodes = [
        node("out", "output", format="json"),
        node("sort", "logic", operation="sort", expression="desc:score"),
        node("in", "input"),
        node("keep", "logic", operation="filter", condition="item.score > 50"),
        node("count", "logic", operation="reduce", expression="count"),
    ]
    edges = [edge("in", "keep"), edge("keep", "sort"), edge("sort", "out"), edge("in", "count")]
    run_input = {"data": [{"score": 60}, {"score": 10}, {"score": 95}]}

    first = await WorkflowExecutor(nodes, edges, node_executor).execute(run_input)
    second = await WorkflowExecutor(nodes, edges, node_executor).execute(run_input)

    assert first.success and second.success
    assert first.output == second.output
    assert [(log.node_id, log.output) for log in first.logs] == [(log.node_id, log.output) for log in second.logs]


@pytest.mark.asyncio
async def test_cycle_runs_nothing(node_executor, step):
    executor = WorkflowExecutor([node("A"), node("B")], [edge("A", "B"), edge("B", "A")], node_executor)

    with pytest.raises(CycleError):
        executor.topological_order()

    result = await executor.execute()

    assert not result.success
    assert result.error == "Workflow contains a cycle - cannot execute"
    assert result.logs == []
    assert result.error_analysis is None
    assert step.contexts == []


@pytest.mark.asyncio
async def test_structural_errors(node_executor, step):
    unknown = await WorkflowExecutor([node("A", "nope")], [], node_executor).execute()
    dangling = await WorkflowExecutor([node("A")], [edge("A", "ghost")], node_executor).execute()
    duplicate = await WorkflowExecutor([node("A"), node("A")], [], node_executor).execute()

    assert unknown.error == "Unknown node type: nope"
    assert dangling.error == "Edge references unknown node: ghost"
    assert duplicate.error == "Duplicate node id: A"


@pytest.mark.asyncio
async def test_failure_halts_and_diagnoses(node_executor, step):
    """A -> B -> C with B failing: C never runs and is reported as affected"""
    node_executor.register(StubHandler("boom", error="could not parse json"))
    executor = WorkflowExecutor(
        [node("A"), node("B", "boom"), node("C")],
        [edge("A", "B"), edge("B", "C")],
        node_executor,
    )

    result = await executor.execute()

    assert not result.success
    assert result.error == 'Node "B" failed: could not parse json'
    assert [(log.node_id, log.status) for log in result.logs] == [
        ("A", TaskStatus.COMPLETED),
        ("B", TaskStatus.FAILED),
    ]
    assert len(step.contexts) == 1

    analysis = result.error_analysis
    assert analysis.failed_node == "B"
    assert analysis.failed_node_type == "boom"
    assert analysis.affected_nodes == ["C"]
    assert "A" not in analysis.affected_nodes
    assert "The AI response wasn't in the expected JSON format" in analysis.possible_causes
    assert analysis.summary.endswith("This also prevented 1 other node(s) from running.")


@pytest.mark.asyncio
async def test_handler_exception_becomes_node_failure(node_executor):
    node_executor.register(StubHandler("explodes", raises=RuntimeError("kaboom")))

    result = await WorkflowExecutor([node("A", "explodes")], [], node_executor).execute()

    assert not result.success
    assert result.logs[0].error == "kaboom"
    assert result.error == 'Node "A" failed: kaboom'


@pytest.mark.asyncio
async def test_inputs_follow_edge_handles(node_executor):
    """Default edges spread the output, named handles pick one key"""
    node_executor.register(StubHandler("source", output={"items": [1, 2], "meta": {"n": 2}}))
    sink = StubHandler("sink", output={})
    node_executor.register(sink)

    executor = WorkflowExecutor(
        [node("S", "source"), node("T1", "sink"), node("T2", "sink"), node("T3", "sink")],
        [edge("S", "T1"), edge("S", "T2", handle="items"), edge("S", "T3", handle="absent")],
        node_executor,
    )
    await executor.execute()

    inputs = {context.node_id: context.inputs for context in sink.contexts}
    assert inputs["T1"] == {"items": [1, 2], "meta": {"n": 2}}
    assert inputs["T2"] == {"items": [1, 2]}
    assert inputs["T3"] == {"absent": {"items": [1, 2], "meta": {"n": 2}}}


@pytest.mark.asyncio
async def test_end_to_end_with_builtin_handlers(node_executor):
    """input -> logic filter -> output produces the output node's result"""
    nodes = [
        node("in", "input"),
        node("filter", "logic", operation="filter", condition="item.score > 80"),
        node("out", "output", format="json"),
    ]
    executor = WorkflowExecutor(nodes, [edge("in", "filter"), edge("filter", "out")], node_executor)

    result = await executor.execute({"data": [{"score": 90}, {"score": 10}]})

    assert result.success
    assert result.output == {"result": {"data": [{"score": 90}], "count": 1}, "format": "json"}
    assert [log.status for log in result.logs] == [TaskStatus.COMPLETED] * 3
    assert result.logs[0].input == {"data": [{"score": 90}, {"score": 10}]}


@pytest.mark.asyncio
async def test_final_output_is_last_node_without_output_nodes(node_executor, step):
    result = await WorkflowExecutor([node("A"), node("B")], [edge("A", "B")], node_executor).execute()

    assert result.output == {"value": 1}


@pytest.mark.asyncio
async def test_global_context_accumulates(node_executor):
    node_executor.register(StubHandler("first", output={"token": "abc"}))
    reader = StubHandler("reader", output={})
    node_executor.register(reader)

    await WorkflowExecutor(
        [node("A", "first"), node("B", "reader")], [], node_executor,
    ).execute({"runId": 7})

    assert reader.contexts[0].global_context == {"runId": 7, "token": "abc"}
    assert reader.contexts[0].inputs == {}


@pytest.mark.asyncio
async def test_callbacks_see_every_transition(node_executor, step):
    """running then completed for each node; async callbacks are awaited"""
    seen = []

    async def on_update(log, logs):
        seen.append((log.node_id, log.status.value, len(logs)))

    await WorkflowExecutor([node("A"), node("B")], [edge("A", "B")], node_executor).execute(
        on_node_update=on_update,
    )

    assert seen == [
        ("A", "running", 1),
        ("A", "completed", 1),
        ("B", "running", 2),
        ("B", "completed", 2),
    ]


@pytest.mark.asyncio
async def test_callback_errors_do_not_stop_the_run(node_executor, step):
    def broken(log, logs):
        raise RuntimeError("listener crashed")

    result = await WorkflowExecutor([node("A"), node("B")], [], node_executor).execute(on_node_update=broken)

    assert result.success
    assert len(result.logs) == 2


@pytest.mark.asyncio
async def test_cancel_between_nodes(node_executor, step):
    executor = WorkflowExecutor([node("A"), node("B")], [edge("A", "B")], node_executor)

    def cancel_after_first(log, logs):
        if log.status == TaskStatus.COMPLETED:
            executor.cancel()

    result = await executor.execute(on_node_update=cancel_after_first)

    assert not result.success
    assert result.error == CANCELLED_ERROR
    assert [log.node_id for log in result.logs] == ["A"]
    assert len(step.contexts) == 1


class SlowHandler:
    type = "slow"

    def __init__(self):
        self.started = asyncio.Event()

    async def execute(self, context: NodeContext) -> NodeResult:
        self.started.set()
        await asyncio.sleep(30)
        return NodeResult.ok({})

    def validate_config(self, config):
        return ConfigValidation(valid=True)


@pytest.mark.asyncio
async def test_task_cancellation_marks_running_node(node_executor):
    """Cancelling the run task reports the in-flight node as cancelled"""
    slow = SlowHandler()
    node_executor.register(slow)
    executor = WorkflowExecutor([node("A", "slow")], [], node_executor)

    task = asyncio.create_task(executor.execute())
    await asyncio.wait_for(slow.started.wait(), timeout=5)
    task.cancel()
    result = await task

    assert not result.success
    assert result.error == CANCELLED_ERROR
    assert result.logs[0].status == TaskStatus.CANCELLED
    assert result.logs[0].error == CANCELLED_ERROR


@pytest.mark.asyncio
async def test_editor_shaped_nodes_are_accepted(node_executor, step):
    """Label and config may arrive under data"""
    executor = WorkflowExecutor(
        [{"id": "A", "type": "step", "position": {"x": 0, "y": 0}, "data": {"label": "Fetch", "config": {"k": 1}}}],
        [],
        node_executor,
    )

    result = await executor.execute()

    assert result.logs[0].node_name == "Fetch"
    assert step.contexts[0].config == {"k": 1}
