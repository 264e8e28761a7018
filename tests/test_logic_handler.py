"""
Unit tests for the Logic node
"""

import pytest

from flowys.services.handlers import LogicNodeHandler, NodeContext
from flowys.services.handlers.logic import evaluate_condition, find_array_data


@pytest.fixture
def handler():
    return LogicNodeHandler()


async def run(handler, config, inputs):
    return await handler.execute(NodeContext(node_id="logic", inputs=inputs, config=config))


@pytest.mark.asyncio
async def test_filter_keeps_matching_items(handler):
    """item.score > 80 keeps only high scores"""
    result = await run(handler, {"operation": "filter", "condition": "item.score > 80"},
                       {"data": [{"score": 90}, {"score": 10}]})

    assert result.success
    assert result.output == {"data": [{"score": 90}], "count": 1}


@pytest.mark.asyncio
async def test_filter_without_array_fails(handler):
    """Filter needs list input"""
    result = await run(handler, {"operation": "filter", "condition": "item.x > 1"}, {"value": 3})

    assert not result.success
    assert result.error.startswith("Filter needs a list of items to work with")


@pytest.mark.asyncio
async def test_filter_without_condition_fails(handler):
    result = await run(handler, {"operation": "filter"}, {"data": [1, 2]})

    assert not result.success
    assert "condition" in result.error


@pytest.mark.asyncio
async def test_reduce_sum(handler):
    """sum:amount adds a field across items"""
    result = await run(handler, {"operation": "reduce", "expression": "sum:amount"},
                       {"items": [{"amount": 3}, {"amount": 4}]})

    assert result.output == {"result": 7}


@pytest.mark.asyncio
async def test_reduce_count_and_unknown_operation(handler):
    count = await run(handler, {"operation": "reduce", "expression": "count"}, {"data": [1, 2, 3]})
    unknown = await run(handler, {"operation": "reduce", "expression": "median:x"}, {"data": [1]})

    assert count.output == {"result": 3}
    assert not unknown.success
    assert unknown.error == "Unknown reduce operation: median"


@pytest.mark.asyncio
async def test_reduce_min_without_numbers(handler):
    """min over non-numeric values has no result"""
    result = await run(handler, {"operation": "reduce", "expression": "min"}, {"data": ["a", "b"]})

    assert result.output == {"result": None}


@pytest.mark.asyncio
async def test_map_picks_fields(handler):
    result = await run(
        handler,
        {"operation": "map", "mappings": {"who": "item.name", "n": "index"}},
        {"data": [{"name": "a"}, {"name": "b"}]},
    )

    assert result.output == {"data": [{"who": "a", "n": 0}, {"who": "b", "n": 1}], "count": 2}


@pytest.mark.asyncio
async def test_condition_selects_branch(handler):
    """condition reports the branch taken"""
    inputs = {"status": "active"}
    result = await run(handler, {"operation": "condition", "condition": "status == 'active'"}, inputs)

    assert result.output == {"result": True, "branch": "true", "data": inputs}


@pytest.mark.asyncio
async def test_transform_and_passthrough(handler):
    transform = await run(handler, {"operation": "transform", "mappings": {"city": "address.city"}},
                          {"address": {"city": "Oslo"}})
    passthrough = await run(handler, {}, {"rows": [1, 2]})

    assert transform.output == {"city": "Oslo"}
    assert passthrough.output == {"data": [1, 2], "count": 2, "rows": [1, 2]}


@pytest.mark.asyncio
async def test_empty_mapping_table_maps_to_empty_rows(handler):
    """{} is a mapping table with no fields, not a missing one"""
    mapped = await run(handler, {"operation": "map", "mappings": {}}, {"data": [{"a": 1}, {"a": 2}]})
    transformed = await run(handler, {"operation": "transform", "mappings": {}}, {"a": 1})
    unmapped = await run(handler, {"operation": "map"}, {"data": [{"a": 1}]})

    assert mapped.output == {"data": [{}, {}], "count": 2}
    assert transformed.output == {}
    assert unmapped.output == {"data": [{"a": 1}], "count": 1}


@pytest.mark.asyncio
async def test_sort_desc_by_field(handler):
    result = await run(handler, {"operation": "sort", "expression": "desc:score"},
                       {"data": [{"score": 1}, {"score": 3}, {"score": 2}]})

    assert [item["score"] for item in result.output["data"]] == [3, 2, 1]


@pytest.mark.asyncio
async def test_slice_bounds(handler):
    data = {"data": list(range(20))}
    default = await run(handler, {"operation": "slice"}, data)
    open_end = await run(handler, {"operation": "slice", "expression": "15:"}, data)

    assert default.output["data"] == list(range(10))
    assert open_end.output == {"data": [15, 16, 17, 18, 19], "count": 5}


def test_condition_operators():
    """Loose and strict equality differ on numeric strings"""
    scope = {"score": 5, "name": "flowys", "tags": []}

    assert evaluate_condition("score == '5'", scope)
    assert not evaluate_condition("score === '5'", scope)
    assert evaluate_condition("name startsWith flo", scope)
    assert evaluate_condition("name contains 'ow'", scope)
    assert evaluate_condition("tags empty", scope)
    assert not evaluate_condition("missing exists", scope)
    assert evaluate_condition("score", scope)


def test_find_array_data_priority():
    """Known collection keys win over other list values"""
    assert find_array_data({"other": [1], "items": [2]}) == [2]
    assert find_array_data({"other": [1]}) == [1]
    assert find_array_data({"x": 1}) is None


def test_validate_operation():
    result = LogicNodeHandler().validate_config({"operation": "explode"})

    assert not result.valid
    assert result.errors[0].startswith("operation must be one of:")
