"""
Unit tests for the Input and Output nodes
"""

import pytest

from flowys.services.handlers import InputNodeHandler, NodeContext, OutputNodeHandler


@pytest.mark.asyncio
async def test_input_coerces_declared_fields():
    """Number fields parse numeric strings"""
    context = NodeContext(node_id="in", inputs={"x": "42"},
                          config={"fields": [{"name": "x", "type": "number"}]})

    result = await InputNodeHandler().execute(context)

    assert result.success
    assert result.output == {"x": 42}


@pytest.mark.asyncio
async def test_input_defaults_and_lenient_conversion():
    """Blank values take defaults, unconvertible values are kept"""
    fields = [
        {"name": "name", "type": "string", "default": "anon"},
        {"name": "active", "type": "boolean"},
        {"name": "meta", "type": "json"},
        {"name": "count", "type": "number"},
    ]
    context = NodeContext(node_id="in", inputs={"active": "yes", "meta": '{"a": 1}', "count": ""},
                          config={"fields": fields})

    result = await InputNodeHandler().execute(context)

    assert result.output == {"name": "anon", "active": "yes", "meta": {"a": 1}, "count": 0}


@pytest.mark.asyncio
async def test_input_without_fields_passes_through():
    result = await InputNodeHandler().execute(NodeContext(node_id="in", inputs={"q": 1}))

    assert result.output == {"q": 1}


def test_input_validate_requires_field_list():
    assert not InputNodeHandler().validate_config({}).valid
    assert InputNodeHandler().validate_config({"fields": []}).valid


@pytest.mark.asyncio
async def test_output_without_inputs():
    result = await OutputNodeHandler().execute(NodeContext(node_id="out", config={"format": "text"}))

    assert result.output == {"result": None, "message": "No data to output", "format": "text"}


@pytest.mark.asyncio
async def test_output_json_field_selection():
    """Only listed paths are kept"""
    context = NodeContext(node_id="out", inputs={"a": {"b": 1}, "c": 2},
                          config={"format": "json", "fields": ["a.b", "missing"]})

    result = await OutputNodeHandler().execute(context)

    assert result.output == {"result": {"a.b": 1}, "format": "json"}


@pytest.mark.asyncio
async def test_output_text_template():
    context = NodeContext(node_id="out", inputs={"name": "Ada", "n": 3},
                          config={"format": "text", "template": "{{name}} has {{n}}"})

    result = await OutputNodeHandler().execute(context)

    assert result.output == {"result": "Ada has 3", "format": "text"}


@pytest.mark.asyncio
async def test_output_markdown_sections():
    """Each input key becomes a heading"""
    context = NodeContext(node_id="out", inputs={"title": "Hi", "data": [1]},
                          config={"format": "markdown"})

    result = await OutputNodeHandler().execute(context)

    assert result.output["format"] == "markdown"
    assert result.output["result"] == "## title\n\nHi\n\n## data\n\n```json\n[\n  1\n]\n```"


def test_output_validate_format():
    result = OutputNodeHandler().validate_config({"format": "xml"})

    assert result.errors == ["format must be json, text, or markdown"]
