"""Output node handler - formats accumulated data as json, text or markdown."""

from typing import Any, Dict

from flowys.constants import OUTPUT_FORMATS, OUTPUT_NODE
from flowys.services.parameter_resolver import MISSING, get_nested_value, interpolate, stringify, to_json
from .base import ConfigValidation, NodeContext, NodeResult, error_message


class OutputNodeHandler:
    type = OUTPUT_NODE

    async def execute(self, context: NodeContext) -> NodeResult:
        config = context.config
        fmt = config.get("format") or "json"

        if not context.inputs:
            return NodeResult.ok({"result": None, "message": "No data to output", "format": fmt})

        try:
            if fmt == "json":
                output = self._format_json(context.inputs, config)
            elif fmt == "text":
                output = self._format_text(context.inputs, config)
            elif fmt == "markdown":
                output = self._format_markdown(context.inputs, config)
            else:
                output = {"result": context.inputs, "format": "json"}
        except Exception as e:
            return NodeResult.fail(f"Output error: {error_message(e)}")

        return NodeResult.ok(output)

    @staticmethod
    def _format_json(inputs: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
        fields = config.get("fields") or []
        if not fields:
            return {"result": inputs, "format": "json"}

        filtered = {}
        for field in fields:
            value = get_nested_value(inputs, field, MISSING)
            if value is not MISSING:
                filtered[field] = value
        return {"result": filtered, "format": "json"}

    @staticmethod
    def _format_text(inputs: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
        if config.get("template"):
            return {"result": interpolate(config["template"], inputs), "format": "text"}

        text = "\n".join(stringify(value) for value in inputs.values())
        return {"result": text, "format": "text"}

    @staticmethod
    def _format_markdown(inputs: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
        if config.get("template"):
            return {"result": interpolate(config["template"], inputs), "format": "markdown"}

        sections = []
        for key, value in inputs.items():
            if value is None or isinstance(value, (dict, list)):
                body = "```json\n" + to_json(value, indent=2) + "\n```"
            else:
                body = stringify(value)
            sections.append(f"## {key}\n\n{body}")
        return {"result": "\n\n".join(sections).strip(), "format": "markdown"}

    def validate_config(self, config: Dict[str, Any]) -> ConfigValidation:
        errors = []
        if config.get("format") and config["format"] not in OUTPUT_FORMATS:
            errors.append("format must be json, text, or markdown")
        return ConfigValidation.from_errors(errors)
