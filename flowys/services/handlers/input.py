"""Input node handler - declares and coerces the workflow's entry fields."""

import json
from typing import Any, Dict, Tuple

from flowys.constants import INPUT_NODE
from flowys.core.logging import get_logger
from flowys.services.parameter_resolver import stringify, to_number
from .base import ConfigValidation, NodeContext, NodeResult

logger = get_logger(__name__)

_TYPE_DEFAULTS: Dict[str, Any] = {
    "string": "",
    "number": 0,
    "boolean": False,
}


class ConversionError(ValueError):
    """A provided value cannot be coerced to its declared field type."""


def default_for_type(field_type: str) -> Any:
    if field_type == "json":
        return {}
    return _TYPE_DEFAULTS.get(field_type, "")


def convert_value(value: Any, field_type: str) -> Any:
    """Coerce ``value`` to ``field_type``.

    Raises:
        ConversionError: when the value does not fit the declared type
    """
    if field_type == "string":
        return value if isinstance(value, str) else stringify(value)

    if field_type == "number":
        number = to_number(value)
        if number != number:  # NaN
            raise ConversionError("Cannot convert to number")
        return int(number) if number.is_integer() else number

    if field_type == "boolean":
        if isinstance(value, bool):
            return value
        if value == "true":
            return True
        if value == "false":
            return False
        raise ConversionError("Cannot convert to boolean")

    if field_type == "json":
        if isinstance(value, (dict, list)):
            return value
        try:
            return json.loads(value if isinstance(value, str) else stringify(value))
        except json.JSONDecodeError as e:
            raise ConversionError("Invalid JSON") from e

    return value


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


class InputNodeHandler:
    """Builds the workflow's entry payload from declared fields.

    With no declared fields the inputs pass through unchanged. Coercion is
    lenient: a value that cannot be converted is kept as provided and a
    warning is logged.
    """

    type = INPUT_NODE

    async def execute(self, context: NodeContext) -> NodeResult:
        fields = context.config.get("fields") or []
        if not fields:
            return NodeResult.ok(dict(context.inputs))

        output: Dict[str, Any] = {}
        for field in fields:
            name = field.get("name")
            field_type = field.get("type", "string")
            value = context.inputs.get(name)

            if _is_blank(value):
                output[name] = field["default"] if "default" in field else default_for_type(field_type)
                continue

            converted, error = self._try_convert(value, field_type)
            if error:
                logger.warning("Input field conversion warning", node_id=context.node_id,
                               field=name, error=error)
                output[name] = value
            else:
                output[name] = converted

        return NodeResult.ok(output)

    @staticmethod
    def _try_convert(value: Any, field_type: str) -> Tuple[Any, str]:
        try:
            return convert_value(value, field_type), ""
        except ConversionError as e:
            return None, str(e)

    def validate_config(self, config: Dict[str, Any]) -> ConfigValidation:
        errors = []
        if not isinstance(config.get("fields"), list):
            errors.append("fields must be an array")
        return ConfigValidation.from_errors(errors)
