"""Logic node handler - filter, map, reduce, condition, transform, sort, slice.

Conditions use a deliberately small grammar::

    <leftPath> <op> <right>

``op`` is one of ``=== !== == != >= <= > < contains startsWith endsWith
exists empty``. A quoted right side is a string literal; anything else is
resolved as a path first and falls back to the literal text. A condition
without a recognised operator is the truthiness of the path itself.
"""

import functools
import math
import re
from typing import Any, Callable, Dict, List, Optional

from flowys.constants import COMMON_ARRAY_KEYS, LOGIC_NODE, LOGIC_OPERATIONS
from flowys.core.logging import get_logger
from flowys.services.parameter_resolver import (
    MISSING,
    get_nested_value,
    is_number,
    is_truthy,
    to_number,
)
from .base import ConfigValidation, NodeContext, NodeResult, error_message

logger = get_logger(__name__)

# Longest operators first so "===" is never read as "==" followed by "= x"
CONDITION_PATTERN = re.compile(
    r'^(\S+)\s+(===|!==|==|!=|>=|<=|>|<|contains|startsWith|endsWith|exists|empty)\s*(.*)$'
)

LEADING_INT_PATTERN = re.compile(r'^\s*([+-]?\d+)')


# =============================================================================
# VALUE HELPERS
# =============================================================================

def find_array_data(inputs: Any) -> Optional[List[Any]]:
    """Locate the list a logic operation should work on.

    Checks the common collection keys in priority order, then the first
    list-valued entry, then whether ``inputs`` is itself a list.
    """
    if isinstance(inputs, list):
        return inputs
    if not isinstance(inputs, dict):
        return None

    for key in COMMON_ARRAY_KEYS:
        if isinstance(inputs.get(key), list):
            return inputs[key]

    for value in inputs.values():
        if isinstance(value, list):
            return value

    return None


def _display(value: Any) -> str:
    """String coercion used by the text operators and concat."""
    if value is MISSING:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else _display(item) for item in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def _clean_number(value: float) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def loose_equals(a: Any, b: Any) -> bool:
    """``==`` semantics: numbers and numeric strings compare by value."""
    a = None if a is MISSING else a
    b = None if b is MISSING else b

    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool):
        a = 1 if a else 0
    if isinstance(b, bool):
        b = 1 if b else 0
    if is_number(a) and isinstance(b, str):
        return a == to_number(b)
    if isinstance(a, str) and is_number(b):
        return to_number(a) == b
    if isinstance(a, (dict, list)) or isinstance(b, (dict, list)):
        if isinstance(a, str) or isinstance(b, str):
            return _display(a) == _display(b)
        return a is b
    return a == b


def strict_equals(a: Any, b: Any) -> bool:
    """``===`` semantics: same kind of value and equal."""
    if a is MISSING or b is MISSING:
        return a is b
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if is_number(a) and is_number(b):
        return a == b
    if isinstance(a, (dict, list)) or isinstance(b, (dict, list)):
        return a is b
    return type(a) is type(b) and a == b


def _is_empty(value: Any) -> bool:
    if value is MISSING:
        return True
    return not is_truthy(value) or (isinstance(value, list) and len(value) == 0)


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": loose_equals,
    "===": strict_equals,
    "!=": lambda a, b: not loose_equals(a, b),
    "!==": lambda a, b: not strict_equals(a, b),
    ">": lambda a, b: to_number(_plain(a)) > to_number(_plain(b)),
    ">=": lambda a, b: to_number(_plain(a)) >= to_number(_plain(b)),
    "<": lambda a, b: to_number(_plain(a)) < to_number(_plain(b)),
    "<=": lambda a, b: to_number(_plain(a)) <= to_number(_plain(b)),
    "contains": lambda a, b: _display(b) in _display(a),
    "startsWith": lambda a, b: _display(a).startswith(_display(b)),
    "endsWith": lambda a, b: _display(a).endswith(_display(b)),
    "exists": lambda a, b: a is not MISSING and a is not None,
    "empty": lambda a, b: _is_empty(a),
}


def _plain(value: Any) -> Any:
    # A missing path compares as NaN, a stored None as 0
    return math.nan if value is MISSING else value


def evaluate_condition(condition: str, scope: Dict[str, Any]) -> bool:
    """Evaluate a ``<leftPath> <op> <right>`` condition against ``scope``."""
    match = CONDITION_PATTERN.match(condition.strip())
    if not match:
        value = get_nested_value(scope, condition.strip(), MISSING)
        return value is not MISSING and is_truthy(value)

    left_path, operator, right_raw = match.groups()
    left = get_nested_value(scope, left_path, MISSING)

    if right_raw.startswith("'") or right_raw.startswith('"'):
        right = right_raw[1:-1]
    else:
        resolved = get_nested_value(scope, right_raw, MISSING)
        right = right_raw if resolved is MISSING or resolved is None else resolved

    return OPERATORS[operator](left, right)


def _parse_int(text: str) -> Optional[int]:
    match = LEADING_INT_PATTERN.match(text or "")
    return int(match.group(1)) if match else None


def _sum(values: List[Any]) -> Any:
    total = 0.0
    for value in values:
        number = to_number(value)
        total += 0.0 if math.isnan(number) else number
    return _clean_number(total)


def _avg(values: List[Any]) -> Any:
    numbers = [v for v in values if is_number(v)]
    return _clean_number(sum(numbers) / len(numbers)) if numbers else 0


def _min(values: List[Any]) -> Any:
    numbers = [v for v in values if is_number(v)]
    return min(numbers) if numbers else None


def _max(values: List[Any]) -> Any:
    numbers = [v for v in values if is_number(v)]
    return max(numbers) if numbers else None


REDUCE_OPERATIONS: Dict[str, Callable[[List[Any]], Any]] = {
    "sum": _sum,
    "count": len,
    "avg": _avg,
    "min": _min,
    "max": _max,
    "concat": lambda values: "".join("" if v is None else _display(v) for v in values),
    "first": lambda values: values[0] if values else None,
    "last": lambda values: values[-1] if values else None,
}


def _sort_key_compare(direction: str) -> Callable[[Any, Any], int]:
    def compare(a: Any, b: Any) -> int:
        if is_number(a) and is_number(b):
            diff = (b - a) if direction == "desc" else (a - b)
            return (diff > 0) - (diff < 0)

        text_a = _display(a) if is_truthy(a) else ""
        text_b = _display(b) if is_truthy(b) else ""
        if direction == "desc":
            text_a, text_b = text_b, text_a
        key_a, key_b = (text_a.casefold(), text_a), (text_b.casefold(), text_b)
        return (key_a > key_b) - (key_a < key_b)

    return compare


# =============================================================================
# HANDLER
# =============================================================================

class LogicNodeHandler:
    """Dispatches on ``config.operation`` (default ``passthrough``)."""

    type = LOGIC_NODE

    async def execute(self, context: NodeContext) -> NodeResult:
        config = context.config
        operation = config.get("operation") or "passthrough"
        handler = {
            "filter": self._filter,
            "map": self._map,
            "reduce": self._reduce,
            "condition": self._condition,
            "transform": self._transform,
            "sort": self._sort,
            "slice": self._slice,
        }.get(operation, self._passthrough)

        try:
            return handler(context, config)
        except Exception as e:
            logger.error("Logic operation failed", node_id=context.node_id,
                         operation=operation, error=error_message(e))
            return NodeResult.fail(f"Logic error: {error_message(e)}")

    def _filter(self, context: NodeContext, config: Dict[str, Any]) -> NodeResult:
        data = find_array_data(context.inputs)
        if data is None:
            return NodeResult.fail(
                "Filter needs a list of items to work with. The previous node didn't output any "
                "array data. Check that your API or data source is returning a list."
            )

        condition = config.get("condition")
        if not condition:
            return NodeResult.fail(
                "Filter needs a condition to know what to keep. Click this node and add a "
                "condition like 'item.score > 80' in the settings."
            )

        filtered = [
            item for item in data
            if evaluate_condition(condition, {"item": item, **context.inputs})
        ]
        return NodeResult.ok({"data": filtered, "count": len(filtered)})

    def _map(self, context: NodeContext, config: Dict[str, Any]) -> NodeResult:
        data = find_array_data(context.inputs)
        if data is None:
            return NodeResult.fail(
                "Map needs a list of items to transform. The previous node didn't output any "
                "array data. Check that your API or data source is returning a list."
            )

        mappings = config.get("mappings")
        if not isinstance(mappings, dict):
            return NodeResult.ok({"data": data, "count": len(data)})

        mapped = []
        for index, item in enumerate(data):
            # Paths may use "item.x" or the item's own top-level keys
            item_scope = {"item": item, "index": index}
            if isinstance(item, dict):
                item_scope.update(item)

            row = {}
            for key, path in mappings.items():
                value = get_nested_value(item_scope, path, MISSING)
                if value is MISSING and path.startswith("item."):
                    value = get_nested_value(item, path[5:], MISSING)
                if value is MISSING and isinstance(item, dict):
                    value = item.get(path, MISSING)
                row[key] = None if value is MISSING else value
            mapped.append(row)

        return NodeResult.ok({"data": mapped, "count": len(mapped)})

    def _reduce(self, context: NodeContext, config: Dict[str, Any]) -> NodeResult:
        data = find_array_data(context.inputs)
        if data is None:
            return NodeResult.fail(
                "Reduce needs a list of items to combine. The previous node didn't output any "
                "array data. Check that your API or data source is returning a list."
            )

        expression = config.get("expression")
        if not expression:
            return NodeResult.fail(
                "Reduce needs an expression to know how to combine items. Click this node and add "
                "an expression like 'sum:score' or 'count' in the settings."
            )

        parts = expression.split(":")
        op = parts[0]
        field = parts[1] if len(parts) > 1 else ""
        values = [get_nested_value(item, field) for item in data] if field else list(data)

        reducer = REDUCE_OPERATIONS.get(op)
        if reducer is None:
            return NodeResult.fail(f"Unknown reduce operation: {op}")

        return NodeResult.ok({"result": reducer(values)})

    def _condition(self, context: NodeContext, config: Dict[str, Any]) -> NodeResult:
        condition = config.get("condition")
        if not condition:
            return NodeResult.fail(
                "Condition needs a rule to check. Click this node and add a condition like "
                "'data.status == \"active\"' in the settings."
            )

        result = evaluate_condition(condition, context.inputs)
        return NodeResult.ok({
            "result": result,
            "branch": "true" if result else "false",
            "data": context.inputs,
        })

    def _transform(self, context: NodeContext, config: Dict[str, Any]) -> NodeResult:
        mappings = config.get("mappings")
        if not isinstance(mappings, dict):
            return NodeResult.ok(dict(context.inputs))
        return NodeResult.ok({
            key: get_nested_value(context.inputs, path) for key, path in mappings.items()
        })

    def _passthrough(self, context: NodeContext, config: Dict[str, Any]) -> NodeResult:
        data = find_array_data(context.inputs)
        if data is not None:
            return NodeResult.ok({"data": data, "count": len(data), **context.inputs})
        return NodeResult.ok(dict(context.inputs))

    def _sort(self, context: NodeContext, config: Dict[str, Any]) -> NodeResult:
        data = find_array_data(context.inputs)
        if data is None:
            return NodeResult.fail(
                "Sort needs a list of items to sort. The previous node didn't output any array data."
            )

        expression = config.get("expression") or "asc"
        parts = expression.split(":")
        direction = parts[0]
        field = parts[1] if len(parts) > 1 else ""

        def sort_value(item: Any) -> Any:
            if field and (item is None or isinstance(item, (dict, list))):
                return get_nested_value(item, field)
            return item

        compare = _sort_key_compare(direction)
        ordered = sorted(data, key=functools.cmp_to_key(lambda a, b: compare(sort_value(a), sort_value(b))))
        return NodeResult.ok({"data": ordered, "count": len(ordered)})

    def _slice(self, context: NodeContext, config: Dict[str, Any]) -> NodeResult:
        data = find_array_data(context.inputs)
        if data is None:
            return NodeResult.fail(
                "Slice needs a list of items. The previous node didn't output any array data."
            )

        expression = config.get("expression") or "0:10"
        parts = expression.split(":")
        start = _parse_int(parts[0]) or 0
        end: Optional[int] = None
        if len(parts) > 1 and parts[1]:
            # An unparseable end bound selects nothing
            end = _parse_int(parts[1])
            if end is None:
                end = 0

        sliced = data[start:end]
        return NodeResult.ok({"data": sliced, "count": len(sliced)})

    def validate_config(self, config: Dict[str, Any]) -> ConfigValidation:
        operation = config.get("operation")
        if operation and operation not in LOGIC_OPERATIONS:
            return ConfigValidation.from_errors(
                [f"operation must be one of: {', '.join(LOGIC_OPERATIONS)}"]
            )
        return ConfigValidation(valid=True)
