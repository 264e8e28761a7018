"""Parameter Resolver - dotted path lookup and {{path}} template interpolation.

Every handler reads upstream data through these helpers so that path
syntax and value rendering are identical across node types:

    >>> interpolate("Hello {{user.name}}", {"user": {"name": "Ada"}})
    'Hello Ada'
    >>> interpolate("{{missing}}", {})
    '{{missing}}'
    >>> interpolate("{{missing}}", {}, keep_unresolved=False)
    ''
"""

import json
import math
import re
from typing import Any, Dict, Optional

# {{identifier(.identifier)*}}
TEMPLATE_PATTERN = re.compile(r'\{\{(\w+(?:\.\w+)*)\}\}')

# Sentinel separating "path not found" from a stored None
MISSING = object()


def get_nested_value(data: Any, field_path: str, default: Any = None) -> Any:
    """Walk a dot-separated path through nested dicts and lists.

    Numeric segments index into lists. Lookup stops and returns ``default``
    as soon as a missing key or a non-container value is hit; it never raises.

    Examples:
        >>> get_nested_value({"result": {"status": "ok"}}, "result.status")
        'ok'
        >>> get_nested_value({"items": [{"name": "a"}]}, "items.0.name")
        'a'
    """
    if not field_path:
        return default

    current = data
    for part in field_path.split('.'):
        if isinstance(current, dict):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, (list, tuple)):
            if not part.isdigit() or int(part) >= len(current):
                return default
            current = current[int(part)]
        else:
            return default

    return current


def has_path(data: Any, field_path: str) -> bool:
    """True when the path resolves, even to None."""
    return get_nested_value(data, field_path, MISSING) is not MISSING


def to_json(value: Any, indent: Optional[int] = None) -> str:
    """Serialize like a browser JSON.stringify (compact unless indented)."""
    if indent is None:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return json.dumps(value, indent=indent, ensure_ascii=False, default=str)


def stringify(value: Any) -> str:
    """Render a value for template output.

    Containers become compact JSON, None becomes ``null``, booleans are
    lowercase and integral floats lose their ``.0``.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (dict, list, tuple)):
        return to_json(value)
    return str(value)


def interpolate(template: str, scope: Dict[str, Any], keep_unresolved: bool = True) -> str:
    """Replace every {{path}} in ``template`` with the value found in ``scope``.

    Unresolved paths are left as the literal placeholder by default. The Api
    node renders them as an empty string instead (``keep_unresolved=False``).
    """
    def replace(match: re.Match) -> str:
        path = match.group(1)
        value = get_nested_value(scope, path, MISSING)
        if value is MISSING:
            return match.group(0) if keep_unresolved else ""
        return stringify(value)

    return TEMPLATE_PATTERN.sub(replace, template)


def is_truthy(value: Any) -> bool:
    """Loose truthiness: empty dicts are truthy, NaN is falsy."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return not (value == 0 or (isinstance(value, float) and math.isnan(value)))
    if isinstance(value, str):
        return value != ""
    return True


def to_number(value: Any) -> float:
    """Numeric coercion used by comparisons. Unparseable values become NaN."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        return 0.0
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0.0
        if "_" in text:
            return math.nan
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def is_number(value: Any) -> bool:
    """True for real numbers, excluding booleans."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)
