"""Node handlers package - one handler class per node type.

- input.py: declared entry fields with lenient coercion
- http.py: Api node (outbound HTTP with response shaping)
- ai.py: AI node (structured LLM call)
- logic.py: filter, map, reduce, condition, transform, sort, slice
- output.py: json, text and markdown formatting
- webhook.py: signed outbound webhook
- integration.py: third-party integration actions
"""

from .base import (
    ConfigValidation,
    NodeContext,
    NodeHandler,
    NodeResult,
)
from .ai import AiNodeHandler
from .http import ApiNodeHandler
from .input import InputNodeHandler
from .integration import IntegrationNodeHandler
from .logic import LogicNodeHandler
from .output import OutputNodeHandler
from .webhook import WebhookNodeHandler

__all__ = [
    'ConfigValidation',
    'NodeContext',
    'NodeHandler',
    'NodeResult',
    'AiNodeHandler',
    'ApiNodeHandler',
    'InputNodeHandler',
    'IntegrationNodeHandler',
    'LogicNodeHandler',
    'OutputNodeHandler',
    'WebhookNodeHandler',
]
