"""Centralized constants for node types, metering and handler defaults.

Single source of truth for node type names so the registry, the metering
table and the node catalogue never drift apart.
"""

from typing import Dict, FrozenSet, List, Tuple

# =============================================================================
# NODE TYPES
# =============================================================================

INPUT_NODE = 'input'
API_NODE = 'api'
AI_NODE = 'ai'
LOGIC_NODE = 'logic'
OUTPUT_NODE = 'output'
WEBHOOK_NODE = 'webhook'
INTEGRATION_NODE = 'integration'

# =============================================================================
# METERING
# =============================================================================

CREDIT_COSTS: Dict[str, int] = {
    INPUT_NODE: 0,
    OUTPUT_NODE: 0,
    LOGIC_NODE: 1,
    API_NODE: 1,
    AI_NODE: 10,
    WEBHOOK_NODE: 1,
    INTEGRATION_NODE: 1,
}

DEFAULT_CREDIT_COST = 1

# =============================================================================
# HANDLER DEFAULTS
# =============================================================================

# Sample URL shipped in new Api nodes; executing it unchanged is a config error
PLACEHOLDER_API_URL = "https://api.example.com/data"

API_TIMEOUT_SECONDS = 30.0
WEBHOOK_DEFAULT_TIMEOUT_MS = 30000

HTTP_METHODS: Tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH")
BODY_METHODS: FrozenSet[str] = frozenset(["POST", "PUT", "PATCH"])

WEBHOOK_USER_AGENT = "Flowys-Workflow/1.0"
NOTIFIER_USER_AGENT = "Flowys-Webhook/1.0"

# Priority order used by logic operations to find the list they work on
COMMON_ARRAY_KEYS: Tuple[str, ...] = (
    "data", "items", "results", "list", "records", "rows", "caregivers", "users", "entries",
)

LOGIC_OPERATIONS: Tuple[str, ...] = (
    "filter", "map", "reduce", "condition", "transform", "passthrough", "sort", "slice",
)

OUTPUT_FORMATS: Tuple[str, ...] = ("json", "text", "markdown")

AI_PROVIDERS: Tuple[str, ...] = ("openai", "anthropic")
AI_DEFAULT_TEMPERATURE = 0.7
AI_DEFAULT_MAX_TOKENS = 16384

# =============================================================================
# NODE CATALOGUE
# =============================================================================

NODE_TYPE_DEFINITIONS: List[Dict] = [
    {
        "type": INPUT_NODE,
        "name": "Input",
        "description": "Accepts input data for the workflow",
        "configSchema": {
            "fields": {
                "type": "array",
                "items": {
                    "name": "string",
                    "type": {"enum": ["string", "number", "boolean", "json"]},
                    "required": "boolean",
                    "default": "any",
                },
            },
        },
    },
    {
        "type": API_NODE,
        "name": "API Fetch",
        "description": "Fetches data from external APIs",
        "configSchema": {
            "url": "string",
            "method": {"enum": list(HTTP_METHODS)},
            "headers": "object",
            "body": "string",
            "responseMapping": "object",
        },
    },
    {
        "type": AI_NODE,
        "name": "AI / LLM",
        "description": "Executes AI prompts using LLM providers",
        "configSchema": {
            "provider": {"enum": list(AI_PROVIDERS)},
            "model": "string",
            "systemPrompt": "string",
            "userPromptTemplate": "string",
            "temperature": "number",
            "maxTokens": "number",
            "outputSchema": "object",
        },
    },
    {
        "type": LOGIC_NODE,
        "name": "Logic / Filter",
        "description": "Applies logic operations to data",
        "configSchema": {
            "operation": {"enum": list(LOGIC_OPERATIONS)},
            "condition": "string",
            "expression": "string",
            "mappings": "object",
        },
    },
    {
        "type": OUTPUT_NODE,
        "name": "Output",
        "description": "Formats and returns the workflow result",
        "configSchema": {
            "format": {"enum": list(OUTPUT_FORMATS)},
            "template": "string",
            "fields": {"type": "array", "items": "string"},
        },
    },
    {
        "type": WEBHOOK_NODE,
        "name": "Webhook",
        "description": "Sends data to an external URL, optionally signed",
        "configSchema": {
            "url": "string",
            "method": {"enum": list(HTTP_METHODS)},
            "headers": "object",
            "headerMappings": "object",
            "payloadTemplate": "object",
            "secret": "string",
            "timeout": "number",
            "continueOnError": "boolean",
        },
    },
    {
        "type": INTEGRATION_NODE,
        "name": "Integration",
        "description": "Runs an action on a connected third-party service",
        "configSchema": {
            "connectionId": "string",
            "integrationId": "string",
            "actionId": "string",
            "input": "object",
        },
    },
]
