"""Rule-based failure diagnosis.

Given the failed node, its error text and the graph, produce an
``ErrorAnalysis`` with likely causes, suggested fixes and the labels of
every downstream node that never ran. Advisory only: it never changes the
outcome of a run.
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from flowys.constants import AI_NODE, API_NODE, LOGIC_NODE
from flowys.models.workflow import Node
from .models import ErrorAnalysis


@dataclass(frozen=True)
class DiagnosisRule:
    """Keywords tested as substrings of the lowercased error text."""
    keywords: Tuple[str, ...]
    cause: str
    fixes: Tuple[str, ...]


# Checked in order; every matching rule contributes.
ERROR_RULES: Tuple[DiagnosisRule, ...] = (
    DiagnosisRule(
        keywords=("array", "list"),
        cause="The previous node didn't return data in the expected format (array/list)",
        fixes=(
            "Check the output of the previous node - click on it to see what data it produced",
            "If using an API node, verify the API returns an array of items",
        ),
    ),
    DiagnosisRule(
        keywords=("undefined", "null", "missing"),
        cause="Required data is missing from the input",
        fixes=(
            "Make sure all required fields are being passed from previous nodes",
            "Check if the field names match exactly (including capitalization)",
        ),
    ),
    DiagnosisRule(
        keywords=("api", "fetch", "network"),
        cause="Unable to connect to an external service or API",
        fixes=(
            "Check your internet connection",
            "Verify the API URL is correct and the service is running",
            "Check if any API keys are required and properly configured",
        ),
    ),
    DiagnosisRule(
        keywords=("ai", "model", "token"),
        cause="Issue with the AI model configuration or response",
        fixes=(
            "Try simplifying your prompt or reducing the expected output size",
            "Check that your API key is valid and has sufficient credits",
            "Try using a different model (e.g., gpt-4o-mini for faster, cheaper responses)",
        ),
    ),
    DiagnosisRule(
        keywords=("json", "parse"),
        cause="The AI response wasn't in the expected JSON format",
        fixes=(
            "Simplify your output schema to reduce complexity",
            "Increase the max tokens setting to prevent cut-off responses",
            "Add clearer instructions in your prompt about the expected format",
        ),
    ),
    DiagnosisRule(
        keywords=("config", "setting", "mapping"),
        cause="The node is not properly configured",
        fixes=(
            "Click on the node to review and update its settings",
            "Make sure all required fields are filled in",
        ),
    ),
    DiagnosisRule(
        keywords=("condition",),
        cause="The filter/condition expression may be incorrect",
        fixes=(
            "Check the condition syntax - use format like 'item.score > 80'",
            "Make sure the field names in your condition exist in the data",
        ),
    ),
)

# node type -> (cause used only when nothing else matched, fixes always added)
NODE_TYPE_RULES: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    API_NODE: (
        "The API request may have failed or returned unexpected data",
        (
            "Test the API endpoint separately to verify it works",
            "Check the API node's URL, method, and headers configuration",
        ),
    ),
    AI_NODE: (
        "The AI model may have encountered an issue processing your request",
        (
            "Review your prompt template and make it clearer",
            "Check that variable placeholders like {{data}} match available inputs",
        ),
    ),
    LOGIC_NODE: (
        "The data transformation or filtering logic encountered an issue",
        (
            "Verify the input data structure matches what the operation expects",
            "For filter operations, ensure the condition references valid fields",
        ),
    ),
}

NO_INPUT_CAUSE = "This node received no input data from previous nodes"
NO_INPUT_FIX = "Make sure this node is connected to a previous node that outputs data"

DEFAULT_CAUSE = "An unexpected error occurred during execution"
DEFAULT_FIXES = (
    "Review the node configuration by clicking on it",
    "Check the output of previous nodes for unexpected data",
    "Try running the workflow again - some errors are temporary",
)


def find_affected_nodes(start_id: str, adjacency: Mapping[str, Sequence[str]],
                        node_map: Mapping[str, Node]) -> List[str]:
    """Labels of every node reachable from ``start_id``, breadth-first."""
    affected: List[str] = []
    visited = set()
    queue = deque([start_id])

    while queue:
        node_id = queue.popleft()
        for neighbor in adjacency.get(node_id, ()):
            if neighbor in visited:
                continue
            visited.add(neighbor)
            node = node_map.get(neighbor)
            if node is not None:
                affected.append(node.label)
                queue.append(neighbor)

    return affected


def analyze_error(failed_node: Node, error: str, adjacency: Mapping[str, Sequence[str]],
                  node_map: Mapping[str, Node], node_inputs: Dict[str, Any]) -> ErrorAnalysis:
    causes: List[str] = []
    fixes: List[str] = []
    affected = find_affected_nodes(failed_node.id, adjacency, node_map)

    error_lower = error.lower()
    for rule in ERROR_RULES:
        if any(keyword in error_lower for keyword in rule.keywords):
            causes.append(rule.cause)
            fixes.extend(rule.fixes)

    type_rule = NODE_TYPE_RULES.get(failed_node.type)
    if type_rule:
        fallback_cause, type_fixes = type_rule
        if not causes:
            causes.append(fallback_cause)
        fixes.extend(type_fixes)

    if not node_inputs:
        causes.insert(0, NO_INPUT_CAUSE)
        fixes.insert(0, NO_INPUT_FIX)

    if not causes:
        causes.append(DEFAULT_CAUSE)
    if not fixes:
        fixes.extend(DEFAULT_FIXES)

    summary = f'The "{failed_node.label}" node ({failed_node.type}) failed to execute. '
    if affected:
        summary += f"This also prevented {len(affected)} other node(s) from running."

    return ErrorAnalysis(
        summary=summary,
        failed_node=failed_node.label,
        failed_node_type=failed_node.type,
        possible_causes=causes,
        suggested_fixes=fixes,
        affected_nodes=affected,
    )
