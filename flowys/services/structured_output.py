"""Structured LLM output: JSON extraction, repair, validation and bounded retry.

LLMs do not reliably honour "JSON only" instructions. This module is the
boundary that turns raw completions into validated dicts:

1. call the provider
2. strip markdown code fences
3. repair the JSON (trim to the outer span, close truncated structures)
4. parse and validate against the output schema
5. on failure, append a retry instruction tailored to the failure and retry

Authentication, permission and rate-limit errors are re-raised immediately
since another attempt cannot succeed.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from flowys.core.logging import get_logger
from flowys.services.parameter_resolver import is_number

logger = get_logger(__name__)

MAX_ATTEMPTS = 3

# Replies longer than this that still fail are reported as "too long"
LONG_RESPONSE_CHARS = 5000

FENCED_BLOCK_PATTERN = re.compile(r'```(?:json)?\s*([\s\S]*?)```')
OPENING_FENCE_PATTERN = re.compile(r'^```(?:json)?\s*')
TRAILING_COMMA_PATTERN = re.compile(r',\s*$')

AUTH_ERROR_MARKERS = ("401", "403", "429", "API key", "quota")
AUTH_ERROR_STATUSES = frozenset([401, 403, 429])

TRUNCATED_RETRY_INSTRUCTION = (
    "Your response was too long and got cut off. Please provide a SHORTER, COMPLETE JSON "
    "response. Use brief values (max 100 characters per string field). Remove unnecessary details."
)
TOO_LONG_ERROR = (
    "The AI response was too long and incomplete. To fix this: 1) Simplify your output schema "
    "(fewer fields), 2) Ask for shorter/summarized content in your prompt, 3) Process data in "
    "smaller batches."
)

PromptMessage = Dict[str, str]  # {"role": "system" | "user" | "assistant", "content": str}


@dataclass
class LLMConfig:
    model: str = ""
    temperature: float = 0.7
    max_tokens: int = 16384


@dataclass
class LLMResponse:
    content: str
    usage: Optional[Dict[str, int]] = None


class ChatProvider(Protocol):
    """A single chat-completion call. Schema handling beyond prompt and
    request hints is left to execute_prompt()."""

    name: str

    async def complete(self, messages: List[PromptMessage], config: LLMConfig,
                       schema: Optional[Dict[str, Any]] = None) -> LLMResponse:
        ...


# =============================================================================
# ERRORS
# =============================================================================

class StructuredOutputError(Exception):
    """The model's reply could not be turned into valid structured output."""


class TruncatedOutputError(StructuredOutputError):
    """The reply ended before the JSON document did."""


class InvalidJSONError(StructuredOutputError):
    """The reply is not parseable JSON for reasons other than truncation."""


class SchemaValidationError(StructuredOutputError):
    """Parsed JSON does not match the output schema."""


class MissingFieldError(SchemaValidationError):
    def __init__(self, field: str):
        super().__init__(f"Missing required field: {field}")
        self.field = field


def is_authoritative_error(error: BaseException) -> bool:
    """Auth, permission, rate-limit or quota failures reported by a provider."""
    status = getattr(error, "status_code", None)
    if status in AUTH_ERROR_STATUSES:
        return True
    message = str(error)
    return any(marker in message for marker in AUTH_ERROR_MARKERS)


# =============================================================================
# JSON EXTRACTION & REPAIR
# =============================================================================

def strip_code_fences(content: str) -> str:
    """Return the body of a ```json fenced block, or the content unchanged.

    A reply cut off before its closing fence still has the opening fence removed.
    """
    match = FENCED_BLOCK_PATTERN.search(content)
    if match:
        return match.group(1).strip()
    if content.startswith("```"):
        return OPENING_FENCE_PATTERN.sub("", content, count=1).strip()
    return content


def is_valid_json(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def complete_json(text: str) -> str:
    """Close a truncated JSON document.

    Scans with string/escape awareness, closes an open string, drops a
    trailing comma and appends the missing closers innermost first.
    """
    stack: List[str] = []
    in_string = False
    escaped = False

    for char in text:
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]" and stack and stack[-1] == char:
            stack.pop()

    if in_string:
        text += '"'
    text = TRAILING_COMMA_PATTERN.sub("", text)
    return text + "".join(reversed(stack))


def trim_to_json_span(content: str) -> str:
    """Drop prose before the first opener and after the matching last closer."""
    text = content.strip()

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if starts and min(starts) > 0:
        text = text[min(starts):]

    if text.startswith("{"):
        end = text.rfind("}")
        if end > 0:
            text = text[:end + 1]
    elif text.startswith("["):
        end = text.rfind("]")
        if end > 0:
            text = text[:end + 1]
    return text


def repair_json(content: str) -> str:
    """Trim to the outermost JSON span and complete it if it is truncated."""
    text = trim_to_json_span(content)
    if not is_valid_json(text):
        text = complete_json(text)
    return text


def parse_json_reply(content: str) -> Any:
    """Fence-strip, repair and parse a reply.

    A reply that only parses after closing structures was cut off; if it
    still fails once closed, it is reported as truncated rather than invalid.

    Raises:
        TruncatedOutputError: the document ends mid-structure
        InvalidJSONError: any other parse failure
    """
    text = trim_to_json_span(strip_code_fences(content))
    if is_valid_json(text):
        return json.loads(text)

    completed = complete_json(text)
    try:
        return json.loads(completed)
    except json.JSONDecodeError as e:
        if completed != text or e.pos >= len(text.rstrip()):
            raise TruncatedOutputError(f"Unexpected end of JSON input ({e.msg})") from e
        raise InvalidJSONError(f"{e.msg} at position {e.pos}") from e


_TYPE_CHECKS = {
    "string": (lambda v: isinstance(v, str), "a string"),
    "number": (is_number, "a number"),
    "boolean": (lambda v: isinstance(v, bool), "a boolean"),
    "array": (lambda v: isinstance(v, list), "an array"),
}


def validate_against_schema(data: Any, schema: Dict[str, Any]) -> None:
    """Check required fields and the primitive type of each declared property."""
    if not isinstance(data, dict):
        raise SchemaValidationError("Response must be an object")

    for field in schema.get("required") or []:
        if field not in data:
            raise MissingFieldError(field)

    for key, prop in (schema.get("properties") or {}).items():
        if key not in data:
            continue
        expected = prop.get("type") if isinstance(prop, dict) else None
        check = _TYPE_CHECKS.get(expected)
        if check and not check[0](data[key]):
            raise SchemaValidationError(f"Field {key} must be {check[1]}")


def parse_loose_reply(content: str) -> Dict[str, Any]:
    """Schema-less reply: a JSON object when the reply is one, else text."""
    text = content.strip()
    if (text.startswith("{") and text.endswith("}")) or (text.startswith("[") and text.endswith("]")):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
    return {"response": text, "text": text}


def retry_instruction(error: BaseException) -> str:
    if isinstance(error, TruncatedOutputError):
        return TRUNCATED_RETRY_INSTRUCTION
    if isinstance(error, MissingFieldError):
        return (f"Your response was missing required fields. {error}. "
                "Please include ALL required fields in your JSON response.")
    return (f"Your previous response was invalid JSON. Error: {error}. "
            "Please provide valid JSON only, no other text.")


# =============================================================================
# ENTRY POINT
# =============================================================================

async def execute_prompt(provider: ChatProvider, config: LLMConfig, messages: List[PromptMessage],
                         schema: Optional[Dict[str, Any]] = None,
                         max_attempts: int = MAX_ATTEMPTS) -> Dict[str, Any]:
    """Run a prompt and return a dict.

    Without a schema the reply is returned as parsed JSON when it is a JSON
    object, otherwise as ``{"response": text, "text": text}``. With a schema
    the reply must parse and validate within ``max_attempts`` calls. The
    caller's ``messages`` list is never modified.

    Raises:
        StructuredOutputError: retries exhausted (TruncatedOutputError when the
            replies were too long)
        Exception: provider auth/permission/rate-limit errors, unchanged
    """
    conversation = list(messages)

    if not schema:
        response = await provider.complete(conversation, config)
        return parse_loose_reply(response.content)

    last_error: Optional[BaseException] = None
    last_content = ""

    for attempt in range(max_attempts):
        try:
            response = await provider.complete(conversation, config, schema)
            last_content = response.content.strip()
            parsed = parse_json_reply(last_content)
            validate_against_schema(parsed, schema)
            if attempt:
                logger.info("Structured output recovered", provider=provider.name, attempt=attempt + 1)
            return parsed
        except StructuredOutputError as e:
            last_error = e
        except Exception as e:
            if is_authoritative_error(e):
                raise
            last_error = e

        logger.warning("Structured output attempt failed", provider=provider.name,
                       attempt=attempt + 1, max_attempts=max_attempts,
                       error_type=type(last_error).__name__, error=str(last_error))

        if attempt < max_attempts - 1:
            conversation.append({"role": "user", "content": retry_instruction(last_error)})

    if isinstance(last_error, TruncatedOutputError) or len(last_content) > LONG_RESPONSE_CHARS:
        raise TruncatedOutputError(TOO_LONG_ERROR) from last_error

    message = f"Failed to get valid JSON response after {max_attempts} attempts."
    if last_error is not None:
        message += f" Last error: {last_error}"
    raise StructuredOutputError(message) from last_error
