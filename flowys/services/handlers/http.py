"""Api node handler - fetches data from an external HTTP API."""

from typing import Any, Dict, Optional

import httpx

from flowys.constants import API_NODE, API_TIMEOUT_SECONDS, BODY_METHODS, HTTP_METHODS, PLACEHOLDER_API_URL
from flowys.core.logging import get_logger
from flowys.services.parameter_resolver import get_nested_value, interpolate
from .base import ConfigValidation, NodeContext, NodeResult, error_message

logger = get_logger(__name__)

ERROR_SNIPPET_LENGTH = 200


def is_valid_http_url(url: str) -> bool:
    """Absolute http(s) URL with a host."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError, ValueError):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.host)


def shape_response(data: Any, response_mapping: Optional[Dict[str, str]]) -> Dict[str, Any]:
    """Turn a response body into node output.

    A mapping picks ``output_key -> json.path`` values out of the body.
    Without one, lists become ``{data, count}``, objects are spread and
    scalars are wrapped as ``{response}``.
    """
    if response_mapping and isinstance(data, (dict, list)):
        return {key: get_nested_value(data, path) for key, path in response_mapping.items()}
    if isinstance(data, list):
        return {"data": data, "count": len(data)}
    if isinstance(data, dict):
        return dict(data)
    return {"response": data}


class ApiNodeHandler:
    """Issues one HTTP request per execution with a fixed 30s timeout.

    URL, header values and body are interpolated against the node inputs;
    unresolved placeholders render as empty strings here.
    """

    type = API_NODE

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: float = API_TIMEOUT_SECONDS):
        self._transport = transport
        self._timeout = timeout

    async def execute(self, context: NodeContext) -> NodeResult:
        config = context.config
        inputs = context.inputs

        try:
            url = interpolate(str(config.get("url") or ""), inputs, keep_unresolved=False)
            if not url or url == PLACEHOLDER_API_URL:
                return NodeResult.fail(
                    "Please configure a valid API URL. Click on this node and update "
                    "the 'url' field with your API endpoint."
                )
            if not is_valid_http_url(url):
                return NodeResult.fail(
                    f'Invalid URL format: "{url}". Make sure the URL starts with http:// or https://'
                )

            method = str(config.get("method") or "GET").upper()
            headers = {
                key: interpolate(str(value), inputs, keep_unresolved=False)
                for key, value in (config.get("headers") or {}).items()
            }

            body = None
            if config.get("body") and method in BODY_METHODS:
                body = interpolate(str(config["body"]), inputs, keep_unresolved=False)
                if "Content-Type" not in headers:
                    headers["Content-Type"] = "application/json"

            logger.info("[Api] Executing", node_id=context.node_id, method=method, url=url)

            try:
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    response = await client.request(method, url, headers=headers, content=body)
            except httpx.TimeoutException:
                logger.error("Api request timed out", node_id=context.node_id, url=url)
                return NodeResult.fail(
                    "The API request timed out after 30 seconds. The server may be slow or unreachable."
                )

            if not response.is_success:
                snippet = response.text
                if len(snippet) > ERROR_SNIPPET_LENGTH:
                    snippet = snippet[:ERROR_SNIPPET_LENGTH] + "..."
                detail = f": {snippet}" if snippet else ""
                return NodeResult.fail(
                    f"API returned error {response.status_code} ({response.reason_phrase}){detail}. "
                    "Check the API URL and any required authentication."
                )

            if "application/json" in response.headers.get("content-type", ""):
                try:
                    data = response.json()
                except ValueError:
                    return NodeResult.fail(
                        "The API returned invalid JSON. Check that the API endpoint returns valid JSON data."
                    )
            else:
                data = response.text

            return NodeResult.ok(shape_response(data, config.get("responseMapping")))

        except httpx.TransportError as e:
            logger.error("Api connection failed", node_id=context.node_id, error=error_message(e))
            return NodeResult.fail(
                "Could not connect to the API. Check your internet connection and verify the API URL is correct."
            )
        except Exception as e:
            logger.error("Api request failed", node_id=context.node_id, error=error_message(e))
            return NodeResult.fail(f"API request failed: {error_message(e)}")

    def validate_config(self, config: Dict[str, Any]) -> ConfigValidation:
        errors = []
        if not config.get("url") or not isinstance(config.get("url"), str):
            errors.append("url is required and must be a string")
        if config.get("method") not in HTTP_METHODS:
            errors.append("method must be GET, POST, PUT, DELETE, or PATCH")
        return ConfigValidation.from_errors(errors)
