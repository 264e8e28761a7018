"""Webhook node handler - sends workflow data to an external URL."""

import json
import time
from typing import Any, Dict, Optional

import httpx

from flowys.constants import HTTP_METHODS, WEBHOOK_DEFAULT_TIMEOUT_MS, WEBHOOK_NODE, WEBHOOK_USER_AGENT
from flowys.core.encryption import generate_webhook_signature
from flowys.core.logging import get_logger
from flowys.services.parameter_resolver import MISSING, get_nested_value, interpolate, stringify, to_json
from .base import ConfigValidation, NodeContext, NodeResult, error_message, utc_now_iso
from .http import is_valid_http_url

logger = get_logger(__name__)


class WebhookNodeHandler:
    """Outbound webhook call.

    The payload is either ``payloadTemplate`` interpolated against inputs and
    global context, or the node inputs plus a ``_meta`` block. When ``secret``
    is set the exact body bytes are signed into ``X-Webhook-Signature``. With
    ``continueOnError`` a non-2xx response becomes a successful node result
    that carries the failure details.
    """

    type = WEBHOOK_NODE

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def execute(self, context: NodeContext) -> NodeResult:
        config = context.config

        try:
            url = config.get("url")
            if not url:
                return NodeResult.fail("Webhook URL is required")
            if not is_valid_http_url(str(url)):
                return NodeResult.fail(f"Invalid webhook URL: {url}")

            if config.get("payloadTemplate"):
                scope = {**context.inputs, **context.global_context}
                rendered = interpolate(to_json(config["payloadTemplate"]), scope)
                try:
                    payload = json.loads(rendered)
                except json.JSONDecodeError:
                    return NodeResult.fail("Invalid payload template - could not parse as JSON")
            else:
                payload = {
                    **context.inputs,
                    "_meta": {
                        "workflowId": context.global_context.get("workflowId"),
                        "executionId": context.global_context.get("executionId"),
                        "nodeId": context.node_id,
                        "timestamp": utc_now_iso(),
                    },
                }

            headers: Dict[str, str] = {
                "Content-Type": "application/json",
                "User-Agent": WEBHOOK_USER_AGENT,
                **(config.get("headers") or {}),
            }
            for header_name, input_path in (config.get("headerMappings") or {}).items():
                value = get_nested_value(context.inputs, input_path, MISSING)
                if value is not MISSING:
                    headers[header_name] = stringify(value)

            body = to_json(payload)
            if config.get("secret"):
                headers["X-Webhook-Signature"] = generate_webhook_signature(body, config["secret"])

            method = str(config.get("method") or "POST").upper()
            timeout_ms = config.get("timeout") or WEBHOOK_DEFAULT_TIMEOUT_MS
            start_time = time.monotonic()

            try:
                async with httpx.AsyncClient(timeout=timeout_ms / 1000, transport=self._transport) as client:
                    response = await client.request(
                        method,
                        str(url),
                        headers=headers,
                        content=None if method == "GET" else body.encode(),
                    )
            except httpx.TimeoutException:
                logger.error("Webhook request timed out", node_id=context.node_id, url=url)
                return NodeResult.fail(f"Webhook request timed out after {timeout_ms}ms")

            duration = int((time.monotonic() - start_time) * 1000)
            response_data = self._parse_response(response)

            if not response.is_success:
                logger.warning("Webhook returned error status", node_id=context.node_id,
                               status=response.status_code, continue_on_error=bool(config.get("continueOnError")))
                if config.get("continueOnError"):
                    return NodeResult.ok({
                        "success": False,
                        "statusCode": response.status_code,
                        "statusText": response.reason_phrase,
                        "response": response_data,
                        "duration": duration,
                        "url": str(url),
                    })
                return NodeResult.fail(
                    f"Webhook failed with status {response.status_code}: {response.reason_phrase}",
                    output={"statusCode": response.status_code, "response": response_data},
                )

            return NodeResult.ok({
                "success": True,
                "statusCode": response.status_code,
                "response": response_data,
                "duration": duration,
                "url": str(url),
            })

        except Exception as e:
            logger.error("Webhook failed", node_id=context.node_id, error=error_message(e))
            return NodeResult.fail(f"Webhook error: {error_message(e)}")

    @staticmethod
    def _parse_response(response: httpx.Response) -> Any:
        if "application/json" in response.headers.get("content-type", ""):
            try:
                return response.json()
            except ValueError:
                return response.text
        return response.text

    def validate_config(self, config: Dict[str, Any]) -> ConfigValidation:
        errors = []

        url = config.get("url")
        if not url or not isinstance(url, str):
            errors.append("url is required and must be a string")
        elif not is_valid_http_url(url):
            errors.append("url must be a valid URL")

        if "method" in config and config["method"] not in HTTP_METHODS:
            errors.append(f"method must be one of: {', '.join(HTTP_METHODS)}")

        if "timeout" in config:
            timeout = config["timeout"]
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or not 1000 <= timeout <= 120000:
                errors.append("timeout must be a number between 1000 and 120000 milliseconds")

        return ConfigValidation.from_errors(errors)
