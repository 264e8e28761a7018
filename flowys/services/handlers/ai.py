"""AI node handler - schema-guided LLM call through the structured output layer."""

import re
from typing import Any, Dict, List

from flowys.constants import AI_DEFAULT_MAX_TOKENS, AI_DEFAULT_TEMPERATURE, AI_NODE, AI_PROVIDERS
from flowys.core.logging import get_logger
from flowys.services.ai import AIService
from flowys.services.parameter_resolver import interpolate, is_number
from flowys.services.structured_output import LLMConfig, PromptMessage
from .base import ConfigValidation, NodeContext, NodeResult, error_message

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

CONCISE_INSTRUCTIONS = (
    "\n\nCRITICAL INSTRUCTIONS FOR YOUR RESPONSE:\n"
    "- Respond with valid JSON only - no markdown, no explanations\n"
    "- Keep ALL string values SHORT (under 150 characters each)\n"
    "- Use brief, summarized content - not verbose descriptions\n"
    "- Complete the entire JSON structure - do not truncate\n"
    "- If listing items, include only essential information per item"
)

# Common prompt-injection phrasings, replaced before the prompt is sent
INJECTION_PATTERNS = [
    re.compile(r'ignore\s+(all\s+)?(previous|above|prior)\s+instructions?', re.IGNORECASE),
    re.compile(r'disregard\s+(all\s+)?(previous|above|prior)\s+instructions?', re.IGNORECASE),
    re.compile(r'forget\s+(all\s+)?(previous|above|prior)\s+instructions?', re.IGNORECASE),
    re.compile(r'you\s+are\s+now\s+a\s+different', re.IGNORECASE),
    re.compile(r'new\s+instructions?:', re.IGNORECASE),
    re.compile(r'system\s*:\s*you\s+are', re.IGNORECASE),
]

FILTERED_TOKEN = "[FILTERED]"


def sanitize_prompt(prompt: str) -> str:
    for pattern in INJECTION_PATTERNS:
        prompt = pattern.sub(FILTERED_TOKEN, prompt)
    return prompt


class AiNodeHandler:
    type = AI_NODE

    def __init__(self, ai_service: AIService):
        self._ai_service = ai_service

    def build_messages(self, context: NodeContext) -> List[PromptMessage]:
        config = context.config
        scope = {**context.inputs, **context.global_context}
        user_prompt = interpolate(config.get("userPromptTemplate") or "", scope)

        system_prompt = config.get("systemPrompt")
        system_content = sanitize_prompt(system_prompt) if system_prompt else DEFAULT_SYSTEM_PROMPT

        return [
            {"role": "system", "content": system_content + CONCISE_INSTRUCTIONS},
            {"role": "user", "content": sanitize_prompt(user_prompt)},
        ]

    async def execute(self, context: NodeContext) -> NodeResult:
        config = context.config

        try:
            messages = self.build_messages(context)
            temperature = config.get("temperature")
            max_tokens = config.get("maxTokens")
            llm_config = LLMConfig(
                model=config.get("model") or "",
                temperature=AI_DEFAULT_TEMPERATURE if temperature is None else temperature,
                max_tokens=AI_DEFAULT_MAX_TOKENS if max_tokens is None else max_tokens,
            )

            logger.debug("Executing AI node", node_id=context.node_id,
                         provider=config.get("provider"), model=llm_config.model)
            result = await self._ai_service.execute_prompt(
                config.get("provider"), llm_config, messages, config.get("outputSchema")
            )
            return NodeResult.ok(result)

        except Exception as e:
            logger.error("AI node failed", node_id=context.node_id, error=error_message(e))
            return NodeResult.fail(f"AI execution error: {error_message(e)}")

    def validate_config(self, config: Dict[str, Any]) -> ConfigValidation:
        errors = []

        if config.get("provider") not in AI_PROVIDERS:
            errors.append("provider must be 'openai' or 'anthropic'")

        model = config.get("model")
        if not model or not isinstance(model, str):
            errors.append("model is required and must be a string")

        template = config.get("userPromptTemplate")
        if not template or not isinstance(template, str):
            errors.append("userPromptTemplate is required and must be a string")

        if "temperature" in config and config["temperature"] is not None:
            temperature = config["temperature"]
            if not is_number(temperature) or temperature < 0 or temperature > 2:
                errors.append("temperature must be a number between 0 and 2")

        if "maxTokens" in config and config["maxTokens"] is not None:
            tokens = config["maxTokens"]
            if not is_number(tokens) or tokens < 1 or tokens > 100000:
                errors.append("maxTokens must be a number between 1 and 100000")

        return ConfigValidation.from_errors(errors)
