"""AI service: LangChain-backed chat providers for the AI node."""

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from flowys.core.config import Settings
from flowys.core.logging import get_logger, log_api_call, log_execution_time
from flowys.services.structured_output import (
    ChatProvider,
    LLMConfig,
    LLMResponse,
    PromptMessage,
    execute_prompt,
)

logger = get_logger(__name__)


# =============================================================================
# AI PROVIDER REGISTRY - Single source of truth for provider configurations
# =============================================================================

@dataclass
class ProviderConfig:
    """Configuration for an AI provider."""
    name: str
    display_name: str
    model_class: Type
    api_key_param: str  # Parameter name for API key in model constructor
    max_tokens_param: str  # Parameter name for max tokens
    settings_key: str  # Settings attribute holding the API key
    default_model: str  # Default model when none specified
    sends_temperature: bool = True


PROVIDER_CONFIGS: Dict[str, ProviderConfig] = {
    'openai': ProviderConfig(
        name='openai',
        display_name='OpenAI',
        model_class=ChatOpenAI,
        api_key_param='api_key',
        max_tokens_param='max_tokens',
        settings_key='openai_api_key',
        default_model='gpt-4o',
    ),
    'anthropic': ProviderConfig(
        name='anthropic',
        display_name='Anthropic',
        model_class=ChatAnthropic,
        api_key_param='api_key',
        max_tokens_param='max_tokens',
        settings_key='anthropic_api_key',
        default_model='claude-sonnet-4-20250514',
        sends_temperature=False,
    ),
}

# Models with strict json_schema structured outputs
OPENAI_STRUCTURED_OUTPUT_MODELS = ("gpt-4o", "gpt-4o-mini", "gpt-4o-2024", "gpt-4-turbo")

# Models that accept response_format json_object
OPENAI_JSON_OBJECT_MODELS = (
    "gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-4-1106", "gpt-4-0125",
    "gpt-3.5-turbo-1106", "gpt-3.5-turbo-0125",
)

# Retired models and their closest JSON-capable replacement
OPENAI_DEPRECATED_MODELS: Dict[str, str] = {
    "text-davinci-003": "gpt-4o-mini",
    "text-davinci-002": "gpt-4o-mini",
    "text-davinci-001": "gpt-4o-mini",
    "text-curie-001": "gpt-4o-mini",
    "text-babbage-001": "gpt-4o-mini",
    "text-ada-001": "gpt-4o-mini",
    "code-davinci-002": "gpt-4o",
    "code-cushman-001": "gpt-4o-mini",
    "gpt-3.5-turbo-0301": "gpt-4o-mini",
    "gpt-3.5-turbo-0613": "gpt-4o-mini",
    "gpt-3.5-turbo": "gpt-4o-mini",
    "gpt-4-0314": "gpt-4o",
    "gpt-4-0613": "gpt-4o",
    "gpt-4-32k": "gpt-4o",
    "gpt-4-32k-0314": "gpt-4o",
    "gpt-4-32k-0613": "gpt-4o",
    "gpt-4": "gpt-4o",
}


def schema_to_text(schema: Dict[str, Any]) -> str:
    return json.dumps(schema, indent=2)


def to_langchain_messages(messages: List[PromptMessage]) -> List[BaseMessage]:
    classes = {"system": SystemMessage, "assistant": AIMessage}
    return [classes.get(m["role"], HumanMessage)(content=m["content"]) for m in messages]


def extract_text(message: BaseMessage) -> str:
    """Plain text of a chat reply (string content or text blocks)."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def normalize_schema_for_openai(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Strict structured outputs require every property to be required and
    no additional properties, recursively."""
    normalized = dict(schema)

    if normalized.get("type") == "object":
        normalized["additionalProperties"] = False
        properties = normalized.get("properties")
        if isinstance(properties, dict):
            normalized["properties"] = {
                key: normalize_schema_for_openai(value) if isinstance(value, dict) else value
                for key, value in properties.items()
            }
            if normalized["properties"]:
                normalized["required"] = list(normalized["properties"])

    if normalized.get("type") == "array" and isinstance(normalized.get("items"), dict):
        normalized["items"] = normalize_schema_for_openai(normalized["items"])

    for keyword in ("anyOf", "oneOf", "allOf"):
        if isinstance(normalized.get(keyword), list):
            normalized[keyword] = [normalize_schema_for_openai(item) for item in normalized[keyword]]

    return normalized


class LangChainChatProvider:
    """Chat provider built on a LangChain chat model class from PROVIDER_CONFIGS."""

    def __init__(self, provider_config: ProviderConfig, api_key: Optional[str],
                 timeout: Optional[float] = None):
        self.config = provider_config
        self.name = provider_config.name
        self._api_key = api_key
        self._timeout = timeout

    def resolve_model(self, model: str) -> str:
        return model or self.config.default_model

    def create_model(self, model: str, temperature: float, max_tokens: int):
        """Create LangChain model instance using provider registry."""
        kwargs = {
            self.config.api_key_param: self._api_key,
            'model': model,
            self.config.max_tokens_param: max_tokens,
        }
        if self.config.sends_temperature:
            kwargs['temperature'] = temperature
        if self._timeout:
            kwargs['timeout'] = self._timeout
        return self.config.model_class(**kwargs)

    def prepare_messages(self, messages: List[PromptMessage],
                         schema: Optional[Dict[str, Any]]) -> List[PromptMessage]:
        return [dict(m) for m in messages]

    def bind_options(self, chat_model, model: str, schema: Optional[Dict[str, Any]]):
        return chat_model

    async def complete(self, messages: List[PromptMessage], config: LLMConfig,
                       schema: Optional[Dict[str, Any]] = None) -> LLMResponse:
        if not self._api_key:
            raise ValueError(f"{self.config.display_name} API key is not configured")

        model = self.resolve_model(config.model)
        chat_model = self.bind_options(
            self.create_model(model, config.temperature, config.max_tokens), model, schema
        )
        prompt = to_langchain_messages(self.prepare_messages(messages, schema))

        start_time = time.time()
        try:
            reply = await chat_model.ainvoke(prompt)
        except Exception as e:
            log_api_call(logger, self.name, model, "chat", False, error=str(e))
            raise

        content = extract_text(reply)
        if not content:
            raise ValueError(f"No text response from {self.config.display_name}")

        usage = None
        metadata = getattr(reply, "usage_metadata", None)
        if metadata:
            usage = {
                "promptTokens": metadata.get("input_tokens", 0),
                "completionTokens": metadata.get("output_tokens", 0),
                "totalTokens": metadata.get("total_tokens", 0),
            }

        log_execution_time(logger, "ai_chat", start_time, time.time(), provider=self.name)
        log_api_call(logger, self.name, model, "chat", True, usage=usage)
        return LLMResponse(content=content, usage=usage)


class OpenAIChatProvider(LangChainChatProvider):
    """OpenAI chat completions with tiered JSON enforcement:
    json_schema for structured-output models, json_object for JSON-mode
    models and prompt instructions only for everything else.
    """

    def resolve_model(self, model: str) -> str:
        model = model or self.config.default_model
        replacement = OPENAI_DEPRECATED_MODELS.get(model)
        if replacement:
            logger.warning("Model is deprecated, using replacement", model=model, replacement=replacement)
            return replacement
        return model

    def prepare_messages(self, messages: List[PromptMessage],
                         schema: Optional[Dict[str, Any]]) -> List[PromptMessage]:
        prepared = [dict(m) for m in messages]
        if not schema:
            return prepared

        instruction = ("\n\nIMPORTANT: You must respond with valid JSON only, no other text. "
                       f"The JSON must match this schema:\n{schema_to_text(schema)}")
        for message in prepared:
            if message["role"] == "system":
                message["content"] += instruction
                return prepared

        prepared.insert(0, {
            "role": "system",
            "content": f"You are a helpful assistant. Respond only with valid JSON, no other text.{instruction}",
        })
        return prepared

    def bind_options(self, chat_model, model: str, schema: Optional[Dict[str, Any]]):
        if not schema:
            return chat_model
        lowered = model.lower()
        if lowered.startswith(OPENAI_STRUCTURED_OUTPUT_MODELS):
            return chat_model.bind(response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "response",
                    "schema": normalize_schema_for_openai(schema),
                    "strict": True,
                },
            })
        if lowered.startswith(OPENAI_JSON_OBJECT_MODELS):
            return chat_model.bind(response_format={"type": "json_object"})
        return chat_model


class AnthropicChatProvider(LangChainChatProvider):
    """Anthropic messages API. The schema instruction goes into the last
    user turn and only the first system message is kept."""

    def prepare_messages(self, messages: List[PromptMessage],
                         schema: Optional[Dict[str, Any]]) -> List[PromptMessage]:
        system = next((m for m in messages if m["role"] == "system"), None)
        turns = [dict(m) for m in messages if m["role"] != "system"]

        if schema and turns:
            turns[-1]["content"] += (
                f"\n\nYou must respond with valid JSON matching this schema:\n{schema_to_text(schema)}"
                "\n\nRespond ONLY with the JSON, no other text."
            )

        return ([dict(system)] if system else []) + turns


PROVIDER_CLASSES: Dict[str, Type[LangChainChatProvider]] = {
    'openai': OpenAIChatProvider,
    'anthropic': AnthropicChatProvider,
}


class AIService:
    """Resolves chat providers by name and runs structured prompts."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._providers: Dict[str, ChatProvider] = {}

    def register_provider(self, name: str, provider: ChatProvider) -> None:
        self._providers[name] = provider

    def get_provider(self, name: str) -> ChatProvider:
        """Cached provider instance for ``name``."""
        if name not in self._providers:
            config = PROVIDER_CONFIGS.get(name)
            if config is None:
                raise ValueError(f"Unknown provider: {name}")
            provider_class = PROVIDER_CLASSES[name]
            self._providers[name] = provider_class(
                config,
                api_key=getattr(self.settings, config.settings_key),
                timeout=self.settings.ai_timeout,
            )
        return self._providers[name]

    async def execute_prompt(self, provider: str, config: LLMConfig, messages: List[PromptMessage],
                             schema: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await execute_prompt(self.get_provider(provider), config, messages, schema)
