"""Completion client abstraction with Anthropic and OpenAI backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from support_chat.config import AIConfig, AnthropicConfig, OpenAIConfig
from support_chat.log import get_logger

logger = get_logger(__name__)


@dataclass
class AIResponse:
    """Unified response from any AI backend."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    raw: Any = None  # Backend-specific raw response


class AIClient(ABC):
    """External completion service: system prompt plus ordered turns in, reply text out."""

    @abstractmethod
    async def chat(self, system: str, messages: list[dict[str, Any]]) -> AIResponse:
        """Send a conversation to the AI and return its reply."""
        ...

    async def complete(self, system: str, messages: list[dict[str, Any]]) -> str:
        response = await self.chat(system, messages)
        return response.text

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...


class AnthropicClient(AIClient):
    """Anthropic API backend using the official SDK."""

    def __init__(self, config: AnthropicConfig, ai: AIConfig):
        import anthropic

        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )
        self._ai = ai

    @property
    def model_name(self) -> str:
        return self._ai.model

    async def chat(self, system: str, messages: list[dict[str, Any]]) -> AIResponse:
        logger.debug("api_request", backend="anthropic", model=self._ai.model, message_count=len(messages))
        response = await self._client.messages.create(
            model=self._ai.model,
            max_tokens=self._ai.max_tokens,
            temperature=self._ai.temperature,
            system=system,
            messages=messages,
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        logger.debug(
            "api_response",
            backend="anthropic",
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        return AIResponse(
            text=text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            raw=response,
        )


class OpenAIClient(AIClient):
    """OpenAI chat-completions backend; the system prompt travels as the first message."""

    def __init__(self, config: OpenAIConfig, ai: AIConfig):
        import openai

        self._client = openai.AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )
        self._ai = ai

    @property
    def model_name(self) -> str:
        return self._ai.model

    async def chat(self, system: str, messages: list[dict[str, Any]]) -> AIResponse:
        logger.debug("api_request", backend="openai", model=self._ai.model, message_count=len(messages))
        response = await self._client.chat.completions.create(
            model=self._ai.model,
            max_tokens=self._ai.max_tokens,
            temperature=self._ai.temperature,
            messages=[{"role": "system", "content": system}, *messages],
        )
        usage = response.usage
        return AIResponse(
            text=response.choices[0].message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            raw=response,
        )


def create_ai_client(
    ai: AIConfig,
    anthropic: AnthropicConfig | None,
    openai: OpenAIConfig | None,
) -> AIClient:
    """Create an AI client for the configured backend."""
    match ai.backend:
        case "anthropic":
            if not anthropic:
                raise ValueError("AI backend is 'anthropic' but no 'anthropic' section in config")
            return AnthropicClient(anthropic, ai)
        case "openai":
            if not openai:
                raise ValueError("AI backend is 'openai' but no 'openai' section in config")
            return OpenAIClient(openai, ai)
        case _:
            raise ValueError(f"Unknown AI backend: {ai.backend}")
