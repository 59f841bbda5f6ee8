# =============================================================================
# LLM Providers — Optional Backend for Requirement Analysis
# =============================================================================
#
# The analysis service can run on keyword rules alone. When LLM_PROVIDER is
# set to "anthropic" or "openai_compatible", requirement selection is
# delegated to a model through one of the providers below.
#
# DESIGN DECISION: Protocol over ABC, same as TableStore. Tests pass an
# AsyncMock with a `complete()` coroutine and nothing else.
#
# DESIGN DECISION: native SDKs, imported lazily inside the constructors so
# the rules-only deployment never needs an API key or a network client.
#
#   LLMProvider (Protocol)
#   ├── AnthropicProvider         system prompt as top-level kwarg
#   ├── OpenAICompatibleProvider  system prompt as first message
#   └── get_llm_provider()        lazy singleton, reads from config
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from app.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """Provider-neutral completion result."""

    content: str
    model: str
    input_tokens: int
    output_tokens: int


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """
        Generate a completion.

        Args:
            messages: dicts with "role" ("user" / "assistant") and "content".
            system: System prompt; each provider places it where its API wants it.
            temperature: Overrides LLM_TEMPERATURE when given.
            max_tokens: Overrides LLM_MAX_TOKENS when given.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic
# ---------------------------------------------------------------------------


class AnthropicProvider:
    def __init__(self) -> None:
        from anthropic import AsyncAnthropic

        api_key = settings.llm_api_key or settings.anthropic_api_key
        if not api_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env, or use LLM_PROVIDER=rules"
            )

        self._client = AsyncAnthropic(api_key=api_key)
        self._model = settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        if system:
            kwargs["system"] = system

        response = await self._client.messages.create(**kwargs)

        content = next(
            (block.text for block in response.content if block.type == "text"), "",
        )
        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Any endpoint speaking the OpenAI chat-completions API.

    Switching vendors is configuration only:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_API_KEY=your-key
        LLM_MODEL=deepseek-chat
    """

    def __init__(self) -> None:
        from openai import AsyncOpenAI

        api_key = settings.llm_api_key or settings.openai_api_key
        if not api_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env, or use LLM_PROVIDER=rules"
            )

        client_kwargs: dict = {"api_key": api_key}
        if settings.llm_base_url:
            client_kwargs["base_url"] = settings.llm_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            settings.llm_base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=all_messages,
            max_tokens=max_tokens or self._max_tokens,
            temperature=self._temperature if temperature is None else temperature,
        )

        usage = response.usage
        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_provider: AnthropicProvider | OpenAICompatibleProvider | None = None


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """Lazy singleton for the configured provider; SDK clients pool connections."""
    global _provider
    if _provider is None:
        if settings.llm_provider == "openai_compatible":
            _provider = OpenAICompatibleProvider()
        else:
            _provider = AnthropicProvider()
    return _provider
