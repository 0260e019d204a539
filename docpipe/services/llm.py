# =============================================================================
# LLM Providers — Completion Backends for the AI-Enrichment Stage
# =============================================================================
#
# The enricher sends two kinds of prompt (pedagogical summary, quiz
# questions) and needs back the text plus token counts for cost accounting.
# Any backend that can do that satisfies `LLMProvider`:
#
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — Claude, system prompt as `system=` kwarg
#   └── OpenAICompatibleProvider — OpenAI / Mistral / DeepSeek / local
#                                  servers, system prompt as first message
#
# DESIGN DECISION: Providers are built FROM a Settings object, never from
# module globals, so a worker's PipelineContext decides which backend and
# model its enrichment stage uses. `get_llm_provider(settings)` caches one
# instance per (provider, model, base_url) for the life of the process.
#
# DESIGN DECISION: Unknown `llm_provider` values fail loudly at construction
# time. A typo in LLM_PROVIDER must not silently fall back to Anthropic and
# start billing a different account.
#
# The interface is async because both SDKs are; workers drive it with
# `asyncio.run()` (see services/enrichment.py).
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from docpipe.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Text and token usage of one completion."""

    content: str
    model: str
    input_tokens: int
    output_tokens: int


class LLMProvider(Protocol):
    """
    Anything the enricher can prompt.

    `provider_type` is the key into the pricing registry
    ("anthropic" or "openai_compatible").
    """

    provider_type: str

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse: ...


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


class AnthropicProvider:
    provider_type = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> None:
        from anthropic import AsyncAnthropic

        if not api_key:
            raise ValueError("No Anthropic API key: set LLM_API_KEY or ANTHROPIC_API_KEY")
        self._client = AsyncAnthropic(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> AnthropicProvider:
        return cls(
            api_key=settings.llm_api_key or settings.anthropic_api_key,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        request: dict = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": self.temperature if temperature is None else temperature,
        }
        if system:
            request["system"] = system

        response = await self._client.messages.create(**request)

        # A reply may be split over several text blocks.
        text = "".join(block.text for block in response.content if block.type == "text")
        return LLMResponse(
            content=text,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# OpenAI-compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Any chat-completions endpoint. Switching vendor is configuration only:

        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.mistral.ai/v1
        LLM_MODEL=mistral-large-latest
    """

    provider_type = "openai_compatible"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> None:
        from openai import AsyncOpenAI

        if not api_key:
            raise ValueError("No API key for the OpenAI-compatible provider: set LLM_API_KEY")
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.base_url = base_url
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAICompatibleProvider:
        return cls(
            api_key=settings.llm_api_key or settings.openai_api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        prompt = [{"role": "system", "content": system}] if system else []
        prompt.extend(messages)

        response = await self._client.chat.completions.create(
            model=self.model,
            messages=prompt,
            max_tokens=max_tokens or self.max_tokens,
            temperature=self.temperature if temperature is None else temperature,
        )

        usage = response.usage
        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model or self.model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

PROVIDERS: dict[str, type[AnthropicProvider] | type[OpenAICompatibleProvider]] = {
    AnthropicProvider.provider_type: AnthropicProvider,
    OpenAICompatibleProvider.provider_type: OpenAICompatibleProvider,
}

_providers: dict[tuple[str, str, str | None], LLMProvider] = {}


def get_llm_provider(settings: Settings) -> LLMProvider:
    """Return the provider configured in `settings`, built once per process."""
    try:
        provider_cls = PROVIDERS[settings.llm_provider]
    except KeyError:
        raise ValueError(
            f"Unknown LLM provider {settings.llm_provider!r}; "
            f"expected one of {sorted(PROVIDERS)}"
        ) from None

    key = (settings.llm_provider, settings.llm_model, settings.llm_base_url)
    if key not in _providers:
        _providers[key] = provider_cls.from_settings(settings)
        logger.info(
            "LLM provider ready: %s (model=%s)", settings.llm_provider, settings.llm_model,
        )
    return _providers[key]
