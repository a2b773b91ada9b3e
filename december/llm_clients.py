"""
LLM clients for december.

Both clients speak the same small contract used by the orchestrator:

    await client.complete(system, messages, temperature=..., max_tokens=...) -> str
    async for delta in client.stream(system, messages, ...): ...

``messages`` entries are ``{"role": ..., "content": str | list[part]}`` with
OpenAI-style parts (``{"type": "text"}`` / ``{"type": "image_url"}``).
"""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Protocol

import anthropic
import openai
from dotenv import load_dotenv

from december.utils import async_retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"

# Pricing per million tokens
MODEL_PRICING = {
    "gpt-4o": {"input": 2.50, "output": 10.0, "label": "GPT-4o"},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60, "label": "GPT-4o mini"},
    "claude-sonnet-4-5-20250929": {"input": 3.0, "output": 15.0, "label": "Sonnet 4.5"},
    "claude-opus-4-6": {"input": 15.0, "output": 75.0, "label": "Opus 4.6"},
}
FALLBACK_PRICING = {"input": 1.00, "output": 1.00}

_DATA_URL = re.compile(r"^data:(?P<media_type>[^;]+);base64,(?P<data>.*)$", re.DOTALL)


class ModelCallError(RuntimeError):
    """The provider call failed after retries."""


class LanguageModelClient(Protocol):
    async def complete(self, system: str, messages: list[dict], **options) -> str: ...

    def stream(self, system: str, messages: list[dict], **options) -> AsyncIterator[str]: ...


@dataclass
class TokenUsage:
    """Track token usage and costs across all API calls."""
    input_tokens: int = 0
    output_tokens: int = 0
    calls: int = 0
    latency_ms: list[float] = field(default_factory=list)

    input_price: float = FALLBACK_PRICING["input"]
    output_price: float = FALLBACK_PRICING["output"]
    model_label: str = ""

    def set_pricing(self, model: str) -> None:
        """Configure pricing from a model string."""
        pricing = MODEL_PRICING.get(model)
        if pricing is None:
            logger.warning("Unknown model '%s', using fallback pricing $1.00/$1.00 per M tokens", model)
            pricing = {**FALLBACK_PRICING, "label": model}
        self.input_price = pricing["input"]
        self.output_price = pricing["output"]
        self.model_label = pricing["label"]

    def record(self, input_tokens: int, output_tokens: int, latency_ms: float) -> None:
        self.calls += 1
        self.input_tokens += input_tokens or 0
        self.output_tokens += output_tokens or 0
        self.latency_ms.append(latency_ms)

    @property
    def total_cost(self) -> float:
        return (
            (self.input_tokens / 1_000_000) * self.input_price
            + (self.output_tokens / 1_000_000) * self.output_price
        )

    def summary(self) -> str:
        return (
            f"=== Token Usage & Cost ===\n"
            f"{self.model_label or 'model'}: {self.calls} calls, "
            f"{self.input_tokens:,} in / {self.output_tokens:,} out, "
            f"${self.total_cost:.4f}"
        )


class OpenAIChatClient:
    """OpenAI or any OpenAI-compatible endpoint."""

    def __init__(self, usage: TokenUsage, model: str = DEFAULT_OPENAI_MODEL, base_url: str = ""):
        load_dotenv()
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise EnvironmentError(
                "OPENAI_API_KEY not set. Add it to your .env file or export it as an environment variable."
            )
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or os.environ.get("OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE_URL,
        )
        self.model = model
        self.usage = usage
        self.usage.set_pricing(model)

    def _request(self, system: str, messages: list[dict], temperature: float, max_tokens: int | None) -> dict:
        # OpenAI SDK: system prompt goes as first message, not a separate param
        api_messages = [{"role": "system", "content": system}] if system else []
        api_messages.extend(messages)
        kwargs = {
            "model": self.model,
            "messages": api_messages,
            "temperature": temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        return kwargs

    async def complete(
        self,
        system: str,
        messages: list[dict],
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> str:
        t0 = time.time()
        try:
            response = await async_retry_with_backoff(
                self.client.chat.completions.create,
                **self._request(system, messages, temperature, max_tokens),
            )
        except Exception as e:
            raise ModelCallError(f"OpenAI API error on {self.model} after retries: {e}") from e

        usage = response.usage
        self.usage.record(
            usage.prompt_tokens if usage else 0,
            usage.completion_tokens if usage else 0,
            (time.time() - t0) * 1000,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def stream(
        self,
        system: str,
        messages: list[dict],
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        t0 = time.time()
        input_tokens = output_tokens = 0
        stream = None
        try:
            stream = await async_retry_with_backoff(
                self.client.chat.completions.create,
                stream=True,
                stream_options={"include_usage": True},
                **self._request(system, messages, temperature, max_tokens),
            )
            async for chunk in stream:
                if getattr(chunk, "usage", None):
                    input_tokens = chunk.usage.prompt_tokens or 0
                    output_tokens = chunk.usage.completion_tokens or 0
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta is not None and delta.content:
                    yield delta.content
        except Exception as e:
            raise ModelCallError(f"OpenAI API error on {self.model}: {e}") from e
        finally:
            # Releases the HTTP response when the consumer stops early.
            if stream is not None:
                await stream.close()
            self.usage.record(input_tokens, output_tokens, (time.time() - t0) * 1000)


def to_anthropic_content(content):
    """Convert OpenAI-style content parts to Anthropic content blocks."""
    if isinstance(content, str):
        return content

    blocks = []
    for part in content:
        if part.get("type") == "image_url":
            url = part["image_url"]["url"]
            m = _DATA_URL.match(url)
            if m:
                blocks.append({
                    "type": "image",
                    "source": {"type": "base64", "media_type": m.group("media_type"), "data": m.group("data")},
                })
            else:
                blocks.append({"type": "image", "source": {"type": "url", "url": url}})
        else:
            blocks.append({"type": "text", "text": part.get("text", "")})
    return blocks


class AnthropicChatClient:
    """Claude via the Anthropic API."""

    def __init__(self, usage: TokenUsage, model: str = DEFAULT_ANTHROPIC_MODEL, max_tokens: int = 8192):
        load_dotenv()
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise EnvironmentError(
                "ANTHROPIC_API_KEY not set. Add it to your .env file or export it as an environment variable."
            )
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model
        self.default_max_tokens = max_tokens
        self.usage = usage
        self.usage.set_pricing(model)

    def _request(self, system: str, messages: list[dict], temperature: float, max_tokens: int | None) -> dict:
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens or self.default_max_tokens,
            "messages": [
                {"role": m["role"], "content": to_anthropic_content(m["content"])} for m in messages
            ],
            "temperature": temperature,
        }
        if system:
            kwargs["system"] = system
        return kwargs

    async def complete(
        self,
        system: str,
        messages: list[dict],
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> str:
        t0 = time.time()
        try:
            response = await async_retry_with_backoff(
                self.client.messages.create,
                **self._request(system, messages, temperature, max_tokens),
            )
        except Exception as e:
            raise ModelCallError(f"Anthropic API error on {self.model} after retries: {e}") from e

        self.usage.record(
            response.usage.input_tokens,
            response.usage.output_tokens,
            (time.time() - t0) * 1000,
        )
        text_parts = [block.text for block in response.content if block.type == "text"]
        return "\n".join(text_parts)

    async def stream(
        self,
        system: str,
        messages: list[dict],
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        t0 = time.time()
        input_tokens = output_tokens = 0
        try:
            async with self.client.messages.stream(
                **self._request(system, messages, temperature, max_tokens)
            ) as stream_resp:
                async for text in stream_resp.text_stream:
                    yield text
                final = await stream_resp.get_final_message()
                input_tokens = final.usage.input_tokens
                output_tokens = final.usage.output_tokens
        except Exception as e:
            raise ModelCallError(f"Anthropic API error on {self.model}: {e}") from e
        finally:
            self.usage.record(input_tokens, output_tokens, (time.time() - t0) * 1000)


PROVIDERS = ("openai", "anthropic")


def create_client(usage: TokenUsage, provider: str = "openai", model: str = "", base_url: str = "", max_tokens: int = 8192):
    """Factory: pick the right client based on the provider name."""
    if provider == "openai":
        return OpenAIChatClient(usage=usage, model=model or DEFAULT_OPENAI_MODEL, base_url=base_url)
    if provider == "anthropic":
        return AnthropicChatClient(usage=usage, model=model or DEFAULT_ANTHROPIC_MODEL, max_tokens=max_tokens)
    raise ValueError(f"Unknown provider '{provider}'. Available: {', '.join(PROVIDERS)}")
