"""Async LLM client routed through LiteLLM for multi-provider support.

Supports ``anthropic/``, ``openai/``, ``ollama/`` and ``bedrock/`` model
prefixes transparently. Images are sent as base64 ``image_url`` content
blocks, which LiteLLM translates per provider.

Every call, streamed or not, holds one slot of a shared semaphore so the
number of in-flight model calls stays bounded independently of how many
clients are connected. Calls are never retried here.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Literal

from visa_audit.core.config import LLMConfig
from visa_audit.exceptions import LLMClientError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageInput:
    """A base64 image attached to a user message."""

    base64: str
    mime_type: str

    def as_content_block(self) -> dict[str, Any]:
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{self.mime_type};base64,{self.base64}"},
        }


@dataclass(frozen=True)
class StreamDelta:
    """One increment of a streamed reply: reasoning text or answer text."""

    kind: Literal["thinking", "text"]
    text: str


class LLMClient:
    """Async LLM client using LiteLLM with a global in-flight cap."""

    def __init__(self, config: LLMConfig) -> None:
        self._config = config
        self._inflight = asyncio.Semaphore(config.max_inflight_calls)

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def vision_model(self) -> str:
        return self._config.vision_model or self._config.model

    @property
    def advisory_model(self) -> str:
        return self._config.advisory_model or self._config.model

    @property
    def thinking_budget(self) -> int:
        return self._config.thinking_budget

    def _messages(
        self,
        prompt: str,
        system_prompt: str | None,
        images: list[ImageInput] | None,
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        if images:
            content: list[dict[str, Any]] = [img.as_content_block() for img in images]
            content.append({"type": "text", "text": prompt})
            messages.append({"role": "user", "content": content})
        else:
            messages.append({"role": "user", "content": prompt})
        return messages

    def _kwargs(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None,
        max_tokens: int | None,
        thinking: bool,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model or self._config.model,
            "messages": messages,
            "timeout": self._config.timeout,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if self._config.api_key and self._config.api_key != "no-key":
            kwargs["api_key"] = self._config.api_key
        if self._config.base_url:
            kwargs["api_base"] = self._config.base_url
        if thinking and self._config.thinking_budget > 0:
            # Anthropic requires the default temperature with extended thinking
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": self._config.thinking_budget}
        else:
            kwargs["temperature"] = self._config.temperature
        return kwargs

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        images: list[ImageInput] | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Single non-streamed completion, returns the reply text.

        Args:
            prompt: User message text.
            system_prompt: Optional system message.
            images: Optional images placed before the text in the user message.
            model: Override model ID. Supports LiteLLM prefixes (e.g. ``anthropic/``).
            max_tokens: Output token cap for this call.

        Raises:
            LLMClientError: The provider call failed.
        """
        from litellm import acompletion

        kwargs = self._kwargs(
            self._messages(prompt, system_prompt, images),
            model=model,
            max_tokens=max_tokens,
            thinking=False,
        )
        async with self._inflight:
            try:
                response = await acompletion(**kwargs)
            except Exception as e:
                log.warning("LLM call failed (model=%s): %s", kwargs["model"], e)
                raise LLMClientError(str(e)) from e
        return response.choices[0].message.content or ""

    async def stream(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        images: list[ImageInput] | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        thinking: bool = True,
    ) -> AsyncIterator[StreamDelta]:
        """Streamed completion yielding reasoning and answer increments.

        Reasoning arrives as ``reasoning_content`` on LiteLLM deltas when the
        provider exposes it; answer text arrives as ``content``.

        Raises:
            LLMClientError: The provider call failed before or during streaming.
        """
        from litellm import acompletion

        kwargs = self._kwargs(
            self._messages(prompt, system_prompt, images),
            model=model,
            max_tokens=max_tokens,
            thinking=thinking,
        )
        kwargs["stream"] = True

        async with self._inflight:
            try:
                response = await acompletion(**kwargs)
                async for chunk in response:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    reasoning = getattr(delta, "reasoning_content", None)
                    if reasoning:
                        yield StreamDelta("thinking", reasoning)
                    content = getattr(delta, "content", None)
                    if content:
                        yield StreamDelta("text", content)
            except LLMClientError:
                raise
            except Exception as e:
                log.warning("LLM stream failed (model=%s): %s", kwargs["model"], e)
                raise LLMClientError(str(e)) from e

    async def close(self) -> None:
        """No-op, LiteLLM manages its own connection pooling."""
