"""Tests for LLMClient call construction and error mapping."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from visa_audit.core.config import LLMConfig
from visa_audit.exceptions import LLMClientError
from visa_audit.providers.client import ImageInput, LLMClient, StreamDelta


def _completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _chunk(content: str | None = None, reasoning: str | None = None) -> SimpleNamespace:
    delta = SimpleNamespace(content=content, reasoning_content=reasoning)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


class _ChunkStream:
    def __init__(self, chunks: list[SimpleNamespace], fail_after: int | None = None) -> None:
        self._chunks = chunks
        self._fail_after = fail_after

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for i, chunk in enumerate(self._chunks):
            if self._fail_after is not None and i == self._fail_after:
                raise RuntimeError("connection reset")
            yield chunk


class TestModelSelection:
    def test_vision_and_advisory_fall_back_to_model(self):
        client = LLMClient(LLMConfig(model="anthropic/base"))
        assert client.vision_model == "anthropic/base"
        assert client.advisory_model == "anthropic/base"

    def test_explicit_models_win(self):
        client = LLMClient(
            LLMConfig(model="anthropic/base", vision_model="openai/vision", advisory_model="anthropic/big")
        )
        assert client.vision_model == "openai/vision"
        assert client.advisory_model == "anthropic/big"


class TestComplete:
    @pytest.mark.asyncio
    async def test_sends_images_before_text(self):
        client = LLMClient(LLMConfig(model="anthropic/m", api_key="sk-test", temperature=0.0))
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acomp:
            mock_acomp.return_value = _completion('{"docType": "passport"}')
            reply = await client.complete(
                "Read this", images=[ImageInput("QUJD", "image/png")], max_tokens=500
            )

        assert reply == '{"docType": "passport"}'
        kwargs = mock_acomp.call_args.kwargs
        content = kwargs["messages"][0]["content"]
        assert content[0] == {"type": "image_url", "image_url": {"url": "data:image/png;base64,QUJD"}}
        assert content[1] == {"type": "text", "text": "Read this"}
        assert kwargs["max_tokens"] == 500
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["temperature"] == 0.0
        assert "thinking" not in kwargs

    @pytest.mark.asyncio
    async def test_placeholder_key_not_forwarded(self):
        client = LLMClient(LLMConfig(model="ollama/m", api_key="no-key", base_url="http://localhost:11434"))
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acomp:
            mock_acomp.return_value = _completion("ok")
            await client.complete("hi", system_prompt="be brief")

        kwargs = mock_acomp.call_args.kwargs
        assert "api_key" not in kwargs
        assert kwargs["api_base"] == "http://localhost:11434"
        assert kwargs["messages"][0] == {"role": "system", "content": "be brief"}
        assert kwargs["messages"][1] == {"role": "user", "content": "hi"}

    @pytest.mark.asyncio
    async def test_empty_content_becomes_empty_string(self):
        client = LLMClient(LLMConfig())
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acomp:
            mock_acomp.return_value = _completion(None)
            assert await client.complete("hi") == ""

    @pytest.mark.asyncio
    async def test_provider_error_wrapped(self):
        client = LLMClient(LLMConfig())
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acomp:
            mock_acomp.side_effect = RuntimeError("overloaded")
            with pytest.raises(LLMClientError, match="overloaded"):
                await client.complete("hi")
        assert mock_acomp.call_count == 1


class TestStream:
    @pytest.mark.asyncio
    async def test_yields_thinking_then_text(self):
        client = LLMClient(LLMConfig(thinking_budget=2048))
        chunks = [_chunk(reasoning="Checking dates"), _chunk(content='{"ok"'), _chunk(content=": true}")]
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acomp:
            mock_acomp.return_value = _ChunkStream(chunks)
            deltas = [d async for d in client.stream("check")]

        assert deltas == [
            StreamDelta("thinking", "Checking dates"),
            StreamDelta("text", '{"ok"'),
            StreamDelta("text", ": true}"),
        ]
        kwargs = mock_acomp.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["thinking"] == {"type": "enabled", "budget_tokens": 2048}
        assert "temperature" not in kwargs

    @pytest.mark.asyncio
    async def test_zero_budget_disables_thinking(self):
        client = LLMClient(LLMConfig(thinking_budget=0, temperature=0.2))
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acomp:
            mock_acomp.return_value = _ChunkStream([_chunk(content="x")])
            _ = [d async for d in client.stream("check")]

        kwargs = mock_acomp.call_args.kwargs
        assert "thinking" not in kwargs
        assert kwargs["temperature"] == 0.2

    @pytest.mark.asyncio
    async def test_mid_stream_failure_wrapped(self):
        client = LLMClient(LLMConfig())
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acomp:
            mock_acomp.return_value = _ChunkStream([_chunk(content="{"), _chunk(content="}")], fail_after=1)
            received: list[StreamDelta] = []
            with pytest.raises(LLMClientError, match="connection reset"):
                async for delta in client.stream("check"):
                    received.append(delta)

        assert received == [StreamDelta("text", "{")]
