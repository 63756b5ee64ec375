"""Deterministic LLM client for testing, with no real model calls.

Duck-types :class:`visa_audit.providers.LLMClient`. Replies are produced by
callables so a test can route on the prompt, the attached image, or the
system prompt::

    client = FakeLLMClient(
        read_replies={doc.base64: extraction_reply("passport", "P<IND...")},
        stream_fn=lambda call: cross_check_reply("met", "Valid until 2031"),
    )
    pipeline = AuditPipeline(client, settings)

    assert client.calls[0].kind == "complete"  # inspect what was sent
"""

from __future__ import annotations

import asyncio
import base64
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Union

from visa_audit.exceptions import LLMClientError
from visa_audit.models import UploadedDocument
from visa_audit.providers.client import ImageInput, StreamDelta

Script = Union[str, list[StreamDelta]]


@dataclass
class FakeCall:
    """Record of a single call to the fake client."""

    kind: str
    prompt: str
    system_prompt: str | None = None
    images: list[ImageInput] = field(default_factory=list)
    model: str | None = None
    max_tokens: int | None = None

    @property
    def image_data(self) -> str:
        return self.images[0].base64 if self.images else ""

    @property
    def is_advisory(self) -> bool:
        return self.kind == "stream" and self.system_prompt is not None


# ── Reply builders ──────────────────────────────────────────────────


def extraction_reply(
    doc_type: str,
    text: str,
    *,
    language: str = "English",
    structured: dict[str, Any] | None = None,
) -> str:
    return json.dumps(
        {
            "docType": doc_type,
            "language": language,
            "extractedText": text,
            "structuredData": structured or {},
        }
    )


def cross_check_reply(
    status: str,
    detail: str = "",
    *,
    findings: list[dict[str, Any]] | None = None,
    thinking: str = "",
) -> list[StreamDelta]:
    body = json.dumps(
        {
            "compliance": {"status": status, "detail": detail},
            "crossDocFindings": findings or [],
        }
    )
    deltas = [StreamDelta("thinking", thinking)] if thinking else []
    return deltas + [StreamDelta("text", body)]


def advisory_reply(
    overall: str = "APPLICATION_PROCEEDS",
    fixes: list[dict[str, Any]] | None = None,
    *,
    tips: list[str] | None = None,
    warnings: list[str] | None = None,
) -> str:
    return json.dumps(
        {
            "overall": overall,
            "fixes": fixes or [],
            "interviewTips": tips or ["Answer questions about your itinerary directly."],
            "corridorWarnings": warnings or [],
        }
    )


def make_document(
    doc_id: str,
    filename: str,
    content: bytes | None = None,
    *,
    mime_type: str = "image/png",
    requirement_name: str | None = None,
) -> UploadedDocument:
    data = content if content is not None else f"image bytes of {filename}".encode()
    return UploadedDocument(
        id=doc_id,
        filename=filename,
        base64=base64.b64encode(data).decode(),
        mime_type=mime_type,
        size_bytes=len(data),
        requirement_name=requirement_name,
    )


# ── Client ──────────────────────────────────────────────────────────


class FakeLLMClient:
    """An LLM client that returns canned replies.

    Args:
        read_replies: Vision replies keyed by the attached image's base64.
        default_read: Vision reply for images not in ``read_replies``.
        stream_fn: Script for cross-check streams (calls without a system prompt).
        advisory_fn: Script for advisory streams (calls with a system prompt).
        delay_fn: Seconds to sleep before answering a call.
        fail_fn: Calls for which it returns True raise :class:`LLMClientError`.
    """

    def __init__(
        self,
        *,
        read_replies: dict[str, str] | None = None,
        default_read: str | None = None,
        stream_fn: Callable[[FakeCall], Script] | None = None,
        advisory_fn: Callable[[FakeCall], Script] | None = None,
        delay_fn: Callable[[FakeCall], float] | None = None,
        fail_fn: Callable[[FakeCall], bool] | None = None,
        thinking_budget: int = 1000,
    ) -> None:
        self._read_replies = dict(read_replies or {})
        self._default_read = default_read or extraction_reply("other", "Unremarkable document")
        self._stream_fn = stream_fn or (lambda call: cross_check_reply("met", "Looks valid"))
        self._advisory_fn = advisory_fn or (lambda call: advisory_reply())
        self._delay_fn = delay_fn
        self._fail_fn = fail_fn
        self._thinking_budget = thinking_budget
        self.calls: list[FakeCall] = []
        self.closed = False

    @property
    def model(self) -> str:
        return "fake/model"

    @property
    def vision_model(self) -> str:
        return "fake/vision"

    @property
    def advisory_model(self) -> str:
        return "fake/advisory"

    @property
    def thinking_budget(self) -> int:
        return self._thinking_budget

    def calls_of(self, kind: str) -> list[FakeCall]:
        return [c for c in self.calls if c.kind == kind]

    @property
    def cross_check_calls(self) -> list[FakeCall]:
        return [c for c in self.calls if c.kind == "stream" and not c.is_advisory]

    @property
    def advisory_calls(self) -> list[FakeCall]:
        return [c for c in self.calls if c.is_advisory]

    async def _before(self, call: FakeCall) -> None:
        self.calls.append(call)
        if self._delay_fn is not None:
            await asyncio.sleep(self._delay_fn(call))
        if self._fail_fn is not None and self._fail_fn(call):
            raise LLMClientError(f"fake {call.kind} failure")

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        images: list[ImageInput] | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> str:
        call = FakeCall("complete", prompt, system_prompt, list(images or []), model, max_tokens)
        await self._before(call)
        return self._read_replies.get(call.image_data, self._default_read)

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
        call = FakeCall("stream", prompt, system_prompt, list(images or []), model, max_tokens)
        await self._before(call)
        script = self._advisory_fn(call) if call.is_advisory else self._stream_fn(call)
        if isinstance(script, str):
            script = [StreamDelta("text", script)]
        for delta in script:
            await asyncio.sleep(0)
            yield delta

    async def close(self) -> None:
        self.closed = True
