"""Server-Sent-Events responses.

Producers run as detached tasks feeding an :class:`EventChannel`; the
response only drains the channel. A client disconnect stops the drain but
never cancels the producer's in-flight model calls.
"""

from __future__ import annotations

from typing import AsyncIterator

from fastapi.responses import StreamingResponse

from visa_audit.events import DONE_FRAME, Event, encode_sse
from visa_audit.pipeline.channel import EventChannel, Producer, TaskRegistry, run_producer

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def encode_stream(events: AsyncIterator[Event]) -> AsyncIterator[str]:
    """Encode ``events`` as frames and always finish with ``[DONE]``."""
    async for event in events:
        yield encode_sse(event)
    yield DONE_FRAME


def stream_response(events: AsyncIterator[Event]) -> StreamingResponse:
    return StreamingResponse(encode_stream(events), media_type="text/event-stream", headers=SSE_HEADERS)


def sse_response(producer: Producer, tasks: TaskRegistry, *, name: str) -> StreamingResponse:
    """Start ``producer`` detached and stream what it emits."""
    channel = EventChannel()
    tasks.spawn(run_producer(producer, channel), name=name)
    return stream_response(channel.__aiter__())
