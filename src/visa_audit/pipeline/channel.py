"""Event channels and detached producer tasks.

Producers run as tasks that are not tied to the HTTP connection: when a
client disconnects, in-flight model calls finish and their events are
dropped instead of being cancelled halfway.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Coroutine

from visa_audit.events import Emit, ErrorEvent, Event

log = logging.getLogger(__name__)

_CLOSED = object()


class EventChannel:
    """Single-consumer queue of events with an explicit end."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: Event) -> None:
        if self._closed:
            log.debug("Dropping %s event emitted after close", event.type)
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[Event]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


def tee(*sinks: Emit) -> Emit:
    """An emit sink that forwards every event to each of ``sinks`` in order."""

    def _emit(event: Event) -> None:
        for sink in sinks:
            sink(event)

    return _emit


class TaskRegistry:
    """Holds strong references to detached tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Detached task %s failed", task.get_name(), exc_info=exc)

    async def drain(self) -> None:
        """Wait for every task currently registered (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


Producer = Callable[[Emit], Awaitable[Any]]


async def run_producer(producer: Producer, channel: EventChannel) -> None:
    """Run ``producer`` into ``channel``; an escaping exception becomes an ``error`` event."""
    try:
        await producer(channel.emit)
    except Exception as e:
        log.exception("Event producer failed")
        channel.emit(ErrorEvent(message=str(e) or type(e).__name__))
    finally:
        channel.close()
