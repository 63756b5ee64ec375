"""One applicant's audit session: state, event log, and concurrency controls."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from typing import AsyncIterator, Callable, Generator

from visa_audit.advisory.scheduler import EarlyTriggerScheduler
from visa_audit.core.config import SchedulerConfig
from visa_audit.events import Event
from visa_audit.models import RequirementsChecklist, to_wire
from visa_audit.pipeline.gate import OrderedGate
from visa_audit.session.state import SessionState, Transition, transition

log = logging.getLogger(__name__)


class EventLog:
    """Append-only, globally ordered record of everything a session emitted."""

    def __init__(self) -> None:
        self._events: list[Event] = []
        self._changed = asyncio.Event()

    def __len__(self) -> int:
        return len(self._events)

    def __getitem__(self, index: int) -> Event:
        return self._events[index]

    def append(self, event: Event) -> None:
        self._events.append(event)
        self.poke()

    def poke(self) -> None:
        """Wake every waiter; each waiter re-checks its own condition."""
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    def waiter(self) -> asyncio.Event:
        return self._changed

    def snapshot(self, after: int = 0) -> list[Event]:
        return list(self._events[after:])


class AuditSession:
    """Session-scoped state for incremental uploads, refinement and re-audit.

    ``state`` is replaced only through :meth:`apply`. Cross-checks for this
    session must run inside ``gate.turn(ticket)`` so each one sees every
    earlier upload's extraction.
    """

    def __init__(
        self,
        requirements: RequirementsChecklist,
        *,
        scheduler_config: SchedulerConfig | None = None,
        session_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self._clock = clock
        self.created_at = clock()
        self.last_seen = self.created_at
        self.state = SessionState.start(requirements)
        self.gate = OrderedGate()
        self.log = EventLog()
        self.scheduler = EarlyTriggerScheduler(len(requirements.uploadable_items()), scheduler_config)
        self._active = 0

    @property
    def busy(self) -> bool:
        return self._active > 0

    def touch(self) -> None:
        self.last_seen = self._clock()

    def apply(self, event: Transition) -> SessionState:
        self.state = transition(self.state, event)
        return self.state

    def emit(self, event: Event) -> None:
        self.log.append(event)

    def begin_work(self) -> Callable[[], None]:
        """Mark the session busy now; call the returned function exactly once when done."""
        self._active += 1
        released = False

        def release() -> None:
            nonlocal released
            if released:
                return
            released = True
            self._active -= 1
            self.touch()
            self.log.poke()

        return release

    @contextmanager
    def work(self) -> Generator[None, None, None]:
        """Mark the session busy (uploads, refinement, re-audit) while the block runs."""
        release = self.begin_work()
        try:
            yield
        finally:
            release()

    async def tail(self, after: int = 0) -> AsyncIterator[tuple[int, Event]]:
        """Yield ``(index, event)`` from ``after`` onward, following new events while busy."""
        position = max(after, 0)
        while True:
            waiter = self.log.waiter()
            while position < len(self.log):
                yield position, self.log[position]
                position += 1
            if not self.busy:
                return
            await waiter.wait()

    def snapshot(self) -> dict:
        """Wire view of the current state."""
        state = self.state
        return {
            "sessionId": self.id,
            "stage": state.stage.value,
            "generation": state.generation,
            "refinementTriggered": state.refinement_triggered,
            "extractions": [to_wire(e) for e in state.extractions],
            "compliances": [to_wire(c) for c in state.compliances],
            "crossDocFindings": [to_wire(f) for f in state.findings],
            "advisory": to_wire(state.advisory),
            "eventCount": len(self.log),
        }
