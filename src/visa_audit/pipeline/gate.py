"""Arrival-ordered serialization of cross-checks within one session.

Every upload takes a ticket the moment it arrives. Reads run freely in
parallel, but the cross-check for ticket *k* starts only after every lower
ticket has released its turn, so it always sees the extractions of all
earlier uploads. A ticket that will never take its turn must be passed to
:meth:`OrderedGate.release`, otherwise every later ticket waits forever.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class OrderedGate:
    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._next_ticket = 0
        self._serving = 0
        self._released: set[int] = set()

    @property
    def pending(self) -> int:
        """Tickets issued but not yet released."""
        return self._next_ticket - self._serving - len(self._released)

    def ticket(self) -> int:
        """Reserve the next position. Call synchronously on arrival."""
        ticket = self._next_ticket
        self._next_ticket += 1
        return ticket

    @asynccontextmanager
    async def turn(self, ticket: int) -> AsyncIterator[None]:
        """Hold the session's cross-check slot for ``ticket``."""
        try:
            async with self._cond:
                await self._cond.wait_for(lambda: self._serving == ticket)
            yield
        finally:
            await self.release(ticket)

    async def release(self, ticket: int) -> None:
        """Give up ``ticket``. Releasing an already-served ticket is a no-op."""
        async with self._cond:
            if ticket < self._serving:
                return
            self._released.add(ticket)
            while self._serving in self._released:
                self._released.discard(self._serving)
                self._serving += 1
            self._cond.notify_all()
