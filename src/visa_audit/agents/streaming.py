"""Rate gate for interim thinking text.

Reasoning deltas arrive every few characters. A throttle accumulates them and
allows an emit only when both enough time and enough new text have passed
since the previous emit.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], float]


class ThinkingThrottle:
    """Accumulates reasoning text and gates interim emits.

    Args:
        interval_ms: Minimum time between two emits.
        min_new_chars: Minimum new characters since the previous emit.
        depth_interval_chars: Report reasoning depth every this many characters
            (0 disables depth reporting).
        clock: Monotonic seconds; injectable for tests.
    """

    def __init__(
        self,
        interval_ms: int,
        min_new_chars: int,
        *,
        depth_interval_chars: int = 0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._interval = interval_ms / 1000.0
        self._min_new_chars = min_new_chars
        self._depth_interval = depth_interval_chars
        self._clock = clock
        self._parts: list[str] = []
        self._length = 0
        self._last_emit_at: float | None = None
        self._last_emit_len = 0
        self._depth_marks = 0

    @property
    def length(self) -> int:
        return self._length

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed(self, text: str) -> None:
        self._parts.append(text)
        self._length += len(text)

    def should_emit(self) -> bool:
        """True when both gates are open; an affirmative answer resets them."""
        now = self._clock()
        if self._length - self._last_emit_len < self._min_new_chars:
            return False
        if self._last_emit_at is not None and now - self._last_emit_at < self._interval:
            return False
        self._last_emit_at = now
        self._last_emit_len = self._length
        return True

    def depth_crossed(self) -> bool:
        """True once each time the buffer passes another depth interval."""
        if self._depth_interval <= 0:
            return False
        marks = self._length // self._depth_interval
        if marks > self._depth_marks:
            self._depth_marks = marks
            return True
        return False

    def excerpt(self, max_chars: int) -> str:
        """The most recent ``max_chars`` of accumulated text."""
        return self.text[-max_chars:] if max_chars > 0 else ""
