"""Fixed-window, per-client request limiting.

The limiter is an owned instance (``app.state.rate_limiter``) with an
injected clock. Stale windows are dropped only when :meth:`RateLimiter.evict`
is called.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request

from visa_audit.core.config import RateLimitConfig
from visa_audit.exceptions import RateLimitExceeded

log = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown-client"


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in: int


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    @classmethod
    def from_config(
        cls, config: RateLimitConfig, *, clock: Callable[[], float] = time.monotonic
    ) -> RateLimiter:
        max_requests, window = config.effective()
        return cls(max_requests, window, clock=clock)

    def __len__(self) -> int:
        return len(self._windows)

    def check(self, client_id: str) -> RateLimitResult:
        """Count one request for ``client_id`` and say whether it is allowed."""
        now = self._clock()
        window = self._windows.get(client_id)
        if window is None or window.reset_at < now:
            window = _Window(count=0, reset_at=now + self.window_seconds)
            self._windows[client_id] = window

        window.count += 1
        return RateLimitResult(
            allowed=window.count <= self.max_requests,
            remaining=max(0, self.max_requests - window.count),
            reset_in=math.ceil(window.reset_at - now),
        )

    def evict(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = self._clock()
        expired = [cid for cid, w in self._windows.items() if w.reset_at < now]
        for cid in expired:
            del self._windows[cid]
        return len(expired)


def client_identifier(request: Request) -> str:
    """First ``X-Forwarded-For`` hop, then ``X-Real-IP``, then a shared fallback."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return UNKNOWN_CLIENT


async def enforce_rate_limit(request: Request) -> None:
    """Route dependency: count the request and raise when over budget.

    Raises:
        RateLimitExceeded: The client used up its window.
    """
    limiter: RateLimiter | None = request.app.state.rate_limiter
    if limiter is None:
        return
    limiter.evict()
    client_id = client_identifier(request)
    result = limiter.check(client_id)
    if not result.allowed:
        log.warning("Rate limit exceeded for %s", client_id)
        raise RateLimitExceeded(result.reset_in, result.remaining)
