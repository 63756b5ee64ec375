"""In-memory session store with TTL eviction.

Eviction is explicit: callers (the API middleware, tests) invoke
:meth:`SessionStore.evict`; there is no background timer.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from visa_audit.core.config import SchedulerConfig, SessionConfig
from visa_audit.exceptions import SessionNotFoundError
from visa_audit.models import RequirementsChecklist
from visa_audit.session.session import AuditSession

log = logging.getLogger(__name__)


class SessionStore:
    def __init__(
        self,
        config: SessionConfig | None = None,
        *,
        scheduler_config: SchedulerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        config = config or SessionConfig()
        self._ttl = config.ttl_seconds
        self._max_sessions = config.max_sessions
        self._scheduler_config = scheduler_config
        self._clock = clock
        self._sessions: dict[str, AuditSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(self, requirements: RequirementsChecklist) -> AuditSession:
        self.evict()
        if len(self._sessions) >= self._max_sessions:
            self._drop_least_recent()
        session = AuditSession(
            requirements, scheduler_config=self._scheduler_config, clock=self._clock
        )
        self._sessions[session.id] = session
        log.info("Session %s created (%d requirements)", session.id, len(requirements.items))
        return session

    def get(self, session_id: str) -> AuditSession:
        """Return the session and refresh its TTL.

        Raises:
            SessionNotFoundError: Unknown or evicted id.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        session.touch()
        return session

    def evict(self) -> int:
        """Drop idle sessions older than the TTL. Returns how many were removed."""
        now = self._clock()
        expired = [
            sid
            for sid, s in self._sessions.items()
            if not s.busy and now - s.last_seen > self._ttl
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            log.info("Evicted %d expired sessions", len(expired))
        return len(expired)

    def _drop_least_recent(self) -> None:
        idle = [s for s in self._sessions.values() if not s.busy]
        if not idle:
            return
        oldest = min(idle, key=lambda s: s.last_seen)
        del self._sessions[oldest.id]
        log.warning("Session store full, dropped least recent session %s", oldest.id)
