"""Session-scoped audit state."""

from __future__ import annotations

from visa_audit.session.session import AuditSession, EventLog
from visa_audit.session.state import (
    DocumentVerified,
    PipelineStage,
    ReauditFinished,
    ReauditStarted,
    RefinementFinished,
    RefinementStarted,
    SessionState,
    transition,
)
from visa_audit.session.store import SessionStore

__all__ = [
    "AuditSession",
    "DocumentVerified",
    "EventLog",
    "PipelineStage",
    "ReauditFinished",
    "ReauditStarted",
    "RefinementFinished",
    "RefinementStarted",
    "SessionState",
    "SessionStore",
    "transition",
]
