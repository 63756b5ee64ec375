"""Per-run analytics tracker using ContextVars.

A run wraps one HTTP request or CLI invocation. Stages (``read``,
``cross_check``, ``advisory``, ``reaudit``) are timed with ``track_stage``
and the stage name is bound into the structlog context while it runs.

Usage::

    analytics = start_run(session_id="abc123")
    with track_stage("cross_check") as stage:
        stage.success_count = 1
    analytics = end_run()
    print(analytics.total_duration_ms)
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Generator

import structlog

from visa_audit.models import RunAnalytics, StageMetrics

_current_run: ContextVar[RunAnalytics | None] = ContextVar("visa_audit_current_run", default=None)


def get_current_run() -> RunAnalytics | None:
    """Get the active RunAnalytics, or None if no run is active."""
    return _current_run.get()


def start_run(session_id: str = "", run_id: str | None = None) -> RunAnalytics:
    """Create and activate a new RunAnalytics for the current context."""
    analytics = RunAnalytics(
        run_id=run_id or uuid.uuid4().hex[:12],
        session_id=session_id,
        started_at=datetime.now(timezone.utc),
        status="running",
    )
    _current_run.set(analytics)
    structlog.contextvars.bind_contextvars(run_id=analytics.run_id)
    if session_id:
        structlog.contextvars.bind_contextvars(session_id=session_id)
    return analytics


def end_run(status: str = "completed") -> RunAnalytics | None:
    """Finalize the current run and return its analytics. Returns None if no run is active."""
    analytics = _current_run.get()
    if analytics is None:
        return None

    analytics.finalize("failed" if status == "failed" else "completed")
    _current_run.set(None)
    structlog.contextvars.unbind_contextvars("run_id", "session_id")
    return analytics


@contextmanager
def track_stage(name: str) -> Generator[StageMetrics, None, None]:
    """Context manager that records a StageMetrics entry on the current run.

    No-op bookkeeping if no run is active; the stage name is still bound for logging.
    """
    analytics = _current_run.get()
    stage = StageMetrics(stage=name, started_at=datetime.now(timezone.utc))
    structlog.contextvars.bind_contextvars(stage=name)

    try:
        yield stage
    finally:
        stage.ended_at = datetime.now(timezone.utc)
        if stage.started_at:
            stage.duration_ms = (stage.ended_at - stage.started_at).total_seconds() * 1000

        if analytics is not None:
            analytics.stages.append(stage)

        structlog.contextvars.unbind_contextvars("stage")
