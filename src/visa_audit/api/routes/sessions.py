"""Session endpoints: create, inspect, tail events, and re-audit."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import Field

from visa_audit.api.sse import sse_response, stream_response
from visa_audit.api.validation import validate_document
from visa_audit.events import Emit, Event
from visa_audit.exceptions import ReauditError
from visa_audit.models import AdvisoryReport, ReauditFix, RequirementsChecklist, WireModel
from visa_audit.pipeline.channel import tee
from visa_audit.reaudit.orchestrator import ReauditRunner
from visa_audit.session.session import AuditSession

log = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


class CreateSessionRequest(WireModel):
    requirements: RequirementsChecklist


class CreateSessionResponse(WireModel):
    session_id: str
    advisory: AdvisoryReport


class ReauditRequest(WireModel):
    fixes: list[ReauditFix] = Field(default_factory=list)


@router.post("", response_model=CreateSessionResponse, response_model_exclude_none=True)
async def create_session(request: CreateSessionRequest, req: Request) -> CreateSessionResponse:
    """Open a session; the response carries the preliminary advisory."""
    session = req.app.state.sessions.create(request.requirements)
    return CreateSessionResponse(session_id=session.id, advisory=session.state.advisory)


@router.get("/{session_id}")
async def get_session(session_id: str, req: Request) -> dict[str, Any]:
    return req.app.state.sessions.get(session_id).snapshot()


@router.get("/{session_id}/events")
async def session_events(
    session_id: str, req: Request, after: int = Query(default=0, ge=0)
) -> StreamingResponse:
    """Stream the session's event log from ``after``, following it while work is running."""
    session: AuditSession = req.app.state.sessions.get(session_id)

    async def events() -> AsyncIterator[Event]:
        async for _, event in session.tail(after):
            yield event

    return stream_response(events())


@router.post("/{session_id}/reaudit")
async def reaudit(session_id: str, request: ReauditRequest, req: Request) -> StreamingResponse:
    """Re-verify corrected documents and refresh the advisory."""
    settings = req.app.state.settings
    session: AuditSession = req.app.state.sessions.get(session_id)
    if not request.fixes:
        raise ReauditError("No fixes supplied for re-audit")
    for fix in request.fixes:
        validate_document(fix.document, settings.upload)
    runner: ReauditRunner = req.app.state.reaudit

    async def produce(emit: Emit) -> None:
        outcome = await runner.run(session, request.fixes, tee(emit, session.emit))
        log.info("Re-audit %s success=%s", session.id, outcome.success)

    return sse_response(produce, req.app.state.tasks, name=f"reaudit-{session.id}")
