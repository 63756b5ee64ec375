"""Analysis endpoints: full pipeline and single incremental document."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import Field

from visa_audit.api.sse import sse_response
from visa_audit.api.validation import validate_document
from visa_audit.events import Emit
from visa_audit.exceptions import InvalidRequestError
from visa_audit.models import (
    DocumentExtraction,
    RequirementItem,
    RequirementsChecklist,
    TravelDetails,
    UploadedDocument,
    WireModel,
)
from visa_audit.pipeline.channel import tee
from visa_audit.pipeline.orchestrator import AuditPipeline

log = logging.getLogger(__name__)

router = APIRouter(tags=["analysis"])


class AnalyzeRequest(WireModel):
    """Full analysis of a batch of documents."""

    requirements: RequirementsChecklist | None = None
    travel_details: TravelDetails | None = None
    documents: list[UploadedDocument] = Field(default_factory=list)


class AnalyzeDocumentRequest(WireModel):
    """One document uploaded against one requirement."""

    document: UploadedDocument
    requirement: RequirementItem
    previous_extractions: list[DocumentExtraction] = Field(default_factory=list)
    session_id: str | None = None


@router.post("/analyze")
async def analyze(request: AnalyzeRequest, req: Request) -> StreamingResponse:
    """Read every document in parallel, cross-check in order, then refine the advisory."""
    settings = req.app.state.settings
    pipeline: AuditPipeline = req.app.state.pipeline

    if request.requirements is None and (request.travel_details is None or not pipeline.has_researcher):
        raise InvalidRequestError("Provide requirements, or travel details with a configured researcher")
    for document in request.documents:
        validate_document(document, settings.upload)

    async def produce(emit: Emit) -> None:
        await pipeline.run_full(
            request.documents,
            emit,
            requirements=request.requirements,
            travel=request.travel_details,
        )

    log.info("Full analysis of %d documents", len(request.documents))
    return sse_response(produce, req.app.state.tasks, name="analyze")


@router.post("/analyze/document")
async def analyze_document(request: AnalyzeDocumentRequest, req: Request) -> StreamingResponse:
    """Read one document and cross-check it against its requirement.

    With ``sessionId`` the session's extraction list is the context and the
    events are also appended to the session log; otherwise
    ``previousExtractions`` is used as given.
    """
    settings = req.app.state.settings
    pipeline: AuditPipeline = req.app.state.pipeline

    validate_document(request.document, settings.upload)
    session = req.app.state.sessions.get(request.session_id) if request.session_id else None
    requirement = request.requirement
    if session is not None:
        requirement = session.state.requirements.find_item(requirement.name) or requirement

    async def produce(emit: Emit) -> None:
        sink = tee(emit, session.emit) if session is not None else emit
        await pipeline.analyze_document(
            request.document,
            requirement,
            sink,
            session=session,
            previous=request.previous_extractions,
        )

    return sse_response(produce, req.app.state.tasks, name=f"analyze-{request.document.id}")
