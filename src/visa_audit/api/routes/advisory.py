"""Stateless advisory refinement endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import Field

from visa_audit.advisory.builder import fold_compliances
from visa_audit.api.sse import sse_response
from visa_audit.events import Emit
from visa_audit.models import (
    ComplianceItem,
    DocumentExtraction,
    RemediationItem,
    RequirementsChecklist,
    WireModel,
)
from visa_audit.pipeline.orchestrator import AuditPipeline

router = APIRouter(tags=["advisory"])


class AdvisoryRequest(WireModel):
    requirements: RequirementsChecklist
    extractions: list[DocumentExtraction] = Field(default_factory=list)
    compliances: list[ComplianceItem] = Field(default_factory=list)
    preliminary_fixes: list[RemediationItem] | None = None


@router.post("/advisory")
async def advisory(request: AdvisoryRequest, req: Request) -> StreamingResponse:
    """Refine the advisory from the supplied evidence.

    The deterministic draft is rebuilt from ``compliances``; supplied
    ``preliminaryFixes`` replace its fixes as the rewriting seed.
    """
    pipeline: AuditPipeline = req.app.state.pipeline
    preliminary = fold_compliances(request.requirements, request.compliances)
    if request.preliminary_fixes:
        preliminary = preliminary.model_copy(update={"fixes": list(request.preliminary_fixes)})

    async def produce(emit: Emit) -> None:
        await pipeline.refiner.refine(
            request.requirements,
            request.extractions,
            request.compliances,
            emit,
            preliminary=preliminary,
        )

    return sse_response(produce, req.app.state.tasks, name="advisory")
