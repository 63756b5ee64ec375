"""Closed, tagged event protocol shared by every pipeline stage and consumer.

Each event is a pydantic model discriminated on ``type``. Producers call an
:data:`Emit` sink; the HTTP layer encodes events as SSE ``data:`` frames and
terminates every stream with :data:`DONE_FRAME`.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import Field, TypeAdapter

from visa_audit.models import (
    Assessment,
    ComplianceItem,
    CrossDocFinding,
    DocumentExtraction,
    ReauditFixStatus,
    Severity,
    SourceReference,
    WireModel,
)

RESEARCH_AGENT = "Research Agent"
DOCUMENT_AGENT = "Document Agent"
ADVISORY_AGENT = "Advisory Agent"

DONE_FRAME = "data: [DONE]\n\n"


class OrchestratorEvent(WireModel):
    type: Literal["orchestrator"] = "orchestrator"
    action: Literal["planning", "agent_start", "agent_complete"]
    agent: str | None = None
    message: str | None = None
    duration_ms: int | None = Field(default=None, alias="duration_ms")


class SearchStatusEvent(WireModel):
    type: Literal["search_status"] = "search_status"
    source: str
    status: Literal["searching", "found", "not_found"]
    url: str | None = None


class RequirementEvent(WireModel):
    type: Literal["requirement"] = "requirement"
    item: str
    detail: str | None = None
    depth: int = 0
    source: str | None = None
    uploadable: bool | None = None
    universal: bool | None = None


class SourcesEvent(WireModel):
    type: Literal["sources"] = "sources"
    sources: list[SourceReference] = Field(default_factory=list)


class ThinkingEvent(WireModel):
    type: Literal["thinking"] = "thinking"
    agent: str
    summary: str
    excerpt: str = ""


class ThinkingDepthEvent(WireModel):
    type: Literal["thinking_depth"] = "thinking_depth"
    agent: str
    tokens: int
    budget: int


class DocumentReadEvent(WireModel):
    type: Literal["document_read"] = "document_read"
    doc: str
    language: str
    doc_type: str | None = None
    duration_ms: int | None = Field(default=None, alias="duration_ms")


class DocAnalysisStartEvent(WireModel):
    type: Literal["doc_analysis_start"] = "doc_analysis_start"
    requirement_name: str
    doc_filename: str


class DocAnalysisThinkingEvent(WireModel):
    type: Literal["doc_analysis_thinking"] = "doc_analysis_thinking"
    requirement_name: str
    excerpt: str


class DocAnalysisResultEvent(WireModel):
    type: Literal["doc_analysis_result"] = "doc_analysis_result"
    requirement_name: str
    compliance: ComplianceItem
    extraction: DocumentExtraction | None = None
    cross_doc_findings: list[CrossDocFinding] | None = None


class RecommendationEvent(WireModel):
    """One remediation step. ``priority`` carries the fix severity."""

    type: Literal["recommendation"] = "recommendation"
    priority: Severity
    action: str
    details: str = ""
    document_ref: str | None = None


class AssessmentEvent(WireModel):
    type: Literal["assessment"] = "assessment"
    overall: Assessment


class AdvisoryTipsEvent(WireModel):
    type: Literal["advisory_tips"] = "advisory_tips"
    interview_tips: list[str] = Field(default_factory=list)
    corridor_warnings: list[str] = Field(default_factory=list)


class ReauditStatusEvent(WireModel):
    type: Literal["reaudit_status"] = "reaudit_status"
    fix_id: str
    status: ReauditFixStatus
    compliance: ComplianceItem | None = None


class ReauditCompleteEvent(WireModel):
    type: Literal["reaudit_complete"] = "reaudit_complete"
    all_passed: bool
    overall: Assessment | None = None


class ErrorEvent(WireModel):
    type: Literal["error"] = "error"
    message: str


class CompleteEvent(WireModel):
    type: Literal["complete"] = "complete"
    data: dict[str, Any] | None = None


Event = Annotated[
    Union[
        OrchestratorEvent,
        SearchStatusEvent,
        RequirementEvent,
        SourcesEvent,
        ThinkingEvent,
        ThinkingDepthEvent,
        DocumentReadEvent,
        DocAnalysisStartEvent,
        DocAnalysisThinkingEvent,
        DocAnalysisResultEvent,
        RecommendationEvent,
        AssessmentEvent,
        AdvisoryTipsEvent,
        ReauditStatusEvent,
        ReauditCompleteEvent,
        ErrorEvent,
        CompleteEvent,
    ],
    Field(discriminator="type"),
]

Emit = Callable[[Event], None]

_event_adapter: TypeAdapter[Event] = TypeAdapter(Event)


def parse_event(payload: dict[str, Any] | str) -> Event:
    """Validate a decoded (or raw JSON) frame payload into a typed event.

    Raises:
        pydantic.ValidationError: Unknown ``type`` or malformed fields.
    """
    if isinstance(payload, str):
        return _event_adapter.validate_json(payload)
    return _event_adapter.validate_python(payload)


def event_to_dict(event: Event) -> dict[str, Any]:
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def encode_sse(event: Event) -> str:
    """Encode one event as a single ``data:`` frame."""
    return f"data: {json.dumps(event_to_dict(event), ensure_ascii=False)}\n\n"
