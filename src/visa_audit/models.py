"""Pydantic data models for visa-audit.

Wire JSON is camelCase (``docType``, ``extractedText``, ``documentRef``);
Python attributes stay snake_case. Dump with :func:`to_wire` so aliases are
applied and unset optionals are dropped.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Severity = Literal["critical", "warning", "info"]
ComplianceStatus = Literal["met", "warning", "critical", "not_checked"]

ERROR_DOC_TYPE = "error"


class WireModel(BaseModel):
    """Base for every model that crosses the HTTP or SSE boundary."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def to_wire(model: BaseModel) -> dict[str, Any]:
    """Serialize a model the way clients expect to read it."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


class Assessment(str, Enum):
    """Overall verdict of an advisory report."""

    APPLICATION_PROCEEDS = "APPLICATION_PROCEEDS"
    ADDITIONAL_DOCUMENTS_NEEDED = "ADDITIONAL_DOCUMENTS_NEEDED"
    SIGNIFICANT_ISSUES = "SIGNIFICANT_ISSUES"


# ── Requirements ─────────────────────────────────────────────────────


class SourceReference(WireModel):
    """An official source cited by the requirements research."""

    name: str
    url: str = ""
    date_accessed: str | None = None


class RequirementItem(WireModel):
    """One checklist line item. Immutable for the session."""

    name: str
    description: str = ""
    required: bool = True
    source: str | None = None
    uploadable: bool = True
    universal: bool = False
    confidence: Literal["high", "medium", "low"] = "high"
    personalized_detail: str | None = None


class Fees(WireModel):
    visa: str = ""
    service: str | None = None


class ApplicationWindow(WireModel):
    earliest: str
    latest: str


class FinancialThresholds(WireModel):
    daily_minimum: str | None = None
    total_recommended: str | None = None
    currency: str | None = None
    notes: str | None = None


class PostArrivalRegistration(WireModel):
    required: bool
    deadline: str | None = None
    where: str | None = None


class TransitVisaInfo(WireModel):
    warning: str
    applies: str | None = None


class RequirementsChecklist(WireModel):
    """Corridor-specific requirements produced by the research collaborator."""

    corridor: str
    visa_type: str
    visa_required: bool = True
    items: list[RequirementItem] = Field(default_factory=list)
    fees: Fees = Field(default_factory=Fees)
    processing_time: str = ""
    apply_at: str = ""
    important_notes: list[str] = Field(default_factory=list)
    sources: list[SourceReference] | None = None
    application_window: ApplicationWindow | None = None
    common_rejection_reasons: list[str] | None = None
    financial_thresholds: FinancialThresholds | None = None
    post_arrival_registration: PostArrivalRegistration | None = None
    transit_visa_info: TransitVisaInfo | None = None

    def uploadable_items(self) -> list[RequirementItem]:
        return [item for item in self.items if item.uploadable]

    def find_item(self, name: str) -> RequirementItem | None:
        """Exact name first, then fuzzy containment either way."""
        for item in self.items:
            if item.name == name:
                return item
        for item in self.items:
            if names_match(item.name, name):
                return item
        return None


class TravelDetails(WireModel):
    """Trip description handed to the requirements researcher."""

    passports: list[str] = Field(default_factory=list)
    destination: str = ""
    purpose: str = "tourism"
    dates: dict[str, str] = Field(default_factory=dict)
    travelers: int = 1
    event: str | None = None


# ── Documents ────────────────────────────────────────────────────────


class UploadedDocument(WireModel):
    """A base64-encoded document image as received from the client."""

    id: str
    filename: str
    base64: str
    mime_type: str
    size_bytes: int = 0
    requirement_name: str | None = None


class DocumentExtraction(WireModel):
    """Result of reading one document. Never mutated once appended to a session."""

    id: str
    doc_type: str
    language: str = "Unknown"
    extracted_text: str = ""
    structured_data: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.doc_type == ERROR_DOC_TYPE

    @classmethod
    def error(cls, doc_id: str, message: str) -> DocumentExtraction:
        """Sentinel extraction for a read that failed or could not be parsed."""
        return cls(
            id=doc_id,
            doc_type=ERROR_DOC_TYPE,
            language="Unknown",
            extracted_text="",
            structured_data={"error": message},
        )


# ── Compliance ───────────────────────────────────────────────────────


class ComplianceItem(WireModel):
    """Verdict for one requirement given the evidence seen so far."""

    requirement: str
    status: ComplianceStatus
    detail: str = ""
    document_ref: str | None = None


class CrossDocFinding(WireModel):
    """A contradiction or consistency observation spanning documents."""

    severity: Severity
    finding: str
    detail: str | None = None


class CrossCheckResult(WireModel):
    compliance: ComplianceItem
    cross_doc_findings: list[CrossDocFinding] = Field(default_factory=list)


# ── Advisory ─────────────────────────────────────────────────────────


class RemediationItem(WireModel):
    priority: int
    severity: Severity
    issue: str
    fix: str
    document_ref: str | None = None


class AdvisoryReport(WireModel):
    """Prioritized remediation plan. Preliminary or refined, never a mix."""

    overall: Assessment = Assessment.ADDITIONAL_DOCUMENTS_NEEDED
    fixes: list[RemediationItem] = Field(default_factory=list)
    interview_tips: list[str] = Field(default_factory=list)
    corridor_warnings: list[str] = Field(default_factory=list)


# ── Re-audit ─────────────────────────────────────────────────────────

ReauditFixStatus = Literal["fetching", "analyzing", "passed", "failed"]


class ReauditFix(WireModel):
    """A corrected document replacing the evidence for one requirement."""

    id: str
    requirement_name: str
    original_document_id: str | None = None
    document: UploadedDocument


class ReauditProgress(WireModel):
    fix_statuses: dict[str, ReauditFixStatus] = Field(default_factory=dict)
    fix_results: dict[str, ComplianceItem] = Field(default_factory=dict)
    all_passed: bool = False
    overall_complete: bool = False


class AnalysisResult(WireModel):
    """Final aggregate carried by the ``complete`` event of a full analysis."""

    requirements: RequirementsChecklist | None = None
    extractions: list[DocumentExtraction] = Field(default_factory=list)
    compliances: list[ComplianceItem] = Field(default_factory=list)
    cross_doc_findings: list[CrossDocFinding] = Field(default_factory=list)
    advisory: AdvisoryReport | None = None


def names_match(a: str, b: str) -> bool:
    """Case-insensitive containment in either direction."""
    left, right = a.strip().lower(), b.strip().lower()
    if not left or not right:
        return False
    return left in right or right in left


# ── Run analytics ────────────────────────────────────────────────────


class StageMetrics(BaseModel):
    """Timing for one pipeline stage within a run."""

    stage: str
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_ms: float = 0.0
    success_count: int = 0
    error_count: int = 0


class RunAnalytics(BaseModel):
    """Per-request analytics collected by ``hooks.run_tracker``."""

    run_id: str
    session_id: str = ""
    started_at: datetime | None = None
    ended_at: datetime | None = None
    status: Literal["running", "completed", "failed"] = "running"
    stages: list[StageMetrics] = Field(default_factory=list)
    total_duration_ms: float = 0.0

    def finalize(self, status: Literal["completed", "failed"] = "completed") -> None:
        self.ended_at = datetime.now(timezone.utc)
        if self.started_at:
            self.total_duration_ms = (self.ended_at - self.started_at).total_seconds() * 1000
        self.status = status
