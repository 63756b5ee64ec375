"""Fold an ordered event list into the state a client renders.

:func:`reconstruct` is a pure function of the event list: it rebuilds
everything from scratch on each call, so replaying the same events always
gives the same view and a client may discard its view at any time.
"""

from __future__ import annotations

from typing import Any, Iterable, Literal

from pydantic import Field

from visa_audit.advisory.builder import fold_compliances
from visa_audit.events import (
    AdvisoryTipsEvent,
    AssessmentEvent,
    CompleteEvent,
    DocAnalysisResultEvent,
    DocAnalysisStartEvent,
    DocAnalysisThinkingEvent,
    ErrorEvent,
    Event,
    OrchestratorEvent,
    ReauditCompleteEvent,
    ReauditStatusEvent,
    RecommendationEvent,
    RequirementEvent,
    SearchStatusEvent,
    SourcesEvent,
    ThinkingDepthEvent,
    ThinkingEvent,
)
from visa_audit.models import (
    AdvisoryReport,
    Assessment,
    ComplianceItem,
    CrossDocFinding,
    DocumentExtraction,
    ReauditProgress,
    RemediationItem,
    RequirementItem,
    RequirementsChecklist,
    SourceReference,
    WireModel,
    names_match,
)

RequirementStatus = Literal["pending", "uploaded", "analyzing", "passed", "warning", "flagged", "error"]
AgentStatus = Literal["active", "complete"]

_STATUS_RANK: dict[str, int] = {
    "pending": 0,
    "uploaded": 1,
    "analyzing": 2,
    "passed": 3,
    "warning": 3,
    "flagged": 3,
    "error": 3,
}

_FIX_RANK: dict[str, int] = {"fetching": 0, "analyzing": 1, "passed": 2, "failed": 2}

_COMPLIANCE_STATUS: dict[str, RequirementStatus] = {
    "met": "passed",
    "warning": "warning",
    "critical": "flagged",
    "not_checked": "error",
}


def normalize_agent_name(name: str) -> str:
    """Map server agent names ("Document Agent (Reading)") to short keys."""
    lower = name.lower()
    for key in ("research", "document", "advisory"):
        if key in lower:
            return key
    return lower


# ── View models ─────────────────────────────────────────────────────


class RequirementState(WireModel):
    status: RequirementStatus = "pending"
    filename: str | None = None
    thinking: str | None = None
    compliance: ComplianceItem | None = None
    cross_doc_findings: list[CrossDocFinding] = Field(default_factory=list)
    extraction: DocumentExtraction | None = None

    @property
    def terminal(self) -> bool:
        return _STATUS_RANK[self.status] == 3


class AgentThinking(WireModel):
    summary: str = ""
    excerpt: str = ""
    tokens: int | None = None
    budget: int | None = None


class SourceStatus(WireModel):
    status: Literal["searching", "found", "not_found"]
    url: str | None = None


class AuditView(WireModel):
    """Everything a client derives from the event stream."""

    requirements: list[RequirementItem] = Field(default_factory=list)
    requirement_states: list[RequirementState] = Field(default_factory=list)
    agent_status: dict[str, AgentStatus] = Field(default_factory=dict)
    thinking: dict[str, AgentThinking] = Field(default_factory=dict)
    searches: dict[str, SourceStatus] = Field(default_factory=dict)
    sources: list[SourceReference] = Field(default_factory=list)
    extractions: list[DocumentExtraction] = Field(default_factory=list)
    compliances: list[ComplianceItem] = Field(default_factory=list)
    cross_doc_findings: list[CrossDocFinding] = Field(default_factory=list)
    advisory: AdvisoryReport | None = None
    advisory_generation: Literal["none", "preliminary", "refined"] = "none"
    advisory_running: bool = False
    reaudit: ReauditProgress | None = None
    error: str | None = None
    result: dict[str, Any] | None = None

    @property
    def analyzed_count(self) -> int:
        return sum(1 for s in self.requirement_states if s.status in ("passed", "warning", "flagged"))


# ── Fold ────────────────────────────────────────────────────────────


class _Fold:
    def __init__(self, checklist: RequirementsChecklist | None) -> None:
        self.checklist = checklist
        self.requirements: list[RequirementItem] = list(checklist.items) if checklist else []
        self.states: list[RequirementState] = [RequirementState() for _ in self.requirements]
        self.agents: dict[str, AgentStatus] = {}
        self.thinking: dict[str, AgentThinking] = {}
        self.searches: dict[str, SourceStatus] = {}
        self.sources: dict[str, SourceReference] = {}
        self.extractions: list[DocumentExtraction] = []
        self.compliances: dict[str, ComplianceItem] = {}
        self.findings: list[CrossDocFinding] = []
        self.error: str | None = None
        self.result: dict[str, Any] | None = None
        self.reaudit: ReauditProgress | None = None

        # Current advisory run; reset on each advisory agent_start.
        self.recommendations: list[RecommendationEvent] = []
        self.assessment: Assessment | None = None
        self.tips: AdvisoryTipsEvent | None = None
        self.advisory_running = False
        self.refined: AdvisoryReport | None = None

    # requirement lookup

    def index_for(self, name: str) -> int:
        for i, item in enumerate(self.requirements):
            if item.name == name:
                return i
        for i, item in enumerate(self.requirements):
            if names_match(item.name, name):
                return i
        self.requirements.append(RequirementItem(name=name))
        self.states.append(RequirementState())
        return len(self.requirements) - 1

    def advance(self, index: int, status: RequirementStatus, **changes: Any) -> None:
        """Move a requirement forward. Terminal states may be replaced by a newer verdict."""
        current = self.states[index]
        if _STATUS_RANK[status] < _STATUS_RANK[current.status]:
            return
        self.states[index] = current.model_copy(update={"status": status, **changes})

    # preliminary advisory

    def preliminary(self) -> AdvisoryReport | None:
        if not self.requirements:
            return None
        checklist = self.checklist
        if checklist is None or len(checklist.items) != len(self.requirements):
            base = checklist or RequirementsChecklist(corridor="", visa_type="")
            checklist = base.model_copy(update={"items": list(self.requirements)})
        return fold_compliances(checklist, list(self.compliances.values()))

    # event handlers

    def apply(self, event: Event) -> None:
        handler = getattr(self, f"on_{event.type}", None)
        if handler is not None:
            handler(event)

    def on_orchestrator(self, event: OrchestratorEvent) -> None:
        if not event.agent:
            return
        key = normalize_agent_name(event.agent)
        if event.action == "agent_start":
            self.agents[key] = "active"
            if key == "advisory":
                self.recommendations = []
                self.assessment = None
                self.tips = None
                self.advisory_running = True
        elif event.action == "agent_complete":
            self.agents[key] = "complete"
            if key == "advisory":
                self.advisory_running = False
                self.finish_advisory()

    def finish_advisory(self) -> None:
        if self.assessment is None:
            return
        fixes = [
            RemediationItem(
                priority=i,
                severity=rec.priority,
                issue=rec.details,
                fix=rec.action,
                document_ref=rec.document_ref,
            )
            for i, rec in enumerate(self.recommendations, start=1)
        ]
        fallback = self.preliminary()
        tips = self.tips.interview_tips if self.tips else []
        warnings = self.tips.corridor_warnings if self.tips else []
        self.refined = AdvisoryReport(
            overall=self.assessment,
            fixes=fixes,
            interview_tips=tips or (fallback.interview_tips if fallback else []),
            corridor_warnings=warnings or (fallback.corridor_warnings if fallback else []),
        )

    def on_thinking(self, event: ThinkingEvent) -> None:
        key = normalize_agent_name(event.agent)
        previous = self.thinking.get(key, AgentThinking())
        self.thinking[key] = previous.model_copy(update={"summary": event.summary, "excerpt": event.excerpt})

    def on_thinking_depth(self, event: ThinkingDepthEvent) -> None:
        key = normalize_agent_name(event.agent)
        previous = self.thinking.get(key, AgentThinking())
        self.thinking[key] = previous.model_copy(update={"tokens": event.tokens, "budget": event.budget})

    def on_search_status(self, event: SearchStatusEvent) -> None:
        self.searches[event.source] = SourceStatus(status=event.status, url=event.url)

    def on_sources(self, event: SourcesEvent) -> None:
        for source in event.sources:
            self.sources[source.name] = source

    def on_requirement(self, event: RequirementEvent) -> None:
        if any(item.name == event.item for item in self.requirements):
            return
        self.requirements.append(
            RequirementItem(
                name=event.item,
                description=event.detail or "",
                source=event.source,
                uploadable=True if event.uploadable is None else event.uploadable,
                universal=bool(event.universal),
            )
        )
        self.states.append(RequirementState())

    def on_doc_analysis_start(self, event: DocAnalysisStartEvent) -> None:
        index = self.index_for(event.requirement_name)
        self.advance(index, "analyzing", filename=event.doc_filename, thinking="Reading document...")

    def on_doc_analysis_thinking(self, event: DocAnalysisThinkingEvent) -> None:
        index = self.index_for(event.requirement_name)
        if self.states[index].terminal:
            return
        self.advance(index, "analyzing", thinking=event.excerpt)

    def on_doc_analysis_result(self, event: DocAnalysisResultEvent) -> None:
        index = self.index_for(event.requirement_name)
        findings = list(event.cross_doc_findings or [])
        self.advance(
            index,
            _COMPLIANCE_STATUS[event.compliance.status],
            compliance=event.compliance,
            cross_doc_findings=findings,
            extraction=event.extraction,
            thinking=None,
        )
        if event.extraction is not None:
            self.extractions.append(event.extraction)
        self.compliances.pop(event.compliance.requirement, None)
        self.compliances[event.compliance.requirement] = event.compliance
        self.findings.extend(findings)

    def on_recommendation(self, event: RecommendationEvent) -> None:
        self.recommendations.append(event)

    def on_assessment(self, event: AssessmentEvent) -> None:
        self.assessment = event.overall

    def on_advisory_tips(self, event: AdvisoryTipsEvent) -> None:
        self.tips = event

    def on_reaudit_status(self, event: ReauditStatusEvent) -> None:
        if self.reaudit is None or self.reaudit.overall_complete:
            self.reaudit = ReauditProgress()
        statuses = dict(self.reaudit.fix_statuses)
        current = statuses.get(event.fix_id)
        if current in ("passed", "failed"):
            return
        if current is not None and _FIX_RANK[event.status] < _FIX_RANK[current]:
            return
        statuses[event.fix_id] = event.status
        results = dict(self.reaudit.fix_results)
        if event.compliance is not None:
            results[event.fix_id] = event.compliance
        self.reaudit = self.reaudit.model_copy(update={"fix_statuses": statuses, "fix_results": results})

    def on_reaudit_complete(self, event: ReauditCompleteEvent) -> None:
        progress = self.reaudit or ReauditProgress()
        self.reaudit = progress.model_copy(update={"all_passed": event.all_passed, "overall_complete": True})

    def on_error(self, event: ErrorEvent) -> None:
        self.error = event.message

    def on_complete(self, event: CompleteEvent) -> None:
        self.result = event.data

    def view(self) -> AuditView:
        if self.refined is not None:
            advisory, generation = self.refined, "refined"
        else:
            advisory = self.preliminary()
            generation = "preliminary" if advisory is not None else "none"
        return AuditView(
            requirements=list(self.requirements),
            requirement_states=list(self.states),
            agent_status=dict(self.agents),
            thinking=dict(self.thinking),
            searches=dict(self.searches),
            sources=list(self.sources.values()),
            extractions=list(self.extractions),
            compliances=list(self.compliances.values()),
            cross_doc_findings=list(self.findings),
            advisory=advisory,
            advisory_generation=generation,
            advisory_running=self.advisory_running,
            reaudit=self.reaudit,
            error=self.error,
            result=self.result,
        )


def reconstruct(events: Iterable[Event], checklist: RequirementsChecklist | None = None) -> AuditView:
    """Left-fold ``events`` (in arrival order) into an :class:`AuditView`.

    Args:
        events: Events in the order they arrived.
        checklist: The session checklist, when the client already has it.
            Without one, requirements are taken from ``requirement`` events.

    Returns:
        A fresh view. The input is never mutated.
    """
    fold = _Fold(checklist)
    for event in events:
        fold.apply(event)
    return fold.view()
