"""Audit flows: full batch analysis, incremental uploads, and refinement.

Every flow reports progress through an :data:`Emit` sink and returns its
final result from the coroutine; the two never share a channel.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from visa_audit.advisory.matching import best_match
from visa_audit.advisory.refiner import AdvisoryRefiner
from visa_audit.advisory.scheduler import EarlyTriggerScheduler, analyzed_count
from visa_audit.agents.cross_checker import CrossChecker
from visa_audit.agents.document_reader import DocumentReader
from visa_audit.agents.streaming import Clock
from visa_audit.core.config import AppSettings
from visa_audit.events import (
    DOCUMENT_AGENT,
    RESEARCH_AGENT,
    CompleteEvent,
    DocAnalysisResultEvent,
    DocAnalysisStartEvent,
    DocAnalysisThinkingEvent,
    Emit,
    ErrorEvent,
    OrchestratorEvent,
    RequirementEvent,
    SourcesEvent,
)
from visa_audit.exceptions import VisaAuditError
from visa_audit.hooks.run_tracker import track_stage
from visa_audit.interfaces.research import RequirementsResearcher
from visa_audit.models import (
    AdvisoryReport,
    AnalysisResult,
    CrossCheckResult,
    DocumentExtraction,
    RequirementItem,
    RequirementsChecklist,
    TravelDetails,
    UploadedDocument,
    to_wire,
)
from visa_audit.pipeline.channel import TaskRegistry
from visa_audit.session.session import AuditSession
from visa_audit.session.state import (
    DocumentVerified,
    RefinementFinished,
    RefinementStarted,
    SessionState,
    transition,
)

log = logging.getLogger(__name__)


def announce_requirements(requirements: RequirementsChecklist, emit: Emit) -> None:
    """Emit the checklist as ``requirement`` (and ``sources``) events."""
    for item in requirements.items:
        emit(
            RequirementEvent(
                item=item.name,
                detail=item.description,
                depth=0,
                source=item.source,
                uploadable=item.uploadable,
                universal=item.universal,
            )
        )
    if requirements.sources:
        emit(SourcesEvent(sources=requirements.sources))


def result_event(
    requirement: RequirementItem, extraction: DocumentExtraction, result: CrossCheckResult
) -> DocAnalysisResultEvent:
    return DocAnalysisResultEvent(
        requirement_name=requirement.name,
        compliance=result.compliance,
        extraction=extraction,
        cross_doc_findings=result.cross_doc_findings or None,
    )


def _read_summary(extraction: DocumentExtraction, requirement: RequirementItem) -> str:
    if extraction.is_error:
        return "Read failed: the document could not be read."
    return (
        f"Read complete: {extraction.doc_type} ({extraction.language}). "
        f'Cross-checking against "{requirement.name}"...'
    )


class AuditPipeline:
    """Wires the reader, cross-checker and refiner into the audit flows.

    Args:
        client: Shared LLM client (its semaphore caps in-flight calls).
        settings: Application settings.
        researcher: Optional collaborator used when a full analysis arrives
            without a checklist.
        tasks: Registry holding detached refinement tasks.
        clock: Monotonic clock shared by thinking throttles.
    """

    def __init__(
        self,
        client,
        settings: AppSettings,
        *,
        researcher: RequirementsResearcher | None = None,
        tasks: TaskRegistry | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._settings = settings
        self._researcher = researcher
        self.tasks = tasks or TaskRegistry()
        self.reader = DocumentReader(client, max_tokens=settings.llm.read_max_tokens)
        self.checker = CrossChecker(client, settings, clock=clock)
        self.refiner = AdvisoryRefiner(client, settings, clock=clock)

    @property
    def has_researcher(self) -> bool:
        return self._researcher is not None

    # ── Requirement matching ────────────────────────────────────────

    def match_requirement(
        self,
        requirements: RequirementsChecklist,
        document: UploadedDocument,
        extraction: DocumentExtraction,
    ) -> RequirementItem | None:
        """The requirement a document was uploaded for, declared or inferred."""
        if document.requirement_name:
            item = requirements.find_item(document.requirement_name)
            if item is not None:
                return item
        candidates = requirements.uploadable_items()
        names = [c.name for c in candidates]
        stem = document.filename.rsplit(".", 1)[0]
        for query in (extraction.doc_type, stem, f"{extraction.doc_type} {stem}"):
            index = best_match(query, names, min_overlap=self._settings.scheduler.match_min_overlap)
            if index is not None:
                return candidates[index]
        return None

    # ── Full analysis ───────────────────────────────────────────────

    async def run_full(
        self,
        documents: list[UploadedDocument],
        emit: Emit,
        *,
        requirements: RequirementsChecklist | None = None,
        travel: TravelDetails | None = None,
    ) -> AnalysisResult | None:
        """Batch read, sequential cross-checks, and scheduler-triggered refinement.

        Returns None, after emitting ``error``, when the researcher could not
        produce a checklist. No ``complete`` event is sent in that case.

        Raises:
            VisaAuditError: No checklist was given and no researcher can produce one.
        """
        emit(
            OrchestratorEvent(
                action="planning",
                message=f"Planning analysis of {len(documents)} documents...",
            )
        )

        with track_stage("read"):
            if requirements is None:
                if self._researcher is None or travel is None:
                    raise VisaAuditError("Requirements or travel details with a researcher are needed")
                researched, extractions = await asyncio.gather(
                    self._research(travel, emit),
                    self.reader.read_batch(documents, emit),
                )
                if researched is None:
                    return None
                requirements = researched
            else:
                announce_requirements(requirements, emit)
                extractions = await self.reader.read_batch(documents, emit)

        state = SessionState.start(requirements)
        scheduler = EarlyTriggerScheduler(
            len(requirements.uploadable_items()), self._settings.scheduler
        )
        refinement: asyncio.Task[AdvisoryReport | None] | None = None

        started = time.monotonic()
        emit(
            OrchestratorEvent(
                action="agent_start",
                agent=DOCUMENT_AGENT,
                message="Verifying documents against requirements...",
            )
        )
        with track_stage("cross_check") as stage:
            for document, extraction in zip(documents, extractions):
                requirement = self.match_requirement(requirements, document, extraction)
                if requirement is None:
                    log.info("No requirement matched %s; recorded without a check", document.filename)
                    state = transition(state, DocumentVerified(extraction))
                    continue

                emit(DocAnalysisStartEvent(requirement_name=requirement.name, doc_filename=document.filename))
                result = await self.checker.check(extraction, requirement, list(state.extractions), emit)
                state = transition(
                    state,
                    DocumentVerified(extraction, result.compliance, tuple(result.cross_doc_findings)),
                )
                emit(result_event(requirement, extraction, result))
                stage.success_count += 1

                if refinement is None and scheduler.observe(analyzed_count(list(state.compliances))):
                    state = transition(state, RefinementStarted())
                    refinement = asyncio.create_task(self._refine_snapshot(state, emit))

        emit(
            OrchestratorEvent(
                action="agent_complete",
                agent=DOCUMENT_AGENT,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        )

        if refinement is None:
            scheduler.finish()
            state = transition(state, RefinementStarted())
            refinement = asyncio.create_task(self._refine_snapshot(state, emit))
        with track_stage("advisory"):
            report = await refinement
        state = transition(state, RefinementFinished(report))

        result = AnalysisResult(
            requirements=requirements,
            extractions=list(state.extractions),
            compliances=list(state.compliances),
            cross_doc_findings=list(state.findings),
            advisory=state.advisory,
        )
        emit(CompleteEvent(data=to_wire(result)))
        return result

    async def _research(self, travel: TravelDetails, emit: Emit) -> RequirementsChecklist | None:
        """Run the researcher; a failure becomes ``error`` plus the research agent's ``agent_complete``."""
        started = time.monotonic()
        try:
            return await self._researcher.research(travel, emit)
        except Exception as e:
            log.exception("Requirements research failed")
            emit(ErrorEvent(message=f"Research agent error: {e}"))
            emit(
                OrchestratorEvent(
                    action="agent_complete",
                    agent=RESEARCH_AGENT,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
            )
            return None

    async def _refine_snapshot(self, state: SessionState, emit: Emit) -> AdvisoryReport | None:
        return await self.refiner.refine(
            state.requirements,
            list(state.extractions),
            list(state.compliances),
            emit,
            preliminary=state.advisory,
        )

    # ── Incremental upload ──────────────────────────────────────────

    async def analyze_document(
        self,
        document: UploadedDocument,
        requirement: RequirementItem,
        emit: Emit,
        *,
        session: AuditSession | None = None,
        previous: list[DocumentExtraction] | None = None,
    ) -> CrossCheckResult:
        """Read one document and cross-check it against one requirement.

        With a ``session`` the session's extraction list is authoritative and
        the cross-check waits for every earlier upload of that session.
        Without one, ``previous`` is used as the context as given.
        """
        ticket = session.gate.ticket() if session is not None else 0

        emit(DocAnalysisStartEvent(requirement_name=requirement.name, doc_filename=document.filename))
        emit(DocAnalysisThinkingEvent(requirement_name=requirement.name, excerpt="Reading document..."))

        if session is None:
            extraction = await self.reader.read(document)
            emit(
                DocAnalysisThinkingEvent(
                    requirement_name=requirement.name, excerpt=_read_summary(extraction, requirement)
                )
            )
            result = await self.checker.check(extraction, requirement, list(previous or []), emit)
            emit(result_event(requirement, extraction, result))
            return result

        with session.work():
            try:
                extraction = await self.reader.read(document)
                emit(
                    DocAnalysisThinkingEvent(
                        requirement_name=requirement.name, excerpt=_read_summary(extraction, requirement)
                    )
                )
                async with session.gate.turn(ticket):
                    with track_stage("cross_check"):
                        result = await self.checker.check(
                            extraction, requirement, list(session.state.extractions), emit
                        )
                    session.apply(
                        DocumentVerified(extraction, result.compliance, tuple(result.cross_doc_findings))
                    )
                    emit(result_event(requirement, extraction, result))
            finally:
                await session.gate.release(ticket)
            self.maybe_refine(session)
        return result

    # ── Session refinement ──────────────────────────────────────────

    def maybe_refine(self, session: AuditSession) -> bool:
        """Start refinement if the session's scheduler fires now."""
        if session.scheduler.observe(analyzed_count(list(session.state.compliances))):
            self.start_refinement(session)
            return True
        return False

    def start_refinement(self, session: AuditSession) -> None:
        """Spawn the session's one refinement; its events land in the session log."""
        snapshot = session.apply(RefinementStarted())
        release = session.begin_work()
        self.tasks.spawn(
            self._refine_session(session, snapshot, release),
            name=f"refine-{session.id}",
        )

    async def _refine_session(
        self, session: AuditSession, snapshot: SessionState, release: Callable[[], None]
    ) -> None:
        try:
            with track_stage("advisory"):
                report = await self._refine_snapshot(snapshot, session.emit)
            session.apply(RefinementFinished(report, run=snapshot.advisory_run))
        finally:
            release()
