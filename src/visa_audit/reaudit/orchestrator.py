"""Re-audit loop: verify corrected documents and refresh the advisory.

Each corrected document moves ``fetching -> analyzing -> passed|failed``.
Reads run in parallel; cross-checks go through the session gate in the
order the fixes were submitted, so later fixes see earlier corrections.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from visa_audit.events import (
    DOCUMENT_AGENT,
    Emit,
    OrchestratorEvent,
    ReauditCompleteEvent,
    ReauditStatusEvent,
)
from visa_audit.exceptions import ReauditError
from visa_audit.hooks.run_tracker import track_stage
from visa_audit.models import (
    AdvisoryReport,
    Assessment,
    ComplianceItem,
    ReauditFix,
    ReauditFixStatus,
    ReauditProgress,
)
from visa_audit.pipeline.orchestrator import AuditPipeline, result_event
from visa_audit.session.session import AuditSession
from visa_audit.session.state import DocumentVerified, ReauditFinished, ReauditStarted

log = logging.getLogger(__name__)


@dataclass
class ReauditOutcome:
    progress: ReauditProgress
    report: AdvisoryReport | None

    @property
    def success(self) -> bool:
        """Every fix passed and the refreshed advisory lets the application proceed."""
        return (
            self.progress.all_passed
            and self.report is not None
            and self.report.overall == Assessment.APPLICATION_PROCEEDS
        )


class ReauditRunner:
    """Runs a re-audit against an existing session.

    Args:
        pipeline: Supplies the reader, cross-checker and refiner.
    """

    def __init__(self, pipeline: AuditPipeline) -> None:
        self._pipeline = pipeline

    async def run(self, session: AuditSession, fixes: list[ReauditFix], emit: Emit) -> ReauditOutcome:
        """Re-verify ``fixes`` and re-run the advisory once.

        Raises:
            ReauditError: No fixes were supplied.
        """
        if not fixes:
            raise ReauditError("No fixes supplied for re-audit")

        replaced = {f.original_document_id for f in fixes if f.original_document_id}
        tickets = {fix.id: session.gate.ticket() for fix in fixes}
        progress = ReauditProgress(fix_statuses={fix.id: "fetching" for fix in fixes})

        def set_status(
            fix: ReauditFix, status: ReauditFixStatus, result: ComplianceItem | None = None
        ) -> None:
            progress.fix_statuses[fix.id] = status
            if result is not None:
                progress.fix_results[fix.id] = result
            emit(ReauditStatusEvent(fix_id=fix.id, status=status, compliance=result))

        async def verify(fix: ReauditFix) -> None:
            ticket = tickets[fix.id]
            set_status(fix, "fetching")
            requirement = session.state.requirements.find_item(fix.requirement_name)
            if requirement is None:
                log.warning("Re-audit fix %s names unknown requirement %r", fix.id, fix.requirement_name)
                await session.gate.release(ticket)
                missing = ComplianceItem(
                    requirement=fix.requirement_name,
                    status="not_checked",
                    detail="Could not find matching requirement",
                )
                set_status(fix, "failed", missing)
                return

            try:
                extraction = await self._pipeline.reader.read(fix.document)
                async with session.gate.turn(ticket):
                    set_status(fix, "analyzing")
                    previous = [e for e in session.state.extractions if e.id not in replaced]
                    result = await self._pipeline.checker.check(extraction, requirement, previous, emit)
                    session.apply(
                        DocumentVerified(extraction, result.compliance, tuple(result.cross_doc_findings))
                    )
                    emit(result_event(requirement, extraction, result))
            finally:
                await session.gate.release(ticket)

            set_status(fix, "passed" if result.compliance.status == "met" else "failed", result.compliance)

        with session.work(), track_stage("reaudit") as stage:
            run = session.apply(ReauditStarted()).advisory_run
            started = time.monotonic()
            emit(
                OrchestratorEvent(
                    action="agent_start",
                    agent=DOCUMENT_AGENT,
                    message=f"Re-verifying {len(fixes)} corrected document(s)...",
                )
            )
            await asyncio.gather(*(verify(fix) for fix in fixes))
            emit(
                OrchestratorEvent(
                    action="agent_complete",
                    agent=DOCUMENT_AGENT,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
            )

            progress.all_passed = all(s == "passed" for s in progress.fix_statuses.values())
            stage.success_count = sum(1 for s in progress.fix_statuses.values() if s == "passed")
            stage.error_count = len(fixes) - stage.success_count

            state = session.state
            report = await self._pipeline.refiner.refine(
                state.requirements,
                [e for e in state.extractions if e.id not in replaced],
                list(state.compliances),
                emit,
                preliminary=state.advisory,
            )
            session.apply(ReauditFinished(report, run=run))
            progress.overall_complete = True
            emit(
                ReauditCompleteEvent(
                    all_passed=progress.all_passed,
                    overall=report.overall if report is not None else None,
                )
            )

        log.info(
            "Re-audit of session %s finished: %d/%d fixes passed",
            session.id,
            stage.success_count,
            len(fixes),
        )
        return ReauditOutcome(progress=progress, report=report)
