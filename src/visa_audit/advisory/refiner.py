"""Advisory refiner: one streamed synthesis call that rewrites the draft.

The refiner tolerates partial evidence (it usually starts before the last
documents are verified). An unparsable reply falls back to the preliminary
fixes; a failed call emits ``error`` plus ``agent_complete`` so consumers
never wait on a completion that will not arrive.
"""

from __future__ import annotations

import logging
import time

from pydantic import ValidationError

from visa_audit.advisory.matching import best_match
from visa_audit.agents.context import summarize_extractions
from visa_audit.agents.streaming import Clock, ThinkingThrottle
from visa_audit.core.config import AppSettings
from visa_audit.events import (
    ADVISORY_AGENT,
    AdvisoryTipsEvent,
    AssessmentEvent,
    Emit,
    ErrorEvent,
    OrchestratorEvent,
    RecommendationEvent,
    ThinkingDepthEvent,
    ThinkingEvent,
)
from visa_audit.exceptions import JSONParseError, LLMClientError
from visa_audit.models import (
    AdvisoryReport,
    Assessment,
    ComplianceItem,
    DocumentExtraction,
    RemediationItem,
    RequirementsChecklist,
)
from visa_audit.prompts import get_prompt
from visa_audit.providers import LLMClient, extract_json_object

log = logging.getLogger(__name__)

_SUMMARY_REVIEWING = "Reviewing application"
_SUMMARY_COMPILING = "Compiling advisory"


def fallback_report(preliminary: AdvisoryReport | None) -> AdvisoryReport:
    """Safe report used when the model reply cannot be parsed."""
    if preliminary is None:
        return AdvisoryReport(overall=Assessment.ADDITIONAL_DOCUMENTS_NEEDED)
    return AdvisoryReport(
        overall=Assessment.ADDITIONAL_DOCUMENTS_NEEDED,
        fixes=[f.model_copy() for f in preliminary.fixes],
        interview_tips=list(preliminary.interview_tips),
        corridor_warnings=list(preliminary.corridor_warnings),
    )


def parse_advisory(reply: str, preliminary: AdvisoryReport | None = None) -> AdvisoryReport:
    """Parse the model's report, falling back to the preliminary draft on any defect."""
    try:
        parsed = extract_json_object(reply)
        overall = Assessment(parsed["overall"])
    except (JSONParseError, KeyError, ValueError) as e:
        log.warning("Advisory reply unusable, falling back to preliminary fixes: %s", e)
        return fallback_report(preliminary)

    fixes: list[RemediationItem] = []
    for i, raw in enumerate(parsed.get("fixes") or [], start=1):
        if not isinstance(raw, dict):
            continue
        try:
            fixes.append(RemediationItem.model_validate({"priority": i, **raw}))
        except ValidationError as e:
            log.debug("Dropping malformed fix %d: %s", i, e.errors()[:1])
    fixes.sort(key=lambda f: f.priority)
    fixes = [f.model_copy(update={"priority": i}) for i, f in enumerate(fixes, start=1)]

    def _strings(key: str, default: list[str]) -> list[str]:
        raw = parsed.get(key)
        if isinstance(raw, str):
            raw = [raw]
        if not isinstance(raw, list):
            return list(default)
        values = [str(v) for v in raw if v]
        return values or list(default)

    return AdvisoryReport(
        overall=overall,
        fixes=fixes,
        interview_tips=_strings("interviewTips", preliminary.interview_tips if preliminary else []),
        corridor_warnings=_strings(
            "corridorWarnings", preliminary.corridor_warnings if preliminary else []
        ),
    )


def backfill_document_refs(
    fixes: list[RemediationItem],
    compliances: list[ComplianceItem],
    *,
    min_overlap: int,
) -> list[RemediationItem]:
    """Fill missing ``documentRef`` values from compliance items.

    Each compliance item can be claimed by at most one fix; fixes are served
    in priority order and take their best-scoring unclaimed match.
    """
    candidates = [c for c in compliances if c.document_ref]
    texts = [f"{c.requirement} {c.document_ref}" for c in candidates]
    claimed: set[int] = set()
    result: list[RemediationItem] = []
    for fix in fixes:
        if fix.document_ref:
            result.append(fix)
            continue
        index = best_match(f"{fix.issue} {fix.fix}", texts, min_overlap=min_overlap, exclude=claimed)
        if index is None:
            result.append(fix)
            continue
        claimed.add(index)
        result.append(fix.model_copy(update={"document_ref": candidates[index].document_ref}))
    return result


class AdvisoryRefiner:
    """Streams the synthesis call and emits the refined report as events."""

    def __init__(self, client: LLMClient, settings: AppSettings, *, clock: Clock = time.monotonic) -> None:
        self._client = client
        self._settings = settings
        self._clock = clock

    def build_prompts(
        self,
        requirements: RequirementsChecklist,
        extractions: list[DocumentExtraction],
        compliances: list[ComplianceItem],
        preliminary: AdvisoryReport | None,
    ) -> tuple[str, str]:
        system = get_prompt("visa", "advisory", "ADVISORY_SYSTEM_PROMPT").format(
            corridor=requirements.corridor, visa_type=requirements.visa_type
        )
        seed_section = ""
        if preliminary and preliminary.fixes:
            seed_section = get_prompt("visa", "advisory", "ADVISORY_SEED_SECTION").format(
                fixes="\n".join(
                    f"- [{f.severity}] {f.issue}: {f.fix}"
                    + (f" (documentRef: {f.document_ref})" if f.document_ref else "")
                    for f in preliminary.fixes
                )
            )
        user = get_prompt("visa", "advisory", "ADVISORY_USER_PROMPT").format(
            requirement_count=len(requirements.items),
            requirements="\n".join(f"- {r.name}: {r.description}" for r in requirements.items),
            document_count=len(extractions),
            documents=summarize_extractions(
                extractions, self._settings.context.advisory_document_chars
            ),
            compliances="\n".join(
                f"- {c.requirement}: {c.status.upper()}" + (f": {c.detail}" if c.detail else "")
                for c in compliances
            )
            or "(none yet)",
            seed_section=seed_section,
        )
        return system, user

    async def refine(
        self,
        requirements: RequirementsChecklist,
        extractions: list[DocumentExtraction],
        compliances: list[ComplianceItem],
        emit: Emit,
        *,
        preliminary: AdvisoryReport | None = None,
    ) -> AdvisoryReport | None:
        """Run the synthesis call.

        Args:
            requirements: The session checklist.
            extractions: Extractions available at trigger time.
            compliances: Compliance results available at trigger time.
            emit: Sink for thinking, recommendation, assessment and lifecycle events.
            preliminary: The current deterministic draft, used as a rewriting seed
                and as the fallback when the reply cannot be parsed.

        Returns:
            The refined report, or None when the model call itself failed.
        """
        started = self._clock()
        streaming = self._settings.streaming
        emit(OrchestratorEvent(action="agent_start", agent=ADVISORY_AGENT))
        emit(
            ThinkingEvent(
                agent=ADVISORY_AGENT,
                summary=_SUMMARY_REVIEWING,
                excerpt=(
                    f"Synthesizing {len(extractions)} documents against "
                    f"{len(requirements.items)} requirements...\n"
                ),
            )
        )

        system, user = self.build_prompts(requirements, extractions, compliances, preliminary)
        throttle = ThinkingThrottle(
            streaming.emit_interval_ms,
            streaming.min_new_chars,
            depth_interval_chars=streaming.depth_interval_chars,
            clock=self._clock,
        )
        text_parts: list[str] = []
        compiling_announced = False

        try:
            async for delta in self._client.stream(
                user,
                system_prompt=system,
                model=self._client.advisory_model,
                max_tokens=self._settings.llm.advisory_max_tokens,
            ):
                if delta.kind == "text":
                    text_parts.append(delta.text)
                    if not compiling_announced and sum(map(len, text_parts)) > 100:
                        compiling_announced = True
                        emit(
                            ThinkingEvent(
                                agent=ADVISORY_AGENT,
                                summary=_SUMMARY_COMPILING,
                                excerpt=throttle.excerpt(streaming.agent_excerpt_chars)
                                + "\n\nGenerating advisory report...",
                            )
                        )
                    continue

                throttle.feed(delta.text)
                if throttle.depth_crossed():
                    emit(
                        ThinkingDepthEvent(
                            agent=ADVISORY_AGENT,
                            tokens=throttle.length,
                            budget=self._client.thinking_budget,
                        )
                    )
                if throttle.should_emit():
                    emit(
                        ThinkingEvent(
                            agent=ADVISORY_AGENT,
                            summary=_SUMMARY_REVIEWING,
                            excerpt=throttle.excerpt(streaming.agent_excerpt_chars),
                        )
                    )
        except LLMClientError as e:
            log.warning("Advisory refinement failed: %s", e)
            emit(ErrorEvent(message=f"Advisory agent error: {e}"))
            emit(
                OrchestratorEvent(
                    action="agent_complete",
                    agent=ADVISORY_AGENT,
                    duration_ms=int((self._clock() - started) * 1000),
                )
            )
            return None

        report = parse_advisory("".join(text_parts), preliminary)
        report = report.model_copy(
            update={
                "fixes": backfill_document_refs(
                    report.fixes,
                    compliances,
                    min_overlap=self._settings.scheduler.match_min_overlap,
                )
            }
        )

        for fix in report.fixes:
            emit(
                RecommendationEvent(
                    priority=fix.severity,
                    action=fix.fix,
                    details=fix.issue,
                    document_ref=fix.document_ref,
                )
            )
        emit(AssessmentEvent(overall=report.overall))
        emit(
            AdvisoryTipsEvent(
                interview_tips=report.interview_tips,
                corridor_warnings=report.corridor_warnings,
            )
        )
        emit(
            OrchestratorEvent(
                action="agent_complete",
                agent=ADVISORY_AGENT,
                duration_ms=int((self._clock() - started) * 1000),
            )
        )
        log.info("Advisory refined: %s with %d fixes", report.overall.value, len(report.fixes))
        return report
