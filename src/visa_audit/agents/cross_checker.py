"""Incremental cross-checker: one new document against one requirement.

The check sees the new extraction plus every earlier extraction of the
session, so callers must run checks for a session one at a time in upload
order. Failures never raise; they come back as ``not_checked`` compliance.
"""

from __future__ import annotations

import logging
import time

from pydantic import ValidationError

from visa_audit.agents.context import build_prior_context
from visa_audit.agents.streaming import Clock, ThinkingThrottle
from visa_audit.core.config import AppSettings
from visa_audit.events import DocAnalysisThinkingEvent, Emit, ErrorEvent
from visa_audit.exceptions import JSONParseError, LLMClientError
from visa_audit.models import (
    ComplianceItem,
    CrossCheckResult,
    CrossDocFinding,
    DocumentExtraction,
    RequirementItem,
)
from visa_audit.prompts import get_prompt
from visa_audit.providers import LLMClient, extract_json_object

log = logging.getLogger(__name__)


def not_checked(requirement: RequirementItem, detail: str, document_ref: str | None) -> CrossCheckResult:
    return CrossCheckResult(
        compliance=ComplianceItem(
            requirement=requirement.name,
            status="not_checked",
            detail=detail,
            document_ref=document_ref,
        )
    )


def parse_cross_check(
    reply: str, requirement: RequirementItem, extraction: DocumentExtraction
) -> CrossCheckResult:
    """Turn a model reply into a result keyed by the requirement's own name."""
    try:
        parsed = extract_json_object(reply)
    except JSONParseError:
        return not_checked(requirement, "Could not parse analysis", extraction.doc_type)

    raw = parsed.get("compliance")
    if not isinstance(raw, dict):
        return not_checked(requirement, "Could not analyze", extraction.doc_type)
    try:
        compliance = ComplianceItem.model_validate(
            {
                **raw,
                "requirement": requirement.name,
                "documentRef": raw.get("documentRef") or extraction.doc_type,
            }
        )
    except ValidationError as e:
        log.warning("Invalid compliance for %s: %s", requirement.name, e.errors()[:1])
        return not_checked(requirement, "Could not parse analysis", extraction.doc_type)

    findings: list[CrossDocFinding] = []
    for item in parsed.get("crossDocFindings") or []:
        try:
            findings.append(CrossDocFinding.model_validate(item))
        except ValidationError:
            log.debug("Dropping malformed cross-document finding: %r", item)
    return CrossCheckResult(compliance=compliance, cross_doc_findings=findings)


class CrossChecker:
    """Streams one compliance decision and relays throttled thinking."""

    def __init__(self, client: LLMClient, settings: AppSettings, *, clock: Clock = time.monotonic) -> None:
        self._client = client
        self._settings = settings
        self._clock = clock

    def build_prompt(
        self,
        extraction: DocumentExtraction,
        requirement: RequirementItem,
        previous: list[DocumentExtraction],
    ) -> str:
        ctx = self._settings.context
        previous_context = build_prior_context(previous, ctx)
        previous_section = (
            get_prompt("visa", "document", "CROSS_CHECK_PREVIOUS_SECTION").format(
                previous_context=previous_context
            )
            if previous_context
            else ""
        )
        return get_prompt("visa", "document", "CROSS_CHECK_PROMPT").format(
            requirement_name=requirement.name,
            requirement_description=requirement.description,
            doc_type=extraction.doc_type,
            language=extraction.language,
            document_text=extraction.extracted_text[: ctx.new_document_chars],
            previous_section=previous_section,
        )

    async def check(
        self,
        extraction: DocumentExtraction,
        requirement: RequirementItem,
        previous: list[DocumentExtraction],
        emit: Emit,
    ) -> CrossCheckResult:
        """Decide compliance for ``requirement`` given ``extraction`` and its predecessors.

        Args:
            extraction: The newly read document.
            requirement: The checklist item the document was uploaded for.
            previous: All earlier extractions of the session, oldest first.
            emit: Sink for ``doc_analysis_thinking`` and ``error`` events.

        Returns:
            The compliance verdict and any cross-document findings.
        """
        if extraction.is_error:
            reason = extraction.structured_data.get("error", "unreadable document")
            return not_checked(requirement, f"Document could not be read: {reason}", None)

        streaming = self._settings.streaming
        throttle = ThinkingThrottle(
            streaming.doc_emit_interval_ms, streaming.doc_min_new_chars, clock=self._clock
        )
        text_parts: list[str] = []

        try:
            async for delta in self._client.stream(
                self.build_prompt(extraction, requirement, previous),
                max_tokens=self._settings.llm.cross_check_max_tokens,
            ):
                if delta.kind == "text":
                    text_parts.append(delta.text)
                    continue
                throttle.feed(delta.text)
                if throttle.should_emit():
                    emit(
                        DocAnalysisThinkingEvent(
                            requirement_name=requirement.name,
                            excerpt=throttle.excerpt(streaming.excerpt_chars),
                        )
                    )
        except LLMClientError as e:
            log.warning("Cross-check failed for %s: %s", requirement.name, e)
            emit(ErrorEvent(message=f"Cross-check error: {e}"))
            return not_checked(requirement, "Analysis failed", extraction.doc_type)

        return parse_cross_check("".join(text_parts), requirement, extraction)
