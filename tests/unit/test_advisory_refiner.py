"""Tests for the advisory refiner: parsing, backfill, and event order."""

from __future__ import annotations

import pytest

from tests.fakes.fake_llm import FakeLLMClient, advisory_reply
from visa_audit.advisory.builder import build_preliminary_advisory
from visa_audit.advisory.refiner import (
    AdvisoryRefiner,
    backfill_document_refs,
    fallback_report,
    parse_advisory,
)
from visa_audit.events import (
    AdvisoryTipsEvent,
    AssessmentEvent,
    ErrorEvent,
    OrchestratorEvent,
    RecommendationEvent,
    ThinkingDepthEvent,
    ThinkingEvent,
)
from visa_audit.models import Assessment, ComplianceItem, RemediationItem
from visa_audit.providers.client import StreamDelta


def _fix(priority: int, issue: str, fix: str = "Upload a new copy", ref: str | None = None) -> RemediationItem:
    return RemediationItem(priority=priority, severity="warning", issue=issue, fix=fix, document_ref=ref)


class TestParseAdvisory:
    def test_valid_report(self):
        reply = advisory_reply(
            "SIGNIFICANT_ISSUES",
            [
                {"priority": 2, "severity": "warning", "issue": "Hotel dates", "fix": "Rebook"},
                {"priority": 1, "severity": "critical", "issue": "Funds", "fix": "Add savings"},
            ],
            tips=["Explain funds"],
        )
        report = parse_advisory(reply)
        assert report.overall == Assessment.SIGNIFICANT_ISSUES
        assert [(f.priority, f.issue) for f in report.fixes] == [(1, "Funds"), (2, "Hotel dates")]
        assert report.interview_tips == ["Explain funds"]

    def test_missing_priority_uses_position(self):
        reply = advisory_reply("ADDITIONAL_DOCUMENTS_NEEDED", [{"severity": "info", "issue": "a", "fix": "b"}])
        assert parse_advisory(reply).fixes[0].priority == 1

    def test_unparsable_falls_back_to_preliminary(self, checklist):
        preliminary = build_preliminary_advisory(checklist)
        report = parse_advisory("The application looks fine overall.", preliminary)
        assert report.overall == Assessment.ADDITIONAL_DOCUMENTS_NEEDED
        assert report.fixes == preliminary.fixes
        assert report.corridor_warnings == preliminary.corridor_warnings

    def test_unknown_assessment_falls_back(self, checklist):
        preliminary = build_preliminary_advisory(checklist)
        report = parse_advisory('{"overall": "PROBABLY_FINE", "fixes": []}', preliminary)
        assert report == fallback_report(preliminary)

    def test_empty_tips_keep_preliminary_ones(self, checklist):
        preliminary = build_preliminary_advisory(checklist)
        report = parse_advisory('{"overall": "APPLICATION_PROCEEDS", "interviewTips": []}', preliminary)
        assert report.interview_tips == preliminary.interview_tips

    def test_single_string_tip_kept_whole(self):
        report = parse_advisory(
            '{"overall": "APPLICATION_PROCEEDS", "fixes": [], "interviewTips": "Bring your payslips"}'
        )
        assert report.interview_tips == ["Bring your payslips"]

    def test_non_list_warnings_keep_preliminary_ones(self, checklist):
        preliminary = build_preliminary_advisory(checklist)
        report = parse_advisory(
            '{"overall": "APPLICATION_PROCEEDS", "corridorWarnings": {"note": "x"}, "interviewTips": 3}',
            preliminary,
        )
        assert report.corridor_warnings == preliminary.corridor_warnings
        assert report.interview_tips == preliminary.interview_tips

    def test_fallback_without_preliminary(self):
        report = fallback_report(None)
        assert report.overall == Assessment.ADDITIONAL_DOCUMENTS_NEEDED
        assert report.fixes == []


class TestBackfillDocumentRefs:
    def test_fills_from_best_compliance(self):
        compliances = [
            ComplianceItem(requirement="Valid Passport", status="met", document_ref="passport"),
            ComplianceItem(requirement="Bank Statements", status="warning", document_ref="bank_statement"),
        ]
        fixes = [_fix(1, "Bank statements show a low balance", "Add 3 months of statements")]
        result = backfill_document_refs(fixes, compliances, min_overlap=2)
        assert result[0].document_ref == "bank_statement"

    def test_one_compliance_never_claimed_twice(self):
        compliances = [ComplianceItem(requirement="Bank Statements", status="warning", document_ref="bank_statement")]
        fixes = [
            _fix(1, "Bank statements balance too low"),
            _fix(2, "Bank statements missing a month"),
        ]
        result = backfill_document_refs(fixes, compliances, min_overlap=2)
        assert result[0].document_ref == "bank_statement"
        assert result[1].document_ref is None

    def test_existing_refs_untouched(self):
        compliances = [ComplianceItem(requirement="Valid Passport", status="met", document_ref="passport")]
        fixes = [_fix(1, "Passport expiry", ref="Passport scan")]
        assert backfill_document_refs(fixes, compliances, min_overlap=2)[0].document_ref == "Passport scan"

    def test_no_overlap_left_empty(self):
        compliances = [ComplianceItem(requirement="Valid Passport", status="met", document_ref="passport")]
        fixes = [_fix(1, "Hotel booking dates", "Rebook the hotel")]
        assert backfill_document_refs(fixes, compliances, min_overlap=2)[0].document_ref is None


class TestRefine:
    @pytest.mark.asyncio
    async def test_event_order(self, settings, checklist, passport_extraction):
        reply = advisory_reply(
            "ADDITIONAL_DOCUMENTS_NEEDED",
            [{"severity": "warning", "issue": "Hotel Booking: dates", "fix": "Rebook", "documentRef": "hotel"}],
            tips=["Be concise"],
            warnings=["Apply early"],
        )
        client = FakeLLMClient(advisory_fn=lambda call: reply)
        events = []
        report = await AdvisoryRefiner(client, settings).refine(
            checklist, [passport_extraction], [], events.append
        )

        assert report is not None
        assert [type(e) for e in events] == [
            OrchestratorEvent,
            ThinkingEvent,
            RecommendationEvent,
            AssessmentEvent,
            AdvisoryTipsEvent,
            OrchestratorEvent,
        ]
        assert events[0].action == "agent_start"
        assert events[1].summary == "Reviewing application"
        rec = events[2]
        assert (rec.priority, rec.action, rec.details, rec.document_ref) == (
            "warning",
            "Rebook",
            "Hotel Booking: dates",
            "hotel",
        )
        assert events[4].corridor_warnings == ["Apply early"]
        assert events[-1].action == "agent_complete"
        assert events[-1].duration_ms is not None

    @pytest.mark.asyncio
    async def test_uses_advisory_model_and_seed(self, settings, checklist):
        client = FakeLLMClient()
        preliminary = build_preliminary_advisory(checklist)
        await AdvisoryRefiner(client, settings).refine(checklist, [], [], lambda e: None, preliminary=preliminary)

        call = client.advisory_calls[0]
        assert call.model == "fake/advisory"
        assert "India to Germany" in call.system_prompt
        assert "Valid Passport" in call.prompt
        assert "(no readable documents yet)" in call.prompt
        assert "(none yet)" in call.prompt

    @pytest.mark.asyncio
    async def test_depth_and_compiling_thinking(self, settings, checklist):
        settings = settings.model_copy(deep=True)
        settings.streaming.depth_interval_chars = 50
        script = [StreamDelta("thinking", "r" * 120), StreamDelta("text", advisory_reply())]
        client = FakeLLMClient(advisory_fn=lambda call: script, thinking_budget=4096)
        events = []
        await AdvisoryRefiner(client, settings).refine(checklist, [], [], events.append)

        depth = [e for e in events if isinstance(e, ThinkingDepthEvent)]
        assert [(d.tokens, d.budget) for d in depth] == [(120, 4096)]
        summaries = [e.summary for e in events if isinstance(e, ThinkingEvent)]
        assert summaries == ["Reviewing application", "Reviewing application", "Compiling advisory"]
        compiling = [e for e in events if isinstance(e, ThinkingEvent)][-1]
        assert compiling.excerpt.endswith("Generating advisory report...")

    @pytest.mark.asyncio
    async def test_compiling_announced_without_thinking(self, settings, checklist):
        reply = advisory_reply(tips=["Carry the original bank statements and your employer letter."] * 3)
        client = FakeLLMClient(advisory_fn=lambda call: [StreamDelta("text", reply)], thinking_budget=0)
        events = []
        await AdvisoryRefiner(client, settings).refine(checklist, [], [], events.append)

        summaries = [e.summary for e in events if isinstance(e, ThinkingEvent)]
        assert summaries.count("Compiling advisory") == 1
        assert not any(isinstance(e, ThinkingDepthEvent) for e in events)

    @pytest.mark.asyncio
    async def test_call_failure_emits_error_then_complete(self, settings, checklist):
        client = FakeLLMClient(fail_fn=lambda call: call.is_advisory)
        events = []
        report = await AdvisoryRefiner(client, settings).refine(checklist, [], [], events.append)

        assert report is None
        assert isinstance(events[-2], ErrorEvent)
        assert events[-2].message.startswith("Advisory agent error:")
        assert events[-1].action == "agent_complete"
        assert not any(isinstance(e, AssessmentEvent) for e in events)
