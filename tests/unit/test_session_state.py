"""Tests for the explicit session state transition function."""

from __future__ import annotations

import pytest

from visa_audit.models import AdvisoryReport, Assessment, ComplianceItem, CrossDocFinding
from visa_audit.session.state import (
    DocumentVerified,
    PipelineStage,
    ReauditFinished,
    ReauditStarted,
    RefinementFinished,
    RefinementStarted,
    SessionState,
    transition,
)


@pytest.fixture
def state(checklist) -> SessionState:
    return SessionState.start(checklist)


class TestDocumentVerified:
    def test_extractions_only_grow_in_order(self, state, passport_extraction, bank_extraction):
        state = transition(state, DocumentVerified(passport_extraction))
        state = transition(state, DocumentVerified(bank_extraction))
        assert [e.id for e in state.extractions] == ["doc-passport", "doc-bank"]

    def test_latest_compliance_wins(self, state, passport_extraction):
        first = ComplianceItem(requirement="Valid Passport", status="warning", detail="expires soon")
        second = ComplianceItem(requirement="Valid Passport", status="met", detail="renewed")
        state = transition(state, DocumentVerified(passport_extraction, first))
        state = transition(state, DocumentVerified(passport_extraction, second))
        assert state.compliances == (second,)

    def test_findings_accumulate(self, state, passport_extraction):
        finding = CrossDocFinding(severity="critical", finding="Name differs between documents")
        state = transition(state, DocumentVerified(passport_extraction, None, (finding,)))
        assert state.findings == (finding,)

    def test_preliminary_refolded(self, state, passport_extraction):
        compliance = ComplianceItem(requirement="Valid Passport", status="critical", detail="Expired")
        new_state = transition(state, DocumentVerified(passport_extraction, compliance))
        assert new_state.advisory.overall == Assessment.SIGNIFICANT_ISSUES
        assert state.advisory.overall == Assessment.ADDITIONAL_DOCUMENTS_NEEDED

    def test_refined_advisory_never_patched(self, state, passport_extraction):
        refined = AdvisoryReport(overall=Assessment.APPLICATION_PROCEEDS)
        state = transition(state, RefinementStarted())
        state = transition(state, RefinementFinished(refined))
        compliance = ComplianceItem(requirement="Valid Passport", status="critical")
        state = transition(state, DocumentVerified(passport_extraction, compliance))
        assert state.advisory == refined
        assert state.compliances == (compliance,)


class TestRefinement:
    def test_started_sets_latch(self, state):
        state = transition(state, RefinementStarted())
        assert state.stage == PipelineStage.REFINING
        assert state.refinement_triggered

    def test_failure_keeps_preliminary(self, state):
        preliminary = state.advisory
        state = transition(transition(state, RefinementStarted()), RefinementFinished(None))
        assert state.stage == PipelineStage.REFINEMENT_FAILED
        assert state.advisory == preliminary
        assert state.generation == "preliminary"

    def test_success_replaces_wholesale(self, state):
        refined = AdvisoryReport(overall=Assessment.SIGNIFICANT_ISSUES)
        state = transition(transition(state, RefinementStarted()), RefinementFinished(refined))
        assert state.stage == PipelineStage.REFINED
        assert state.advisory == refined
        assert state.generation == "refined"

    def test_stale_refinement_ignored_after_reaudit(self, state):
        state = transition(state, RefinementStarted())
        first_run = state.advisory_run
        state = transition(state, ReauditStarted())
        report = AdvisoryReport(overall=Assessment.APPLICATION_PROCEEDS)
        state = transition(state, ReauditFinished(report, run=state.advisory_run))

        late = AdvisoryReport(overall=Assessment.SIGNIFICANT_ISSUES)
        after = transition(state, RefinementFinished(late, run=first_run))
        assert after == state
        assert after.advisory == report


class TestReaudit:
    def test_reaudit_replaces_report(self, state):
        state = transition(state, ReauditStarted())
        assert state.stage == PipelineStage.REAUDITING
        report = AdvisoryReport(overall=Assessment.APPLICATION_PROCEEDS)
        state = transition(state, ReauditFinished(report))
        assert state.stage == PipelineStage.REFINED
        assert state.advisory == report

    def test_failed_reaudit_restores_previous_stage(self, state):
        refined = AdvisoryReport(overall=Assessment.ADDITIONAL_DOCUMENTS_NEEDED)
        state = transition(transition(state, RefinementStarted()), RefinementFinished(refined))
        state = transition(transition(state, ReauditStarted()), ReauditFinished(None))
        assert state.stage == PipelineStage.REFINED
        assert state.advisory == refined


def test_unknown_transition_rejected(state):
    with pytest.raises(TypeError, match="Unknown session transition"):
        transition(state, object())
