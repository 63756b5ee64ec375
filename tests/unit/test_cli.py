"""Tests for the CLI replay command."""

from __future__ import annotations

import json

from typer.testing import CliRunner

from visa_audit.cli.main import app
from visa_audit.events import (
    ADVISORY_AGENT,
    AssessmentEvent,
    DocAnalysisResultEvent,
    OrchestratorEvent,
    encode_sse,
    event_to_dict,
)
from visa_audit.models import Assessment, ComplianceItem, to_wire

runner = CliRunner()


def _events():
    return [
        DocAnalysisResultEvent(
            requirement_name="Valid Passport",
            compliance=ComplianceItem(requirement="Valid Passport", status="met", detail="Valid to 2031"),
        ),
        OrchestratorEvent(action="agent_start", agent=ADVISORY_AGENT),
        AssessmentEvent(overall=Assessment.APPLICATION_PROCEEDS),
        OrchestratorEvent(action="agent_complete", agent=ADVISORY_AGENT, duration_ms=12),
    ]


class TestReplay:
    def test_ndjson_log(self, tmp_path, checklist):
        events_file = tmp_path / "events.ndjson"
        events_file.write_text("\n".join(json.dumps(event_to_dict(e)) for e in _events()) + "\n")
        checklist_file = tmp_path / "checklist.json"
        checklist_file.write_text(json.dumps(to_wire(checklist)))

        result = runner.invoke(app, ["replay", str(events_file), "--checklist", str(checklist_file)])

        assert result.exit_code == 0, result.output
        assert "Replaying 4 events" in result.output
        assert "passed" in result.output
        assert "Assessment (refined): APPLICATION_PROCEEDS" in result.output

    def test_sse_capture_without_checklist(self, tmp_path):
        capture = tmp_path / "capture.txt"
        capture.write_text("".join(encode_sse(e) for e in _events()) + "data: [DONE]\n\n")

        result = runner.invoke(app, ["replay", str(capture)])

        assert result.exit_code == 0, result.output
        assert "Replaying 4 events" in result.output
        assert "Assessment (refined): APPLICATION_PROCEEDS" in result.output
        assert "Valid Passport" not in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["replay", str(tmp_path / "absent.ndjson")])
        assert result.exit_code != 0
