"""HTTP surface tests against the fake LLM client."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from tests.fakes.fake_clock import FakeClock
from tests.fakes.fake_llm import FakeLLMClient, extraction_reply, make_document
from visa_audit.api.app import create_app
from visa_audit.client.stream import iter_sse_events
from visa_audit.core.config import AppSettings, LLMConfig, RateLimitConfig
from visa_audit.events import (
    DONE_FRAME,
    AssessmentEvent,
    CompleteEvent,
    DocAnalysisResultEvent,
    ReauditCompleteEvent,
    ReauditStatusEvent,
)
from visa_audit.models import ReauditFix, to_wire


def _events(response):
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text.endswith(DONE_FRAME)
    return list(iter_sse_events(response.text.splitlines()))


@pytest.fixture
def fake_client() -> FakeLLMClient:
    passport = make_document("doc-passport", "passport.png")
    return FakeLLMClient(
        read_replies={passport.base64: extraction_reply("passport", "Passport of Asha Rao, expires 2031")},
    )


@pytest.fixture
def api(settings, fake_client):
    app = create_app(settings, client=fake_client, clock=FakeClock())
    with TestClient(app) as client:
        yield client


def _create_session(api, checklist) -> str:
    response = api.post("/api/sessions", json={"requirements": to_wire(checklist)})
    assert response.status_code == 200
    return response.json()["sessionId"]


class TestHealth:
    def test_health(self, api):
        assert api.get("/health").json() == {"status": "ok"}

    def test_ready_counts_sessions(self, api, checklist):
        assert api.get("/ready").json() == {"status": "ready", "sessions": 0}
        _create_session(api, checklist)
        assert api.get("/ready").json()["sessions"] == 1


class TestLifespan:
    def test_client_closed_on_shutdown(self, settings, fake_client):
        with TestClient(create_app(settings, client=fake_client)):
            assert not fake_client.closed
        assert fake_client.closed

    def test_misconfiguration_fails_startup(self, fake_client):
        settings = AppSettings(llm=LLMConfig(provider="anthropic", api_key="no-key"))
        with pytest.raises(ValueError, match="VISA_AUDIT_LLM_API_KEY"):
            with TestClient(create_app(settings, client=fake_client)):
                pass


class TestAnalyze:
    def test_full_run_streams_until_done(self, api, checklist):
        body = {
            "requirements": to_wire(checklist),
            "documents": [to_wire(make_document("doc-passport", "passport.png"))],
        }
        events = _events(api.post("/api/analyze", json=body))

        results = [e for e in events if isinstance(e, DocAnalysisResultEvent)]
        assert [r.requirement_name for r in results] == ["Valid Passport"]
        assert any(isinstance(e, AssessmentEvent) for e in events)
        assert isinstance(events[-1], CompleteEvent)

    def test_requires_requirements_or_researcher(self, api):
        response = api.post("/api/analyze", json={"documents": []})
        assert response.status_code == 400
        assert response.json()["type"] == "invalid_request"

    def test_rejects_unsupported_upload_before_streaming(self, api, checklist, fake_client):
        body = {
            "requirements": to_wire(checklist),
            "documents": [to_wire(make_document("doc-1", "scan.pdf", mime_type="application/pdf"))],
        }
        response = api.post("/api/analyze", json=body)
        assert response.status_code == 415
        assert fake_client.calls == []


class TestAnalyzeDocument:
    def _body(self, checklist, document, **extra):
        return {"document": to_wire(document), "requirement": to_wire(checklist.items[0]), **extra}

    def test_stateless_document(self, api, checklist):
        body = self._body(checklist, make_document("doc-passport", "passport.png"))
        events = _events(api.post("/api/analyze/document", json=body))
        assert events[0].type == "doc_analysis_start"
        assert isinstance(events[-1], DocAnalysisResultEvent)
        assert events[-1].compliance.status == "met"

    def test_oversized_document(self, settings, fake_client, checklist):
        settings.upload.max_bytes = 8
        app = create_app(settings, client=fake_client)
        with TestClient(app) as client:
            body = self._body(checklist, make_document("doc-big", "big.png", b"x" * 64))
            response = client.post("/api/analyze/document", json=body)
        assert response.status_code == 413
        assert response.json()["type"] == "invalid_document"

    def test_session_upload_recorded(self, api, checklist):
        session_id = _create_session(api, checklist)
        body = self._body(checklist, make_document("doc-passport", "passport.png"), sessionId=session_id)
        _events(api.post("/api/analyze/document", json=body))

        snapshot = api.get(f"/api/sessions/{session_id}").json()
        assert [e["docType"] for e in snapshot["extractions"]] == ["passport"]
        assert snapshot["compliances"][0]["status"] == "met"
        assert snapshot["eventCount"] > 0

        logged = _events(api.get(f"/api/sessions/{session_id}/events"))
        assert len(logged) == snapshot["eventCount"]
        tail = _events(api.get(f"/api/sessions/{session_id}/events", params={"after": len(logged) - 1}))
        assert [e.type for e in tail] == ["doc_analysis_result"]


class TestSessions:
    def test_create_returns_preliminary_advisory(self, api, checklist):
        response = api.post("/api/sessions", json={"requirements": to_wire(checklist)})
        payload = response.json()
        assert payload["sessionId"]
        assert payload["advisory"]["overall"] == "ADDITIONAL_DOCUMENTS_NEEDED"
        assert len(payload["advisory"]["fixes"]) == len(checklist.items)
        assert payload["advisory"]["corridorWarnings"][0] == "Apply no earlier than 6 months before travel"

    def test_unknown_session(self, api):
        response = api.get("/api/sessions/nope")
        assert response.status_code == 404
        assert response.json()["type"] == "not_found"

    def test_reaudit_without_fixes(self, api, checklist):
        session_id = _create_session(api, checklist)
        response = api.post(f"/api/sessions/{session_id}/reaudit", json={"fixes": []})
        assert response.status_code == 400

    def test_reaudit_streams_progress(self, api, checklist):
        session_id = _create_session(api, checklist)
        fix = ReauditFix(
            id="f1",
            requirement_name="Valid Passport",
            document=make_document("doc-passport", "passport.png"),
        )
        events = _events(api.post(f"/api/sessions/{session_id}/reaudit", json={"fixes": [to_wire(fix)]}))

        statuses = [e.status for e in events if isinstance(e, ReauditStatusEvent)]
        assert statuses[-1] == "passed"
        assert isinstance(events[-1], ReauditCompleteEvent)
        assert events[-1].all_passed


class TestAdvisoryEndpoint:
    def test_refines_from_supplied_evidence(self, api, checklist, fake_client):
        body = {
            "requirements": to_wire(checklist),
            "compliances": [{"requirement": "Valid Passport", "status": "met"}],
        }
        events = _events(api.post("/api/advisory", json=body))
        assert any(isinstance(e, AssessmentEvent) for e in events)
        assert len(fake_client.advisory_calls) == 1


class TestRateLimit:
    def test_second_request_rejected(self, fake_client, checklist):
        settings = AppSettings(
            llm=LLMConfig(provider="ollama"),
            rate_limit=RateLimitConfig(enabled=True, max_requests=1, window_seconds=60),
        )
        app = create_app(settings, client=fake_client, clock=FakeClock())
        with TestClient(app) as client:
            first = client.post("/api/sessions", json={"requirements": to_wire(checklist)})
            second = client.post("/api/sessions", json={"requirements": to_wire(checklist)})
            health = client.get("/health")

        assert first.status_code == 200
        assert second.status_code == 429
        assert second.headers["Retry-After"] == "60"
        assert second.headers["X-RateLimit-Remaining"] == "0"
        assert second.json()["type"] == "rate_limited"
        assert health.status_code == 200
