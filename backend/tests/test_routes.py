"""
Integration tests for the HTTP surface.

The orchestrator behind the capability routes is replaced with one wired
to in-memory stubs, so every upstream is unreachable and each capability
answers from its offline tier or the canned response.
"""
import base64

import pytest
from fastapi.testclient import TestClient

from pharmassist.main import app
from pharmassist.routes import capabilities

from stubs import FakeClock, build_orchestrator


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(monkeypatch, clock):
    orchestrator = build_orchestrator(clock=clock)
    monkeypatch.setattr(capabilities, "get_orchestrator", lambda: orchestrator)
    return TestClient(app)


class TestHealth:
    def test_health_check(self, client):
        response = client.get("/health/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_upstream_health_reports_configuration(self, client):
        response = client.get("/health/upstreams")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] in ("ok", "degraded")
        assert set(data["configured"]) == {"workflow", "llm", "vision", "storage"}
        assert isinstance(data["circuit_breakers"], dict)


class TestTracePropagation:
    def test_trace_id_generated_when_missing(self, client):
        response = client.get("/health/")
        trace_id = response.headers["X-Trace-ID"]
        assert len(trace_id) == 36
        assert "X-Request-ID" in response.headers

    def test_trace_id_echoed_from_caller(self, client):
        response = client.get("/health/", headers={"X-Trace-ID": "trace-from-app"})
        assert response.headers["X-Trace-ID"] == "trace-from-app"


class TestCapabilityRoutes:
    def test_interactions_answer_offline(self, client):
        response = client.post(
            "/ai/interactions",
            json={"drugs": ["Dolo 650", "Paracetamol 500"]},
            headers={"X-Shop-ID": "shop-1"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["payload"]["interactions"][0]["severity"] == "Major"
        assert data["reply"].startswith("⚠️")

    def test_second_call_within_window_is_429(self, client, clock):
        body = {"drugs": ["Aspirin", "Warfarin"]}
        assert client.post("/ai/interactions", json=body).status_code == 200

        response = client.post("/ai/interactions", json=body)
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "2"
        assert response.json()["status_code"] == 429

        clock.advance(2.0)
        assert client.post("/ai/interactions", json=body).status_code == 200

    def test_empty_drug_list_is_rejected(self, client):
        assert client.post("/ai/interactions", json={"drugs": []}).status_code == 422

    def test_chat_requires_query_or_image(self, client):
        response = client.post("/ai/chat", json={"query": "   "})
        assert response.status_code == 400

    def test_chat_rejects_bad_image(self, client):
        response = client.post("/ai/chat", json={"query": "what is this", "image_base64": "not base64!"})
        assert response.status_code == 400

    def test_chat_falls_back_to_disclaimer(self, client):
        response = client.post("/ai/chat", json={"query": "what is the dose of paracetamol"})
        assert response.status_code == 200
        data = response.json()
        assert data["provenance"] == "failed"
        assert data["reply"]

    def test_compliance_flags_banned_combination(self, client):
        response = client.post("/ai/compliance", json={"drug_name": "Corex"})
        assert response.status_code == 200
        assert response.json()["payload"]["is_banned"] is True

    def test_forecast_offline(self, client):
        history = [{"medicine_name": "Dolo 650", "quantity": 60, "current_stock": 10}]
        response = client.post("/ai/forecast", json={"sales_history": history})
        assert response.status_code == 200
        assert response.json()["provenance"] == "tier4_offline"

    def test_voice_bill_from_transcript(self, client):
        response = client.post("/ai/voice-bill", data={"transcript": "2 patta dolo"})
        assert response.status_code == 200
        data = response.json()
        assert data["provenance"] == "tier4_offline"
        assert data["payload"]["items"][0]["quantity"] == 30

    def test_voice_bill_requires_input(self, client):
        assert client.post("/ai/voice-bill", data={"transcript": ""}).status_code == 400

    def test_document_upload(self, client):
        image = base64.b64decode("iVBORw0KGgo=")
        response = client.post(
            "/ai/documents",
            files={"file": ("rx.png", image, "image/png")},
            data={"document_type": "prescription"},
        )
        assert response.status_code == 200
        assert response.json()["provenance"] == "failed"

    def test_empty_upload_is_rejected(self, client):
        response = client.post(
            "/ai/documents",
            files={"file": ("rx.png", b"", "image/png")},
            data={"document_type": "prescription"},
        )
        assert response.status_code == 400


def test_metrics_endpoint_exposes_capability_counters(client):
    client.post("/ai/chat", json={"query": "hello"})
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "capability_requests_total" in response.text
    assert "capability_tier_failures_total" in response.text
