"""
HTTP API — Unit Tests
======================

Routes over an explicitly constructed orchestrator, via FastAPI's
TestClient (the lifespan starts and stops the orchestrator).
"""

import asyncio
import base64

import pytest
from conftest import StubFactory
from fastapi.testclient import TestClient

from tripmeta.api.main import create_app
from tripmeta.core.config import OrchestratorConfig, ServiceConfig
from tripmeta.core.exceptions import ProcessingError
from tripmeta.core.types import ServiceKind
from tripmeta.infra.runtime.orchestrator import Orchestrator

def _simulated_orchestrator(overrides: dict[ServiceKind, ServiceConfig] | None = None) -> Orchestrator:
    services = {kind: ServiceConfig(api_key="demo-key") for kind in ServiceKind}
    services.update(overrides or {})
    return Orchestrator(OrchestratorConfig(services=services))

@pytest.fixture
def client():
    app = create_app(_simulated_orchestrator())
    with TestClient(app) as test_client:
        yield test_client

class TestStatusRoutes:
    def test_health_healthy(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_unhealthy_returns_503(self):
        orchestrator = _simulated_orchestrator({kind: ServiceConfig(api_key="") for kind in ServiceKind})
        with TestClient(create_app(orchestrator)) as client:
            response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_services_lists_every_kind(self, client):
        body = client.get("/services").json()
        assert body["phase"] == "running"
        assert {s["kind"] for s in body["services"]} == {k.value for k in ServiceKind}
        assert all(s["ready"] for s in body["services"])

    def test_stats_and_metrics(self, client):
        client.post("/requests", json={"request": {"type": "translation", "text": "hi", "target_language": "fr"}})

        stats = client.get("/stats").json()
        assert stats["dispatcher"]["completed"] == 1

        metrics = client.get("/metrics")
        assert metrics.status_code == 200
        assert "tripmeta_dispatch_requests_total" in metrics.text

class TestRequestRoutes:
    def test_text_generation(self, client):
        response = client.post(
            "/requests",
            json={"request": {"type": "text_generation", "prompt": "hello", "conversation_id": "c9"}},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["kind"] == "text_generation"
        assert body["response"]["success"] is True
        assert body["response"]["conversation_id"] == "c9"

    def test_binary_payloads_use_base64(self, client):
        response = client.post(
            "/requests",
            json={"request": {"type": "speech_synthesis", "text": "Welcome"}},
        )
        audio = base64.b64decode(response.json()["response"]["audio"])
        assert len(audio) > 0

        image = base64.b64encode(b"\x89PNG fake").decode()
        response = client.post("/requests", json={"request": {"type": "vision", "image": image}})
        assert response.status_code == 200
        assert response.json()["kind"] == "vision"

    def test_unknown_type_is_422(self, client):
        response = client.post("/requests", json={"request": {"type": "teleport"}})
        assert response.status_code == 422

    def test_invalid_body_is_422(self, client):
        response = client.post("/requests", json={"request": {"type": "text_generation", "prompt": ""}})
        assert response.status_code == 422

    def test_unavailable_kind_is_503(self):
        orchestrator = _simulated_orchestrator({ServiceKind.VISION: ServiceConfig(api_key="")})
        with TestClient(create_app(orchestrator)) as client:
            image = base64.b64encode(b"img").decode()
            response = client.post("/requests", json={"request": {"type": "vision", "image": image}})
        assert response.status_code == 503
        assert response.json()["error"] == "SERVICE_UNAVAILABLE"

    def test_processing_error_is_502(self):
        factory = StubFactory(process_error=ProcessingError("upstream broke"))
        orchestrator = Orchestrator(
            OrchestratorConfig(services={ServiceKind.TRANSLATION: ServiceConfig(api_key="k")}),
            factories={ServiceKind.TRANSLATION: factory},
        )
        with TestClient(create_app(orchestrator)) as client:
            response = client.post(
                "/requests",
                json={"request": {"type": "translation", "text": "hi", "target_language": "fr"}},
            )
        assert response.status_code == 502
        assert response.json()["error"] == "PROCESSING_ERROR"

    def test_deadline_is_504(self):
        factory = StubFactory(gate=asyncio.Event())
        orchestrator = Orchestrator(
            OrchestratorConfig(services={ServiceKind.TRANSLATION: ServiceConfig(api_key="k")}),
            factories={ServiceKind.TRANSLATION: factory},
        )
        with TestClient(create_app(orchestrator)) as client:
            response = client.post(
                "/requests",
                json={
                    "request": {"type": "translation", "text": "hi", "target_language": "fr"},
                    "timeout_s": 0.05,
                },
            )
        assert response.status_code == 504
        assert response.json()["error"] == "REQUEST_TIMEOUT"

class TestServiceRoutes:
    def test_restart(self, client):
        response = client.post("/services/vision/restart")
        assert response.status_code == 200
        assert response.json()["generation"] == 1
        assert response.json()["ready"] is True

    def test_restart_unknown_kind_is_422(self, client):
        assert client.post("/services/teleport/restart").status_code == 422

    def test_restart_unconfigured_kind_is_404(self):
        orchestrator = _simulated_orchestrator({ServiceKind.SPEECH: ServiceConfig(enabled=False)})
        with TestClient(create_app(orchestrator)) as client:
            response = client.post("/services/speech/restart")
        assert response.status_code == 404
        assert response.json()["error"] == "SERVICE_NOT_CONFIGURED"

class TestConversationRoutes:
    def test_read_and_clear(self, client):
        client.post(
            "/requests",
            json={"request": {"type": "text_generation", "prompt": "hello", "conversation_id": "walk"}},
        )

        body = client.get("/conversations/walk").json()
        assert [m["role"] for m in body["messages"]] == ["user", "assistant"]

        assert client.delete("/conversations/walk").status_code == 200
        assert client.get("/conversations/walk").json()["messages"] == []

    def test_unknown_conversation_is_404(self, client):
        assert client.get("/conversations/nope").status_code == 404
        assert client.delete("/conversations/nope").status_code == 404
