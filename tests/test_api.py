"""Tests for the FastAPI endpoints."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from src import config
from src.models import BookingSettings, InstagramSettings, LLMSettings, RuntimeConfig, Sender
from src.server import app
from src.services.connectivity import ConnectivityResult, UnknownServiceError
from src.services.conversation_store import InMemoryConversationStore
from src.services.runtime_config import ConfigStore
from src.services.signature import compute_signature

VERIFY_TOKEN = "verify-me"


@pytest.fixture
def components():
    """Attach components to app state (mirrors the lifespan) and clean up after."""
    store = InMemoryConversationStore()
    config_store = ConfigStore(
        RuntimeConfig(
            instagram=InstagramSettings(
                page_id="PAGE", access_token="page-token", verify_token=VERIFY_TOKEN,
            ),
            gpt=LLMSettings(api_key=""),
            booking=BookingSettings(calendly_url="https://cal.example/me"),
        )
    )
    pipeline = MagicMock()
    pipeline.dispatch.return_value = 1
    connectivity = MagicMock(check=AsyncMock())

    app.state.store = store
    app.state.config_store = config_store
    app.state.pipeline = pipeline
    app.state.connectivity = connectivity
    yield {
        "store": store,
        "config_store": config_store,
        "pipeline": pipeline,
        "connectivity": connectivity,
    }
    app.state.store = None
    app.state.config_store = None
    app.state.pipeline = None
    app.state.connectivity = None


@pytest.fixture
def client(components):
    return TestClient(app)


def _signed_post(client, payload: dict, *, secret: str | None = None):
    body = json.dumps(payload).encode()
    signature = compute_signature(body, secret or config.WEBHOOK_SECRET)
    return client.post(
        "/webhook",
        content=body,
        headers={"Content-Type": "application/json", "x-hub-signature-256": signature},
    )


# ── Webhook verification ─────────────────────────────────────────────


class TestWebhookVerification:
    def test_valid_token_echoes_challenge(self, client):
        response = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": VERIFY_TOKEN, "hub.challenge": "1158201444"},
        )
        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_wrong_token_is_forbidden(self, client):
        response = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "x"},
        )
        assert response.status_code == 403

    def test_wrong_mode_is_forbidden(self, client):
        response = client.get(
            "/webhook",
            params={"hub.mode": "unsubscribe", "hub.verify_token": VERIFY_TOKEN, "hub.challenge": "x"},
        )
        assert response.status_code == 403

    @pytest.mark.parametrize(
        "params",
        [
            {"hub.verify_token": VERIFY_TOKEN, "hub.challenge": "x"},
            {"hub.mode": "subscribe", "hub.challenge": "x"},
            {},
        ],
    )
    def test_missing_mode_or_token_is_bad_request(self, client, params):
        response = client.get("/webhook", params=params)
        assert response.status_code == 400

    def test_uses_live_verify_token(self, client, components):
        components["config_store"].merge(
            {"instagram": {"pageId": "PAGE", "accessToken": "t", "verifyToken": "rotated"}},
        )
        response = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "rotated", "hub.challenge": "ok"},
        )
        assert response.status_code == 200
        assert response.text == "ok"


# ── Webhook delivery ─────────────────────────────────────────────────


class TestWebhookDelivery:
    def test_signed_payload_is_acknowledged_and_dispatched(self, client, components, make_payload):
        payload = make_payload(("1000000001", "Hi, I need help"))

        response = _signed_post(client, payload)

        assert response.status_code == 200
        assert response.text == "EVENT_RECEIVED"
        components["pipeline"].dispatch.assert_called_once_with(payload)

    def test_bad_signature_is_rejected_before_processing(self, client, components, make_payload):
        response = _signed_post(client, make_payload(("1", "hi")), secret="wrong-secret")

        assert response.status_code == 403
        assert response.text == "Invalid signature"
        components["pipeline"].dispatch.assert_not_called()

    def test_missing_signature_is_rejected(self, client, components, make_payload):
        response = client.post("/webhook", json=make_payload(("1", "hi")))
        assert response.status_code == 403
        components["pipeline"].dispatch.assert_not_called()

    def test_rejected_payload_creates_no_conversation(self, components, make_payload):
        """With the real pipeline wired in, a bad signature leaves the store empty."""
        from src.services.pipeline import ReplyPipeline

        pipeline = ReplyPipeline(
            components["store"], components["config_store"],
            MagicMock(complete=AsyncMock(return_value="hi")),
            MagicMock(deliver=AsyncMock(return_value=True)),
            sleep=AsyncMock(),
        )
        app.state.pipeline = pipeline

        response = _signed_post(TestClient(app), make_payload(("1", "hi")), secret="wrong")

        assert response.status_code == 403
        assert components["store"].conversation_count == 0

    def test_signature_not_required_when_disabled(self, client, components, make_payload):
        with patch("src.api.routes.config.WEBHOOK_SIGNATURE_REQUIRED", False):
            response = client.post("/webhook", json=make_payload(("1", "hi")))
        assert response.status_code == 200
        components["pipeline"].dispatch.assert_called_once()

    def test_invalid_json_is_bad_request(self, client, components):
        body = b"{not json"
        response = client.post(
            "/webhook",
            content=body,
            headers={"x-hub-signature-256": compute_signature(body, config.WEBHOOK_SECRET)},
        )
        assert response.status_code == 400
        components["pipeline"].dispatch.assert_not_called()

    def test_unexpected_error_returns_500(self, client, components, make_payload):
        components["pipeline"].dispatch.side_effect = RuntimeError("boom")
        response = _signed_post(client, make_payload(("1", "hi")))
        assert response.status_code == 500
        assert "boom" not in response.text

    def test_non_message_payload_still_acknowledged(self, client, components):
        components["pipeline"].dispatch.return_value = 0
        response = _signed_post(client, {"object": "instagram", "entry": []})
        assert response.status_code == 200
        assert response.text == "EVENT_RECEIVED"


# ── Dashboard API ────────────────────────────────────────────────────


class TestStatusEndpoint:
    def test_reports_llm_disconnected_without_api_key(self, client):
        response = client.get("/api/status")
        assert response.status_code == 200
        assert response.json() == {
            "webhook": "connected",
            "instagram": "connected",
            "gpt": "disconnected",
            "booking": "connected",
        }

    def test_reflects_config_updates(self, client, components):
        # An empty booking section resets calendlyUrl to its "" default
        components["config_store"].merge({"gpt": {"apiKey": "sk-new"}, "booking": {}})
        data = client.get("/api/status").json()
        assert data["gpt"] == "connected"
        assert data["booking"] == "disconnected"


class TestConversationsEndpoint:
    def test_empty(self, client):
        assert client.get("/api/conversations").json() == []

    def test_lists_most_recent_first_in_camel_case(self, client, components):
        store = components["store"]
        asyncio.run(store.append_message("A", None, "first", Sender.USER))
        asyncio.run(store.append_message("B", None, "second", Sender.USER))
        store._conversations["B"].last_activity = store._conversations["A"].last_activity.replace(
            year=2100,
        )

        data = client.get("/api/conversations").json()

        assert [c["userId"] for c in data] == ["B", "A"]
        first = data[1]
        assert first["username"] == "user_A"
        assert first["status"] == "active"
        assert {"id", "createdAt", "lastActivity", "messages"} <= set(first)
        assert first["messages"][0]["text"] == "first"
        assert first["messages"][0]["sender"] == "user"


class TestConfigEndpoint:
    def test_merge_updates_live_config(self, client, components):
        response = client.post(
            "/api/config", json={"booking": {"calendlyUrl": "https://cal.example/new"}},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Configuration saved successfully"}
        assert components["config_store"].snapshot().booking.calendly_url == "https://cal.example/new"

    def test_invalid_section_is_rejected(self, client, components):
        before = components["config_store"].snapshot()
        response = client.post("/api/config", json={"pipeline": {"replyDelayMinSeconds": "soon"}})
        assert response.status_code == 422
        assert response.json()["success"] is False
        assert components["config_store"].snapshot() is before


class TestConnectivityEndpoint:
    def test_passes_candidate_config_to_checker(self, client, components):
        components["connectivity"].check.return_value = ConnectivityResult(
            success=True, data={"id": "P", "name": "Page"},
        )
        candidate = {"instagram": {"pageId": "P", "accessToken": "tok"}}

        response = client.post("/api/test/instagram", json=candidate)

        assert response.status_code == 200
        assert response.json() == {"success": True, "data": {"id": "P", "name": "Page"}}
        components["connectivity"].check.assert_awaited_once_with("instagram", candidate)

    def test_failure_result(self, client, components):
        components["connectivity"].check.return_value = ConnectivityResult(
            success=False, error="Invalid API key.",
        )
        response = client.post("/api/test/gpt", json={"gpt": {"apiKey": "bad"}})
        assert response.json() == {"success": False, "error": "Invalid API key."}

    def test_unknown_service(self, client, components):
        components["connectivity"].check.side_effect = UnknownServiceError("fax")
        response = client.post("/api/test/fax", json={})
        assert response.status_code == 400
        assert response.json()["message"] == "Unknown service"


# ── Misc ─────────────────────────────────────────────────────────────


class TestHealthEndpoint:
    def test_health_returns_status_and_timestamp(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data


class TestRequestId:
    def test_response_includes_request_id_header(self, client):
        assert "X-Request-ID" in client.get("/health").headers

    def test_client_supplied_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "my-trace-id-123"})
        assert response.headers["X-Request-ID"] == "my-trace-id-123"


class TestNotReady:
    def test_returns_503_when_components_not_initialised(self):
        app.state.config_store = None
        response = TestClient(app).get("/api/status")
        assert response.status_code == 503
        assert "starting up" in response.json()["detail"].lower()


class TestRootEndpoint:
    def test_root_returns_service_info(self, client):
        data = client.get("/").json()
        assert data["service"] == "Instagram AI Appointment Setter"
        assert data["webhook"] == "/webhook"
