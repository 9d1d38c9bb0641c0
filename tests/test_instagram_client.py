"""Tests for the Instagram Graph API client."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.models import InstagramSettings
from src.services.instagram_client import InstagramAPIError, InstagramClient

SETTINGS = InstagramSettings(page_id="17841400000000000", access_token="page-token")


# ── Helpers ──────────────────────────────────────────────────────────


def _mock_response(data: dict, status_code: int = 200) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status_code
    mock.json.return_value = data
    mock.text = str(data)
    return mock


# ── Tests: send_message ──────────────────────────────────────────────


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_posts_reply_to_page_messages_endpoint(self):
        client = InstagramClient(api_version="v23.0")
        sent = {"recipient_id": "1000000001", "message_id": "m_1"}

        with patch.object(
            client._client, "request", new=AsyncMock(return_value=_mock_response(sent)),
        ) as mock_req:
            result = await client.send_message(
                "1000000001", "Hello!", page_id="PAGE", access_token="tok",
            )

        assert result == sent
        method, path = mock_req.call_args[0]
        assert method == "POST"
        assert path == "/PAGE/messages"
        kwargs = mock_req.call_args[1]
        assert kwargs["headers"] == {"Authorization": "Bearer tok"}
        assert kwargs["json"] == {
            "recipient": {"id": "1000000001"},
            "message": {"text": "Hello!"},
            "messaging_type": "RESPONSE",
        }

    @pytest.mark.asyncio
    async def test_error_status_raises_with_graph_message(self):
        client = InstagramClient()
        error_body = {"error": {"message": "Invalid OAuth access token.", "code": 190}}

        with patch.object(
            client._client, "request",
            new=AsyncMock(return_value=_mock_response(error_body, 401)),
        ):
            with pytest.raises(InstagramAPIError) as exc_info:
                await client.send_message("1", "x", page_id="P", access_token="bad")

        assert exc_info.value.status_code == 401
        assert "Invalid OAuth access token." in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_error_raises_without_status(self):
        client = InstagramClient()

        with patch.object(
            client._client, "request",
            new=AsyncMock(side_effect=httpx.ConnectError("connection refused")),
        ):
            with pytest.raises(InstagramAPIError) as exc_info:
                await client.send_message("1", "x", page_id="P", access_token="t")

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        client = InstagramClient()

        with patch.object(
            client._client, "request",
            new=AsyncMock(side_effect=httpx.ReadTimeout("slow")),
        ):
            with pytest.raises(InstagramAPIError, match="timed out"):
                await client.send_message("1", "x", page_id="P", access_token="t")


# ── Tests: deliver ───────────────────────────────────────────────────


class TestDeliver:
    @pytest.mark.asyncio
    async def test_returns_true_on_success(self):
        client = InstagramClient()
        with patch.object(
            client._client, "request",
            new=AsyncMock(return_value=_mock_response({"message_id": "m_1"})),
        ):
            assert await client.deliver("1000000001", "Hi!", SETTINGS) is True

    @pytest.mark.asyncio
    async def test_uses_settings_page_and_token(self):
        client = InstagramClient()
        with patch.object(
            client._client, "request",
            new=AsyncMock(return_value=_mock_response({"message_id": "m_1"})),
        ) as mock_req:
            await client.deliver("1000000001", "Hi!", SETTINGS)

        assert mock_req.call_args[0][1] == f"/{SETTINGS.page_id}/messages"
        assert mock_req.call_args[1]["headers"]["Authorization"] == "Bearer page-token"

    @pytest.mark.asyncio
    async def test_returns_false_instead_of_raising(self):
        client = InstagramClient()
        with patch.object(
            client._client, "request",
            new=AsyncMock(return_value=_mock_response({"error": {"message": "boom"}}, 500)),
        ):
            assert await client.deliver("1000000001", "Hi!", SETTINGS) is False


# ── Tests: get_page_identity ─────────────────────────────────────────


class TestGetPageIdentity:
    @pytest.mark.asyncio
    async def test_requests_id_and_name_with_token_param(self):
        client = InstagramClient()
        identity = {"id": "PAGE", "name": "Glow Coaching"}

        with patch.object(
            client._client, "request", new=AsyncMock(return_value=_mock_response(identity)),
        ) as mock_req:
            result = await client.get_page_identity("PAGE", "tok")

        assert result == identity
        assert mock_req.call_args[0] == ("GET", "/PAGE")
        assert mock_req.call_args[1]["params"] == {"access_token": "tok", "fields": "id,name"}


def test_base_url_includes_api_version():
    client = InstagramClient(base_url="https://graph.example.com/", api_version="v99.0")
    assert str(client._client.base_url) == "https://graph.example.com/v99.0/"
