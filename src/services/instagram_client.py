"""Async HTTP client for the Instagram Messaging (Meta Graph) API.

Graph API docs: https://developers.facebook.com/docs/instagram-platform/instagram-api-with-facebook-login/messaging-api
Send requests authenticate with the Page access token as a Bearer token.

Sends are not retried: a failed reply is reported to the caller, which
decides what to do with it.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.config import GRAPH_API_BASE_URL, GRAPH_API_VERSION
from src.models import InstagramSettings

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 15.0


class InstagramAPIError(Exception):
    """Raised when a Graph API call fails or cannot be made."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def _graph_error_message(response: httpx.Response) -> str:
    """Pull the human-readable message out of a Graph API error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return response.text


class InstagramClient:
    """Thin wrapper around the Graph API endpoints the relay needs."""

    def __init__(
        self,
        base_url: str | None = None,
        api_version: str | None = None,
        *,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self._base_url = (base_url or GRAPH_API_BASE_URL).rstrip("/")
        self._api_version = api_version or GRAPH_API_VERSION
        self._client = httpx.AsyncClient(
            base_url=f"{self._base_url}/{self._api_version}",
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    # ── Internal helpers ─────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method,
                path,
                headers=headers,
                params=params,
                json=json_body,
            )
        except httpx.TimeoutException as exc:
            raise InstagramAPIError(f"Graph API request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise InstagramAPIError(f"Graph API request failed: {exc}") from exc

        if response.status_code >= 400:
            raise InstagramAPIError(
                f"Graph API error {response.status_code}: {_graph_error_message(response)}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError:
            return {}

    # ── Public API methods ───────────────────────────────────────────

    async def send_message(
        self,
        recipient_id: str,
        text: str,
        *,
        page_id: str,
        access_token: str,
    ) -> dict[str, Any]:
        """Send a text reply to *recipient_id* on behalf of *page_id*.

        Returns the Graph API response (``recipient_id`` and ``message_id``).
        """
        return await self._request(
            "POST",
            f"/{page_id}/messages",
            headers={"Authorization": f"Bearer {access_token}"},
            json_body={
                "recipient": {"id": recipient_id},
                "message": {"text": text},
                "messaging_type": "RESPONSE",
            },
        )

    async def deliver(
        self,
        recipient_id: str,
        text: str,
        settings: InstagramSettings,
    ) -> bool:
        """Send a reply and report success; failures are logged, never raised."""
        try:
            await self.send_message(
                recipient_id,
                text,
                page_id=settings.page_id,
                access_token=settings.access_token,
            )
        except InstagramAPIError as exc:
            logger.error(
                "Failed to send Instagram message to %s (status=%s): %s",
                recipient_id, exc.status_code, exc,
            )
            return False
        logger.info("Sent response to %s (%d chars)", recipient_id, len(text))
        return True

    async def get_page_identity(self, page_id: str, access_token: str) -> dict[str, Any]:
        """Fetch ``id`` and ``name`` of the page the token belongs to."""
        return await self._request(
            "GET",
            f"/{page_id}",
            params={"access_token": access_token, "fields": "id,name"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
