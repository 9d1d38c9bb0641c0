"""Live connectivity probes for the dashboard's "Test connection" buttons.

Each probe runs against a *candidate* configuration submitted by the
dashboard, not the live one, so credentials can be checked before saving.
Failures come back as a result with a human-readable, status-specific
message; the probes themselves never raise for upstream errors.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from src.config import CONNECTIVITY_TIMEOUT_SECONDS
from src.models import BookingSettings, InstagramSettings, LLMSettings
from src.services.instagram_client import InstagramAPIError, InstagramClient
from src.services.llm_client import LLMClient, LLMError

logger = logging.getLogger(__name__)

SUPPORTED_SERVICES = ("instagram", "gpt", "booking")

_PROBE_PROMPT = "You are a connectivity check. Reply with the single word OK."


class UnknownServiceError(ValueError):
    """Raised for a service name with no probe."""


class ConnectivityResult(BaseModel):
    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None


# ── Status-code → message tables ─────────────────────────────────────

_INSTAGRAM_ERRORS = {
    400: "Invalid Page ID or malformed request. Check the Instagram Page ID.",
    401: "Invalid or expired access token.",
    403: "The access token lacks the permissions required for this page.",
    404: "Page not found. Check the Instagram Page ID.",
    429: "Instagram API rate limit reached. Try again in a few minutes.",
}

_LLM_ERRORS = {
    400: "The LLM provider rejected the request. Check the model name.",
    401: "Invalid API key.",
    403: "The API key does not have access to this model.",
    404: "Model or endpoint not found. Check the model name and endpoint URL.",
    429: "Rate limit or quota exceeded for this API key.",
}

_BOOKING_ERRORS = {
    401: "The booking page requires authentication. Use the public booking link.",
    403: "Access to the booking page is forbidden.",
    404: "Booking page not found. Check the booking URL.",
}


def _describe(table: dict[int, str], service: str, status_code: int | None, detail: str) -> str:
    if status_code is None:
        return f"Could not reach {service}: {detail}"
    if status_code in table:
        return table[status_code]
    label = service[:1].upper() + service[1:]
    if status_code >= 500:
        return f"{label} is currently unavailable (HTTP {status_code}). Try again later."
    return f"{label} returned HTTP {status_code}: {detail}"


def _section(candidate: dict[str, Any], name: str, model: type[BaseModel]) -> Any:
    raw = candidate.get(name) or {}
    if not isinstance(raw, dict):
        raise TypeError(f"{name} must be an object")
    return model.model_validate(raw)


class ConnectivityChecker:
    """Runs the per-service probes."""

    def __init__(
        self,
        instagram: InstagramClient,
        llm: LLMClient,
        *,
        timeout: float = CONNECTIVITY_TIMEOUT_SECONDS,
    ):
        self._instagram = instagram
        self._llm = llm
        self._http = httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def check(self, service: str, candidate: dict[str, Any]) -> ConnectivityResult:
        if service not in SUPPORTED_SERVICES:
            raise UnknownServiceError(service)
        model, probe = {
            "instagram": (InstagramSettings, self._check_instagram),
            "gpt": (LLMSettings, self._check_llm),
            "booking": (BookingSettings, self._check_booking),
        }[service]
        try:
            settings = _section(candidate, service, model)
        except (ValidationError, TypeError):
            return ConnectivityResult(success=False, error=f"Invalid {service} configuration.")
        return await probe(settings)

    # ── Probes ───────────────────────────────────────────────────────

    async def _check_instagram(self, settings: InstagramSettings) -> ConnectivityResult:
        if not settings.page_id or not settings.access_token:
            return ConnectivityResult(
                success=False, error="Missing Instagram Page ID or Access Token.",
            )
        try:
            identity = await self._instagram.get_page_identity(
                settings.page_id, settings.access_token,
            )
        except InstagramAPIError as exc:
            logger.warning("Instagram connectivity test failed: %s", exc)
            return ConnectivityResult(
                success=False,
                error=_describe(_INSTAGRAM_ERRORS, "Instagram", exc.status_code, str(exc)),
            )
        return ConnectivityResult(success=True, data=identity)

    async def _check_llm(self, settings: LLMSettings) -> ConnectivityResult:
        if not settings.api_key:
            return ConnectivityResult(success=False, error="Missing LLM API key.")
        try:
            reply = await self._llm.generate(
                "Hello", [], settings, system_prompt=_PROBE_PROMPT,
            )
        except LLMError as exc:
            logger.warning("LLM connectivity test failed: %s", exc)
            return ConnectivityResult(
                success=False,
                error=_describe(_LLM_ERRORS, "the LLM provider", exc.status_code, str(exc)),
            )
        return ConnectivityResult(
            success=True,
            data={"provider": settings.provider, "model": settings.model, "reply": reply[:100]},
        )

    async def _check_booking(self, settings: BookingSettings) -> ConnectivityResult:
        url = settings.calendly_url.strip()
        if not url:
            return ConnectivityResult(success=False, error="Missing booking URL.")
        if not url.startswith(("http://", "https://")):
            return ConnectivityResult(
                success=False, error="Booking URL must start with http:// or https://.",
            )
        try:
            response = await self._http.head(url)
            if response.status_code == 405:
                # HEAD not allowed; the page may still serve GET
                logger.debug("HEAD rejected by %s, retrying with GET", url)
                response = await self._http.get(url)
        except httpx.TimeoutException:
            return ConnectivityResult(success=False, error="The booking page timed out.")
        except httpx.HTTPError as exc:
            logger.warning("Booking connectivity test failed: %s", exc)
            return ConnectivityResult(
                success=False, error=_describe(_BOOKING_ERRORS, "the booking page", None, str(exc)),
            )
        if response.status_code >= 400:
            return ConnectivityResult(
                success=False,
                error=_describe(
                    _BOOKING_ERRORS, "the booking page", response.status_code, response.reason_phrase,
                ),
            )
        return ConnectivityResult(
            success=True, data={"url": str(response.url), "status": response.status_code},
        )

    async def aclose(self) -> None:
        await self._http.aclose()
