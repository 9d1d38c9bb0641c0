"""FastAPI route definitions: the Instagram webhook and the admin dashboard API."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from src import config
from src.api.schemas import ConfigUpdateResponse, HealthResponse, StatusResponse
from src.models import Conversation
from src.services.connectivity import ConnectivityChecker, ConnectivityResult, UnknownServiceError
from src.services.conversation_store import ConversationStore
from src.services.pipeline import ReplyPipeline
from src.services.runtime_config import ConfigStore
from src.services.signature import verify_signature

logger = logging.getLogger(__name__)

# Webhook + health live at the root, the dashboard API under /api
webhook_router = APIRouter()
router = APIRouter()


def _get_component(request: Request, name: str) -> Any:
    """Retrieve a component created by the lifespan from app state."""
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return component


def _state(flag: Any) -> str:
    return "connected" if flag else "disconnected"


# ── Webhook ──────────────────────────────────────────────────────────


@webhook_router.get("/webhook")
async def verify_webhook(request: Request):
    """Meta subscription handshake: echo ``hub.challenge`` for a valid token."""
    mode = request.query_params.get("hub.mode")
    token = request.query_params.get("hub.verify_token")
    challenge = request.query_params.get("hub.challenge", "")

    if not mode or not token:
        return PlainTextResponse("Bad Request", status_code=400)

    config_store: ConfigStore = _get_component(request, "config_store")
    if mode == "subscribe" and token == config_store.snapshot().instagram.verify_token:
        logger.info("Webhook verified successfully")
        return PlainTextResponse(challenge)

    logger.warning("Webhook verification failed (mode=%s)", mode)
    return PlainTextResponse("Forbidden", status_code=403)


@webhook_router.post("/webhook")
async def receive_webhook(request: Request):
    """Receive Instagram messaging events.

    The signature is checked against the raw body before anything is parsed.
    Replies are produced in background tasks, so the platform gets its 200
    as soon as the events are scheduled.
    """
    pipeline: ReplyPipeline = _get_component(request, "pipeline")
    request_id = getattr(request.state, "request_id", "?")
    raw_body = await request.body()

    if config.WEBHOOK_SIGNATURE_REQUIRED:
        signature = request.headers.get("x-hub-signature-256")
        if not verify_signature(raw_body, signature, config.WEBHOOK_SECRET):
            logger.warning("[%s] Webhook signature verification failed", request_id)
            return PlainTextResponse("Invalid signature", status_code=403)
    else:
        logger.warning(
            "[%s] Webhook signature verification is DISABLED; accepting unsigned payload",
            request_id,
        )

    try:
        payload = json.loads(raw_body)
    except ValueError:
        logger.warning("[%s] Webhook body is not valid JSON", request_id)
        return PlainTextResponse("Invalid payload", status_code=400)

    try:
        scheduled = pipeline.dispatch(payload)
    except Exception:
        logger.exception("[%s] Webhook processing error", request_id)
        return PlainTextResponse("Internal server error", status_code=500)

    logger.debug("[%s] Scheduled %d replies", request_id, scheduled)
    return PlainTextResponse("EVENT_RECEIVED")


@webhook_router.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness check."""
    return HealthResponse()


# ── Dashboard API ────────────────────────────────────────────────────


@router.get("/status", response_model=StatusResponse)
async def get_status(request: Request):
    """Report which integrations are configured."""
    config_store: ConfigStore = _get_component(request, "config_store")
    current = config_store.snapshot()
    return StatusResponse(
        instagram=_state(current.instagram.access_token),
        gpt=_state(current.gpt.api_key),
        booking=_state(current.booking.calendly_url),
    )


@router.get("/conversations", response_model=list[Conversation])
async def list_conversations(request: Request):
    """All conversations, most recently active first."""
    store: ConversationStore = _get_component(request, "store")
    return await store.list_conversations()


@router.post("/config", response_model=ConfigUpdateResponse)
async def update_config(request: Request, patch: dict[str, Any] = Body(...)):
    """Shallow-merge the submitted sections into the live configuration."""
    config_store: ConfigStore = _get_component(request, "config_store")
    try:
        config_store.merge(patch)
    except ValidationError as exc:
        logger.warning("Rejected configuration update: %d errors", exc.error_count())
        return JSONResponse(
            status_code=422,
            content={"success": False, "message": "Invalid configuration"},
        )
    return ConfigUpdateResponse(success=True, message="Configuration saved successfully")


@router.post("/test/{service}", response_model=ConnectivityResult, response_model_exclude_none=True)
async def test_service(
    service: str,
    request: Request,
    candidate: dict[str, Any] | None = Body(default=None),
):
    """Probe one integration using the candidate configuration in the body."""
    checker: ConnectivityChecker = _get_component(request, "connectivity")
    try:
        return await checker.check(service, candidate or {})
    except UnknownServiceError:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Unknown service"},
        )
