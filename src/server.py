"""FastAPI server for the Instagram appointment-setter relay.

Run with:
    uv run uvicorn src.server:app --reload --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import router, webhook_router
from src.config import CORS_ORIGINS, INSTAGRAM_PAGE_ID, SERVER_HOST, SERVER_PORT
from src.models import default_runtime_config
from src.services.connectivity import ConnectivityChecker
from src.services.conversation_store import InMemoryConversationStore
from src.services.instagram_client import InstagramClient
from src.services.llm_client import LLMClient
from src.services.pipeline import ReplyPipeline
from src.services.runtime_config import ConfigStore

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the store, clients and pipeline once and keep them in app state.

    On shutdown, in-flight replies are cancelled and HTTP clients closed.
    """
    store = InMemoryConversationStore()
    config_store = ConfigStore(default_runtime_config())
    llm = LLMClient()
    instagram = InstagramClient()
    pipeline = ReplyPipeline(store, config_store, llm, instagram)
    connectivity = ConnectivityChecker(instagram, llm)

    application.state.store = store
    application.state.config_store = config_store
    application.state.pipeline = pipeline
    application.state.connectivity = connectivity
    logger.info("Relay ready for Instagram page %s", INSTAGRAM_PAGE_ID)
    yield

    await pipeline.shutdown()
    await connectivity.aclose()
    await instagram.aclose()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Instagram AI Appointment Setter",
    description=(
        "Answers Instagram DMs with an LLM appointment-setter persona "
        "and hands out the booking link."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (needed for the admin dashboard) ────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(webhook_router)
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Instagram AI Appointment Setter",
        "version": "1.0.0",
        "webhook": "/webhook",
        "docs": "/docs",
        "health": "/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting relay on %s:%d (webhook URL: /webhook)", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "src.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
