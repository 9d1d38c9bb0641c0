"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

ConnectionState = Literal["connected", "disconnected"]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class StatusResponse(BaseModel):
    """Configuration-derived connection state of each integration.

    Pure function of the live configuration: nothing is probed.
    """

    webhook: ConnectionState = "connected"
    instagram: ConnectionState
    gpt: ConnectionState
    booking: ConnectionState


class ConfigUpdateResponse(BaseModel):
    success: bool
    message: str
