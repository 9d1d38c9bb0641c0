"""Domain models shared by the pipeline, the store and the admin API.

All models serialise with camelCase keys (``userId``, ``lastActivity``) which
is the shape the admin dashboard consumes.  Population by field name is also
accepted so Python callers can use snake_case.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src import config, prompts


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Sender(StrEnum):
    USER = "user"
    BOT = "bot"


class ConversationStatus(StrEnum):
    ACTIVE = "active"


# ── Conversations ────────────────────────────────────────────────────


class Message(_CamelModel):
    """A single message in a conversation, from the user or the bot."""

    id: str = Field(default_factory=_new_id)
    text: str
    sender: Sender
    timestamp: datetime = Field(default_factory=_utcnow)


class Conversation(_CamelModel):
    """Ordered message history for one Instagram user.

    ``messages`` is append-only and its order is chronological.
    ``last_activity`` always equals the timestamp of the last message.
    """

    id: str = Field(default_factory=_new_id)
    user_id: str
    username: str
    status: ConversationStatus = ConversationStatus.ACTIVE
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    last_activity: datetime = Field(default_factory=_utcnow)

    @staticmethod
    def default_username(user_id: str) -> str:
        return f"user_{user_id[-6:]}"


# ── Runtime configuration ────────────────────────────────────────────
#
# Frozen so that a snapshot handed to a pipeline run can never change under
# it; updates build a new RuntimeConfig and swap it in whole.


class _SettingsModel(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore",
    )


class InstagramSettings(_SettingsModel):
    page_id: str = ""
    access_token: str = ""
    verify_token: str = ""


class LLMSettings(_SettingsModel):
    provider: str = "openai"
    api_key: str = ""
    endpoint: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-3.5-turbo"
    prompt: str = prompts.SYSTEM_PROMPT


class BookingSettings(_SettingsModel):
    calendly_url: str = ""
    provider: str = "calendly"


class ResponseTemplates(_SettingsModel):
    welcome_message: str = prompts.WELCOME_MESSAGE
    qualification_prompt: str = prompts.QUALIFICATION_PROMPT
    booking_offer: str = prompts.BOOKING_OFFER
    booking_link: str = prompts.BOOKING_LINK


class PipelineSettings(_SettingsModel):
    reply_delay_min_seconds: float = Field(default=2.0, ge=0)
    reply_delay_max_seconds: float = Field(default=5.0, ge=0)
    record_failed_deliveries: bool = True


class RuntimeConfig(_SettingsModel):
    """The dashboard-editable configuration, one immutable object."""

    instagram: InstagramSettings = Field(default_factory=InstagramSettings)
    gpt: LLMSettings = Field(default_factory=LLMSettings)
    booking: BookingSettings = Field(default_factory=BookingSettings)
    responses: ResponseTemplates = Field(default_factory=ResponseTemplates)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)


def default_runtime_config() -> RuntimeConfig:
    """Build the start-up configuration from the environment-derived values."""
    return RuntimeConfig(
        instagram=InstagramSettings(
            page_id=config.INSTAGRAM_PAGE_ID,
            access_token=config.INSTAGRAM_ACCESS_TOKEN,
            verify_token=config.WEBHOOK_VERIFY_TOKEN,
        ),
        gpt=LLMSettings(
            provider=config.LLM_PROVIDER,
            api_key=config.LLM_API_KEY,
            endpoint=config.LLM_ENDPOINT,
            model=config.LLM_MODEL,
        ),
        booking=BookingSettings(calendly_url=config.CALENDLY_URL),
        pipeline=PipelineSettings(
            reply_delay_min_seconds=config.REPLY_DELAY_MIN_SECONDS,
            reply_delay_max_seconds=config.REPLY_DELAY_MAX_SECONDS,
            record_failed_deliveries=config.RECORD_FAILED_DELIVERIES,
        ),
    )
