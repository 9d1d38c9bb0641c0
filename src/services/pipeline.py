"""Webhook-to-LLM-to-reply pipeline.

For each inbound Instagram message:

    record (user) → complete (LLM) → substitute booking link
                  → delay → deliver (Instagram) → record (bot)

Every message runs in its own ``asyncio.Task`` with its own error boundary,
so the webhook request is acknowledged immediately and one failing message
never affects its siblings.  There is no bound on in-flight runs: a burst
of webhooks creates one task per message.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from src.models import Sender
from src.prompts import BOOKING_PLACEHOLDER
from src.services.conversation_store import ConversationStore
from src.services.instagram_client import InstagramClient
from src.services.llm_client import LLMClient
from src.services.runtime_config import ConfigStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    sender_id: str
    text: str


@dataclass(frozen=True)
class ReplyOutcome:
    sender_id: str
    reply: str
    delivered: bool
    delay_seconds: float


# ── Payload handling ─────────────────────────────────────────────────


def extract_messages(payload: Any) -> list[InboundMessage]:
    """Return every text message in an Instagram webhook payload.

    Events without a sender id or message text (reactions, read receipts,
    attachments) and echoes of the page's own messages are skipped.
    """
    if not isinstance(payload, dict) or payload.get("object") != "instagram":
        return []

    inbound: list[InboundMessage] = []
    for entry in payload.get("entry") or []:
        if not isinstance(entry, dict):
            continue
        for event in entry.get("messaging") or []:
            if not isinstance(event, dict):
                continue
            sender = event.get("sender")
            message = event.get("message")
            if not isinstance(sender, dict) or not isinstance(message, dict):
                logger.debug("Skipping non-message event: %s", sorted(event))
                continue
            sender_id = sender.get("id")
            text = message.get("text")
            if not sender_id or not isinstance(text, str) or not text:
                logger.debug("Skipping event without sender id or text")
                continue
            if message.get("is_echo"):
                continue
            inbound.append(InboundMessage(sender_id=str(sender_id), text=text))
    return inbound


def substitute_booking_url(reply: str, booking_url: str) -> str:
    """Replace every ``{BOOKING_URL}`` token; replies without one pass through."""
    if BOOKING_PLACEHOLDER not in reply:
        return reply
    return reply.replace(BOOKING_PLACEHOLDER, booking_url)


# ── Pipeline ─────────────────────────────────────────────────────────


class ReplyPipeline:
    """Orchestrates the store, LLM client and Instagram client."""

    def __init__(
        self,
        store: ConversationStore,
        config_store: ConfigStore,
        llm: LLMClient,
        messenger: InstagramClient,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._store = store
        self._config_store = config_store
        self._llm = llm
        self._messenger = messenger
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def dispatch(self, payload: Any) -> int:
        """Schedule one reply run per message in *payload*; returns the count.

        Must be called from within the running event loop.
        """
        inbound = extract_messages(payload)
        for message in inbound:
            logger.info(
                "Received message from %s (%d chars)", message.sender_id, len(message.text),
            )
            task = asyncio.create_task(
                self._run_safely(message), name=f"reply-{message.sender_id}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return len(inbound)

    async def _run_safely(self, message: InboundMessage) -> ReplyOutcome | None:
        try:
            return await self.process(message)
        except asyncio.CancelledError:
            logger.warning("Reply to %s cancelled", message.sender_id)
            raise
        except Exception:
            logger.exception("Reply pipeline failed for %s", message.sender_id)
            return None

    async def process(self, message: InboundMessage) -> ReplyOutcome:
        """Run one message through the pipeline to completion."""
        config = self._config_store.snapshot()

        conversation = await self._store.append_message(
            message.sender_id, None, message.text, Sender.USER,
        )
        history = conversation.messages[:-1]

        reply = await self._llm.complete(message.text, history, config.gpt)
        final_text = substitute_booking_url(reply, config.booking.calendly_url)

        low = config.pipeline.reply_delay_min_seconds
        high = max(low, config.pipeline.reply_delay_max_seconds)
        delay = random.uniform(low, high)
        await self._sleep(delay)

        delivered = await self._messenger.deliver(
            message.sender_id, final_text, config.instagram,
        )
        if delivered or config.pipeline.record_failed_deliveries:
            await self._store.append_message(
                message.sender_id, None, final_text, Sender.BOT,
            )
        else:
            logger.info("Not recording undelivered reply to %s", message.sender_id)

        return ReplyOutcome(
            sender_id=message.sender_id,
            reply=final_text,
            delivered=delivered,
            delay_seconds=delay,
        )

    async def drain(self) -> None:
        """Wait for every in-flight reply run to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight reply runs (used on server shutdown)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d in-flight replies", len(tasks))
