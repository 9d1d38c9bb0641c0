"""Conversation storage for the reply pipeline and the admin dashboard.

The pipeline only talks to the abstract :class:`ConversationStore`, so a
persistent backend can replace the in-memory one without touching it.

The in-memory store keeps everything for the lifetime of the process: there
is no eviction and no capacity bound, so memory grows with every message.
``conversation_count`` and ``message_count`` make that growth observable.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from src.models import Conversation, Message, Sender

logger = logging.getLogger(__name__)


class ConversationStore(ABC):
    """Append-only registry of per-user message histories."""

    @abstractmethod
    async def append_message(
        self,
        user_id: str,
        username_hint: str | None,
        text: str,
        sender: Sender,
    ) -> Conversation:
        """Append a message to *user_id*'s conversation, creating it if needed.

        Returns the full, updated conversation.
        """

    @abstractmethod
    async def list_conversations(self) -> list[Conversation]:
        """Return every conversation, most recently active first."""


class InMemoryConversationStore(ConversationStore):
    """Dict-backed store keyed by ``user_id``.

    Appends for the same user are serialised with a per-user ``asyncio.Lock``
    so find-or-create and append never interleave.  Returned conversations
    are deep copies: the store is the only owner of the live objects.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._user_locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = self._user_locks[user_id] = asyncio.Lock()
        return lock

    async def append_message(
        self,
        user_id: str,
        username_hint: str | None,
        text: str,
        sender: Sender,
    ) -> Conversation:
        async with self._lock_for(user_id):
            message = Message(text=text, sender=sender)
            conversation = self._conversations.get(user_id)
            if conversation is None:
                conversation = Conversation(
                    user_id=user_id,
                    username=username_hint or Conversation.default_username(user_id),
                    created_at=message.timestamp,
                    last_activity=message.timestamp,
                )
                self._conversations[user_id] = conversation
                logger.info("Conversation created for user %s", user_id)

            conversation.messages.append(message)
            conversation.last_activity = message.timestamp
            return conversation.model_copy(deep=True)

    async def list_conversations(self) -> list[Conversation]:
        # sorted() is stable, so ties keep creation order
        ordered = sorted(
            self._conversations.values(),
            key=lambda c: c.last_activity,
            reverse=True,
        )
        return [c.model_copy(deep=True) for c in ordered]

    # ── Introspection ────────────────────────────────────────────────

    @property
    def conversation_count(self) -> int:
        return len(self._conversations)

    @property
    def message_count(self) -> int:
        return sum(len(c.messages) for c in self._conversations.values())
