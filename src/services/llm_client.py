"""Chat-completion client for the appointment-setter persona.

Providers:
  * ``openai``    — ``ChatOpenAI`` against the configured endpoint
  * ``gemini``    — ``ChatOpenAI`` against Gemini's OpenAI-compatible endpoint
  * ``anthropic`` — ``ChatAnthropic``

The chat model is built per call from the settings snapshot of the current
pipeline run, so a configuration change made through the dashboard takes
effect on the next message without a restart.
"""

from __future__ import annotations

import asyncio
import logging
import time

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.config import LLM_MAX_TOKENS, LLM_TEMPERATURE, LLM_TIMEOUT_SECONDS
from src.models import LLMSettings, Message, Sender
from src.prompts import get_system_prompt

logger = logging.getLogger(__name__)

APOLOGY_REPLY = "Sorry, I'm having trouble responding right now."

OPENAI_DEFAULT_BASE_URL = "https://api.openai.com/v1"
GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai"

_COMPLETIONS_SUFFIX = "/chat/completions"


class LLMError(Exception):
    """Raised when a chat completion cannot be produced."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


# ── Helpers ──────────────────────────────────────────────────────────


def normalise_base_url(endpoint: str, provider: str = "openai") -> str:
    """Turn a configured endpoint into the base URL ``ChatOpenAI`` expects.

    Accepts either a base URL or a full ``.../chat/completions`` URL.
    """
    url = (endpoint or "").strip().rstrip("/")
    if url.endswith(_COMPLETIONS_SUFFIX):
        url = url[: -len(_COMPLETIONS_SUFFIX)]
    if provider == "gemini" and (not url or url == OPENAI_DEFAULT_BASE_URL):
        return GEMINI_OPENAI_BASE_URL
    return url or OPENAI_DEFAULT_BASE_URL


def build_messages(
    system_prompt: str,
    message: str,
    history: list[Message],
) -> list[BaseMessage]:
    """System instruction, then the history as user/assistant turns, then *message*."""
    messages: list[BaseMessage] = [SystemMessage(content=system_prompt)]
    for past in history:
        if past.sender == Sender.USER:
            messages.append(HumanMessage(content=past.text))
        else:
            messages.append(AIMessage(content=past.text))
    messages.append(HumanMessage(content=message))
    return messages


def _extract_text(response: BaseMessage) -> str:
    content = response.content
    if isinstance(content, str):
        return content.strip()
    # Content-block responses (e.g. Anthropic): concatenate the text blocks
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts).strip()


def _build_llm(settings: LLMSettings) -> BaseChatModel:
    """Build the LangChain chat model for *settings*."""
    provider = settings.provider.strip().lower()
    if provider == "anthropic":
        return ChatAnthropic(
            model=settings.model,
            api_key=settings.api_key,
            temperature=LLM_TEMPERATURE,
            max_tokens=LLM_MAX_TOKENS,
            timeout=LLM_TIMEOUT_SECONDS,
            max_retries=0,
        )
    if provider in ("openai", "gemini"):
        return ChatOpenAI(
            model=settings.model,
            api_key=settings.api_key,
            base_url=normalise_base_url(settings.endpoint, provider),
            temperature=LLM_TEMPERATURE,
            max_tokens=LLM_MAX_TOKENS,
            timeout=LLM_TIMEOUT_SECONDS,
            max_retries=0,
        )
    raise LLMError(f"Unsupported LLM provider: {settings.provider!r}")


# ── Client ───────────────────────────────────────────────────────────


class LLMClient:
    """Turns a user message plus history into a single assistant reply."""

    def __init__(self, timeout: float = LLM_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout

    async def generate(
        self,
        message: str,
        history: list[Message],
        settings: LLMSettings,
        *,
        system_prompt: str | None = None,
    ) -> str:
        """Return the trimmed text of the first completion.

        Raises :class:`LLMError` on any failure, including an empty reply.
        """
        if system_prompt is None:
            system_prompt = get_system_prompt(settings.prompt)
        prompt = build_messages(system_prompt, message, history)

        t0 = time.perf_counter()
        try:
            llm = _build_llm(settings)
            response = await asyncio.wait_for(llm.ainvoke(prompt), timeout=self._timeout)
        except LLMError:
            raise
        except TimeoutError as exc:
            raise LLMError(f"LLM request timed out after {self._timeout:.0f}s") from exc
        except Exception as exc:
            raise LLMError(
                f"LLM request failed: {exc}",
                status_code=getattr(exc, "status_code", None),
            ) from exc

        reply = _extract_text(response)
        elapsed = (time.perf_counter() - t0) * 1000
        if not reply:
            raise LLMError("LLM returned an empty completion")
        logger.debug(
            "LLM (%s/%s) replied in %.0fms with %d chars",
            settings.provider, settings.model, elapsed, len(reply),
        )
        return reply

    async def complete(
        self,
        message: str,
        history: list[Message],
        settings: LLMSettings,
    ) -> str:
        """Pipeline-facing call: any failure yields :data:`APOLOGY_REPLY`."""
        try:
            return await self.generate(message, history, settings)
        except LLMError as exc:
            logger.error(
                "LLM completion failed (status=%s): %s", exc.status_code, exc,
            )
            return APOLOGY_REPLY
