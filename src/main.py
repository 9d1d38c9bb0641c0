"""CLI entry point for rehearsing the appointment-setter persona.

Chats with the configured LLM from the terminal using the same store, LLM
client and booking-link substitution as the webhook pipeline.  Nothing is
sent to Instagram and there is no reply delay.

Usage:
    uv run python -m src.main            # normal mode (quiet)
    uv run python -m src.main --debug    # debug mode (shows API calls)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import uuid

from src.models import RuntimeConfig, Sender, default_runtime_config
from src.services.conversation_store import ConversationStore, InMemoryConversationStore
from src.services.llm_client import LLMClient
from src.services.pipeline import substitute_booking_url

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("src").setLevel(logging.DEBUG if debug else logging.INFO)


def _new_user_id() -> str:
    return f"cli-{uuid.uuid4().hex[:10]}"


async def reply_to(
    text: str,
    user_id: str,
    store: ConversationStore,
    llm: LLMClient,
    runtime: RuntimeConfig,
) -> str:
    """One turn: record the user message, complete, substitute, record the reply."""
    conversation = await store.append_message(user_id, "cli", text, Sender.USER)
    reply = await llm.complete(text, conversation.messages[:-1], runtime.gpt)
    final_text = substitute_booking_url(reply, runtime.booking.calendly_url)
    await store.append_message(user_id, "cli", final_text, Sender.BOT)
    return final_text


async def _chat_loop(runtime: RuntimeConfig) -> None:
    store = InMemoryConversationStore()
    llm = LLMClient()
    user_id = _new_user_id()
    logger.info("Started new conversation: %s", user_id)
    print(f"Bot: {runtime.responses.welcome_message}\n")

    while True:
        try:
            user_input = (await asyncio.to_thread(input, "You: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break

        if user_input.lower() == "new":
            user_id = _new_user_id()
            print(f"\n>> New conversation started: {user_id}\n")
            continue

        reply = await reply_to(user_input, user_id, store, llm, runtime)
        print(f"\nBot: {reply}\n")


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Instagram appointment-setter CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    _configure_logging(debug=args.debug)

    runtime = default_runtime_config()
    if not runtime.gpt.api_key:
        print("No LLM API key configured: every reply will be the fallback apology.\n")

    print("\n" + "=" * 60)
    print("  Instagram Appointment Setter - CLI Chat")
    print("=" * 60)
    print(f"  Provider: {runtime.gpt.provider}  Model: {runtime.gpt.model}")
    print("  Commands: 'quit' to exit, 'new' for a new conversation.")
    print("=" * 60 + "\n")

    asyncio.run(_chat_loop(runtime))


if __name__ == "__main__":
    main()
