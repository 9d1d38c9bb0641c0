"""Instagram AI Appointment Setter — an LLM relay for Instagram DMs.

Architecture Overview
=====================

Every inbound Instagram direct message flows through one pipeline:

1. **Webhook** — Meta POSTs the event to ``/webhook``; the
   ``x-hub-signature-256`` HMAC is checked against the raw body before the
   payload is parsed, then the request is acknowledged immediately.
2. **Reply pipeline** — one background task per message: record the user
   message, ask the LLM for a reply given the conversation so far, swap the
   ``{BOOKING_URL}`` token for the calendar link, wait a human-like 2–5 s,
   send the reply through the Graph API and record it.

Key Design Decisions
--------------------
- **LLM**: LangChain chat models (``ChatOpenAI`` for OpenAI and Gemini's
  OpenAI-compatible endpoint, ``ChatAnthropic`` for Anthropic), built per
  call from the current configuration snapshot.  Failures produce a fixed
  apology instead of silence.
- **Configuration**: environment values seed an immutable ``RuntimeConfig``
  that the dashboard can replace at runtime; each pipeline run reads one
  snapshot.
- **Memory**: conversations live in an in-memory store behind an abstract
  interface; history is lost on restart.
- **Dual Interface**: FastAPI server (production) + CLI chat loop (persona
  rehearsal).

Package Structure
-----------------
- ``src/config.py`` — Environment-derived start-up configuration
- ``src/models.py`` — Conversation, Message and RuntimeConfig models
- ``src/prompts.py`` — Persona prompt and canned replies
- ``src/server.py`` — FastAPI application
- ``src/main.py`` — CLI chat interface
- ``src/services/`` — Pipeline, store, LLM / Instagram clients, probes
- ``src/api/`` — FastAPI routes and Pydantic schemas
"""
