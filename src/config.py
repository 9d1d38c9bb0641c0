"""Centralized configuration for the Instagram appointment-setter relay.

Values are read once at import time.  Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/instagram-relay/<VARIABLE_NAME>``.

Only the start-up defaults live here.  The dashboard-editable copy of these
values is held by :class:`src.services.runtime_config.ConfigStore`.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 — lazy import to avoid boto3 dep in tests

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/instagram-relay/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /instagram-relay/{name} (AWS)."
    )


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


def _first_env(*names: str, default: str = "") -> str:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


# ── Instagram ───────────────────────────────────────────────────────
INSTAGRAM_PAGE_ID: str = _require_env("INSTAGRAM_PAGE_ID")
INSTAGRAM_ACCESS_TOKEN: str = _require_env("INSTAGRAM_ACCESS_TOKEN")
GRAPH_API_BASE_URL: str = os.getenv("GRAPH_API_BASE_URL", "https://graph.facebook.com")
GRAPH_API_VERSION: str = os.getenv("GRAPH_API_VERSION", "v23.0")

# ── Webhook ─────────────────────────────────────────────────────────
WEBHOOK_SECRET: str = _require_env("WEBHOOK_SECRET")
WEBHOOK_VERIFY_TOKEN: str = os.getenv("WEBHOOK_VERIFY_TOKEN", "myverifytoken")
WEBHOOK_SIGNATURE_REQUIRED: bool = _env_flag("WEBHOOK_SIGNATURE_REQUIRED", True)

# ── LLM ─────────────────────────────────────────────────────────────
_PROVIDER_KEY_VARS = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}
_PROVIDER_DEFAULT_MODELS = {
    "openai": "gpt-3.5-turbo",
    "gemini": "gemini-2.0-flash",
    "anthropic": "claude-haiku-4-5",
}

LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai").strip().lower()
# The provider's own key wins; any other key is only a fallback
_own_key_var = _PROVIDER_KEY_VARS.get(LLM_PROVIDER)
LLM_API_KEY: str = _first_env(
    *([_own_key_var] if _own_key_var else []), *_PROVIDER_KEY_VARS.values(),
)
LLM_ENDPOINT: str = _first_env(
    "LLM_ENDPOINT", "GPT_ENDPOINT",
    default="https://api.openai.com/v1/chat/completions",
)
LLM_MODEL: str = os.getenv(
    "LLM_MODEL", _PROVIDER_DEFAULT_MODELS.get(LLM_PROVIDER, "gpt-3.5-turbo"),
)

# Fixed call parameters for every chat completion
LLM_MAX_TOKENS = 150
LLM_TEMPERATURE = 0.7
LLM_TIMEOUT_SECONDS = 15.0

# ── Booking ─────────────────────────────────────────────────────────
CALENDLY_URL: str = os.getenv("CALENDLY_URL", "")

# ── Reply pipeline ──────────────────────────────────────────────────
REPLY_DELAY_MIN_SECONDS: float = float(os.getenv("REPLY_DELAY_MIN_SECONDS", "2.0"))
REPLY_DELAY_MAX_SECONDS: float = float(os.getenv("REPLY_DELAY_MAX_SECONDS", "5.0"))
RECORD_FAILED_DELIVERIES: bool = _env_flag("RECORD_FAILED_DELIVERIES", True)

# ── Connectivity probes ─────────────────────────────────────────────
CONNECTIVITY_TIMEOUT_SECONDS = 10.0

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "3000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
