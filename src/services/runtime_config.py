"""Process-wide holder for the dashboard-editable :class:`RuntimeConfig`.

Readers take a whole-object snapshot; writers build a new object and swap it
in under a lock.  Because ``RuntimeConfig`` is frozen, a snapshot taken at the
start of a pipeline run stays consistent even if the dashboard saves a new
configuration halfway through the run.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from src.models import RuntimeConfig

logger = logging.getLogger(__name__)


class ConfigStore:
    """Thread-safe, replace-whole-object configuration holder."""

    def __init__(self, initial: RuntimeConfig | None = None) -> None:
        self._config = initial or RuntimeConfig()
        self._lock = threading.Lock()

    def snapshot(self) -> RuntimeConfig:
        """Return the current configuration (immutable)."""
        with self._lock:
            return self._config

    def replace(self, new_config: RuntimeConfig) -> None:
        with self._lock:
            self._config = new_config

    def merge(self, patch: dict[str, Any]) -> RuntimeConfig:
        """Shallow-merge *patch* into the live configuration.

        Each top-level key replaces the whole section of the same name, the
        same way a ``{...current, ...patch}`` spread would.  Fields missing
        from a submitted section fall back to the model defaults in
        :mod:`src.models`, not to the environment-derived start-up values:
        ``{"gpt": {"apiKey": "x"}}`` also resets ``provider`` and ``model``.
        Unknown keys are dropped.  Raises ``pydantic.ValidationError`` (leaving the live
        configuration untouched) when a section does not validate.
        """
        with self._lock:
            merged = self._config.model_dump(by_alias=True)
            merged.update(patch)
            new_config = RuntimeConfig.model_validate(merged)
            self._config = new_config

        known = sorted(k for k in patch if k in RuntimeConfig.model_fields)
        logger.info("Configuration updated (sections: %s)", ", ".join(known) or "none")
        return new_config
