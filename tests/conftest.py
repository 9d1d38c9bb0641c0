"""Shared test fixtures for the relay test suite."""

from __future__ import annotations

import os

import pytest

TEST_WEBHOOK_SECRET = "test-webhook-secret-789"


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("INSTAGRAM_PAGE_ID", "17841400000000000")
    os.environ.setdefault("INSTAGRAM_ACCESS_TOKEN", "test-instagram-token-123")
    os.environ["WEBHOOK_SECRET"] = TEST_WEBHOOK_SECRET
    os.environ.setdefault("WEBHOOK_VERIFY_TOKEN", "test-verify-token")


@pytest.fixture
def make_payload():
    """Factory fixture: webhook payload with one entry per ``(sender_id, text)``."""

    def _make(*events: tuple[str, str], obj: str = "instagram") -> dict:
        return {
            "object": obj,
            "entry": [
                {
                    "id": "17841400000000000",
                    "time": 1700000000,
                    "messaging": [
                        {
                            "sender": {"id": sender_id},
                            "recipient": {"id": "17841400000000000"},
                            "message": {"mid": f"mid.{i}", "text": text},
                        }
                    ],
                }
                for i, (sender_id, text) in enumerate(events)
            ],
        }

    return _make
