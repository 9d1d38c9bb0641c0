"""Verification of the ``x-hub-signature-256`` header sent with Meta webhooks."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` signature for *raw_body*."""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(raw_body: bytes, signature_header: str | None, secret: str) -> bool:
    """Check *signature_header* against the HMAC of the exact bytes received.

    Never raises: a missing, malformed or wrong-length header is simply a
    failed verification.
    """
    if not signature_header or not secret:
        return False
    if not signature_header.startswith(SIGNATURE_PREFIX):
        return False
    expected = compute_signature(raw_body, secret)
    try:
        return hmac.compare_digest(
            expected.encode("ascii"), signature_header.encode("ascii"),
        )
    except UnicodeEncodeError:
        return False
