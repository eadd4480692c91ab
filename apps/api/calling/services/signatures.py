"""HMAC signatures for voice platform webhooks and signed recording links."""
from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(body: bytes, secret: str) -> str:
    """Return the hex HMAC-SHA256 of ``body`` under ``secret``."""

    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _decode_header(header_value: str) -> bytes | None:
    value = header_value.strip()
    if value.lower().startswith(SIGNATURE_PREFIX):
        value = value[len(SIGNATURE_PREFIX):]
    try:
        return bytes.fromhex(value)
    except ValueError:
        return None


def verify_signature(body: bytes, header_value: str | None, secret: str) -> bool:
    """Check a signature header against the exact raw request bytes.

    ``body`` must be the bytes as received; parsing and re-serialising the JSON
    changes whitespace and key order and breaks the comparison.
    """

    if not header_value or not secret:
        return False
    provided = _decode_header(header_value)
    if provided is None:
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return hmac.compare_digest(expected, provided)


def sign_recording_link(conversation_id: str, expires: int, secret: str) -> str:
    message = f"{conversation_id}:{expires}".encode("utf-8")
    return compute_signature(message, secret)


def verify_recording_link(conversation_id: str, expires: int, signature: str, secret: str, *, now: float) -> bool:
    """Validate a time-limited recording link."""

    if not secret or expires < now:
        return False
    expected = sign_recording_link(conversation_id, expires, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
