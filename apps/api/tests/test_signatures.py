"""Tests for webhook and recording-link signatures."""
from __future__ import annotations

import json

from calling.services.signatures import (
    compute_signature,
    sign_recording_link,
    verify_recording_link,
    verify_signature,
)

SECRET = "whsec-test"
BODY = b'{"conversation_id": "c1",   "summary": "hi"}'


def test_valid_signature_is_accepted():
    assert verify_signature(BODY, compute_signature(BODY, SECRET), SECRET)


def test_prefixed_and_uppercase_signatures_are_accepted():
    signature = compute_signature(BODY, SECRET)

    assert verify_signature(BODY, f"sha256={signature}", SECRET)
    assert verify_signature(BODY, signature.upper(), SECRET)


def test_wrong_secret_is_rejected():
    assert not verify_signature(BODY, compute_signature(BODY, "other-secret"), SECRET)


def test_reserialised_body_does_not_verify():
    signature = compute_signature(BODY, SECRET)
    reserialised = json.dumps(json.loads(BODY)).encode("utf-8")

    assert reserialised != BODY
    assert not verify_signature(reserialised, signature, SECRET)


def test_missing_or_malformed_header_is_rejected():
    assert not verify_signature(BODY, None, SECRET)
    assert not verify_signature(BODY, "", SECRET)
    assert not verify_signature(BODY, "not-hex", SECRET)
    assert not verify_signature(BODY, compute_signature(BODY, SECRET), "")


def test_recording_link_expires():
    signature = sign_recording_link("c1", 1_000, SECRET)

    assert verify_recording_link("c1", 1_000, signature, SECRET, now=999)
    assert not verify_recording_link("c1", 1_000, signature, SECRET, now=1_001)
    assert not verify_recording_link("c2", 1_000, signature, SECRET, now=999)
    assert not verify_recording_link("c1", 2_000, signature, SECRET, now=999)
