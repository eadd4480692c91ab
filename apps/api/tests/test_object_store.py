"""Tests for object keys and the filesystem object store."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from calling.services.object_store import RECORDING_SUFFIX, TRANSCRIPT_SUFFIX, LocalObjectStore, call_object_key


def test_call_object_key_is_dated_by_receipt():
    received_at = datetime(2026, 1, 5, 23, 59, tzinfo=timezone.utc)

    assert call_object_key("c1", received_at, TRANSCRIPT_SUFFIX) == "calls/2026/01/05/c1-transcript.txt"
    assert call_object_key("a/b", received_at, RECORDING_SUFFIX) == "calls/2026/01/05/a_b-recording.mp3"


@pytest.mark.asyncio
async def test_put_get_exists(tmp_path):
    store = LocalObjectStore(tmp_path)
    key = "calls/2026/10/19/c1-transcript.txt"

    assert await store.exists(key) is False
    assert await store.get(key) is None

    await store.put(key, b"agent: hello", content_type="text/plain")
    await store.put(key, b"agent: hello again", content_type="text/plain")

    assert await store.exists(key) is True
    assert await store.get(key) == b"agent: hello again"
    assert not list(tmp_path.rglob("*.part"))


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["../escape.txt", "/etc/passwd", "calls/../../x"])
async def test_keys_cannot_escape_root(tmp_path, key):
    store = LocalObjectStore(tmp_path)

    with pytest.raises(ValueError):
        await store.put(key, b"x", content_type="text/plain")
