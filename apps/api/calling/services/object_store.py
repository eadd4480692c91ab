"""Object store client for call transcripts and recordings."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path, PurePosixPath

from ..core.errors import TransientStorageFailure

logger = logging.getLogger(__name__)

TRANSCRIPT_SUFFIX = "transcript.txt"
RECORDING_SUFFIX = "recording.mp3"


def call_object_key(conversation_id: str, received_at: datetime, suffix: str) -> str:
    """Build ``calls/<yyyy>/<mm>/<dd>/<conversation_id>-<suffix>``."""

    safe_id = conversation_id.replace("/", "_").strip()
    return f"calls/{received_at:%Y}/{received_at:%m}/{received_at:%d}/{safe_id}-{suffix}"


class ObjectStore:
    """Narrow put/get/exists interface over an object store."""

    async def put(self, key: str, data: bytes, *, content_type: str) -> None:
        raise NotImplementedError

    async def get(self, key: str) -> bytes | None:
        raise NotImplementedError

    async def exists(self, key: str) -> bool:
        raise NotImplementedError


class LocalObjectStore(ObjectStore):
    """Filesystem-backed object store rooted at a directory.

    Writes go to a temporary sibling first and are renamed into place so a
    crashed writer never leaves a truncated object under the final key.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def _path(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid object key: {key!r}")
        return self._root.joinpath(*relative.parts)

    async def put(self, key: str, data: bytes, *, content_type: str) -> None:
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + ".part")
            tmp_path.write_bytes(data)
            tmp_path.replace(path)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise TransientStorageFailure(f"Failed writing object {key}") from exc
        logger.debug("Stored %s (%s, %d bytes)", key, content_type, len(data))

    async def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise TransientStorageFailure(f"Failed reading object {key}") from exc

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).is_file)
