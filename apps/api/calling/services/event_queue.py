"""Durable at-least-once event queue on Redis Streams.

The webhook receiver appends raw payloads with ``XADD``; workers read through a
consumer group and ``XACK`` only after the pipeline has finished. Entries left
pending by a crashed or failing worker are reclaimed with ``XAUTOCLAIM`` once
they have been idle for ``reclaim_idle_ms``.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator

from redis import asyncio as redis_async
from redis.exceptions import RedisError, ResponseError

from ..core.errors import TransientStorageFailure

logger = logging.getLogger(__name__)

PAYLOAD_FIELD = b"payload"
RECEIVED_AT_FIELD = b"received_at"

_RELEASE_LEASE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


@dataclass(slots=True)
class QueueMessage:
    message_id: str
    payload: bytes
    received_at: datetime


def _decode(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def _to_message(message_id: bytes | str, fields: dict) -> QueueMessage:
    raw_received = fields.get(RECEIVED_AT_FIELD)
    received_at = datetime.now(timezone.utc)
    if raw_received:
        try:
            received_at = datetime.fromisoformat(_decode(raw_received))
        except ValueError:
            logger.warning("Entry %s has malformed received_at %r", _decode(message_id), raw_received)
    return QueueMessage(
        message_id=_decode(message_id),
        payload=fields.get(PAYLOAD_FIELD, b""),
        received_at=received_at,
    )


class EventQueue:
    """Consumer-group backed queue of call-completed events."""

    def __init__(
        self,
        client: redis_async.Redis,
        *,
        stream: str,
        group: str,
        reclaim_idle_ms: int = 60_000,
        block_ms: int = 5_000,
    ) -> None:
        self._redis = client
        self.stream = stream
        self.group = group
        self._reclaim_idle_ms = reclaim_idle_ms
        self._block_ms = block_ms

    async def ensure_group(self) -> None:
        """Create the consumer group (and stream) if it does not exist yet."""

        try:
            await self._redis.xgroup_create(self.stream, self.group, id="0", mkstream=True)
        except ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise

    async def enqueue(self, payload: bytes, *, received_at: datetime | None = None) -> str:
        """Append a raw event; raises ``TransientStorageFailure`` if Redis is down."""

        stamp = (received_at or datetime.now(timezone.utc)).isoformat()
        try:
            message_id = await self._redis.xadd(
                self.stream,
                {PAYLOAD_FIELD: payload, RECEIVED_AT_FIELD: stamp.encode("utf-8")},
            )
        except RedisError as exc:
            raise TransientStorageFailure("Event queue unavailable") from exc
        return _decode(message_id)

    async def next_message(self, consumer: str) -> QueueMessage | None:
        """Return one stale pending entry if any, else block for a new one."""

        claimed = await self._redis.xautoclaim(
            self.stream,
            self.group,
            consumer,
            min_idle_time=self._reclaim_idle_ms,
            start_id="0-0",
            count=1,
        )
        entries = claimed[1] if claimed else []
        for message_id, fields in entries:
            if fields:
                logger.info("Reclaimed stale entry %s for %s", _decode(message_id), consumer)
                return _to_message(message_id, fields)
            # Trimmed from the stream while pending; nothing left to process.
            await self.ack(_decode(message_id))

        response = await self._redis.xreadgroup(
            self.group,
            consumer,
            streams={self.stream: ">"},
            count=1,
            block=self._block_ms,
        )
        for _stream, stream_entries in response or []:
            for message_id, fields in stream_entries:
                return _to_message(message_id, fields)
        return None

    async def ack(self, message_id: str) -> None:
        await self._redis.xack(self.stream, self.group, message_id)

    async def pending_count(self) -> int:
        summary = await self._redis.xpending(self.stream, self.group)
        return int(summary.get("pending", 0)) if summary else 0

    @asynccontextmanager
    async def lease(self, name: str, ttl_ms: int) -> AsyncIterator[bool]:
        """Short-lived exclusive lease; yields whether it was acquired.

        The lease expires on its own if the holder dies, and release only deletes
        the key while it still carries this holder's token.
        """

        key = f"{self.stream}:lease:{name}"
        token = uuid.uuid4().hex
        acquired = bool(await self._redis.set(key, token, nx=True, px=ttl_ms))
        try:
            yield acquired
        finally:
            if acquired:
                try:
                    await self._redis.eval(_RELEASE_LEASE, 1, key, token)
                except RedisError:
                    logger.warning("Could not release lease %s; it will expire in %d ms", key, ttl_ms)


def create_redis(url: str, *, socket_timeout: float) -> redis_async.Redis:
    return redis_async.from_url(url, socket_timeout=socket_timeout, socket_connect_timeout=socket_timeout)
