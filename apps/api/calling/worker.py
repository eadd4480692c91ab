"""Queue consumer that runs the call event pipeline.

Run with ``python -m calling.worker``. Each process starts
``settings.worker_concurrency`` consumer loops; any number of processes may share
the same consumer group.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import socket

import httpx

from .core.config import settings
from .core.errors import TransientStorageFailure, ValidationFailure
from .core.logging import configure_logging
from .db.session import SessionLocal
from .services.classifier import ClassificationClient
from .services.event_queue import EventQueue, QueueMessage, create_redis
from .services.object_store import LocalObjectStore
from .services.processor import CallEventProcessor, CallEventState

logger = logging.getLogger(__name__)

IDLE_BACKOFF_SECONDS = 1.0


def _lease_name(message: QueueMessage) -> str:
    """Serialise on conversation id; fall back to the entry id for unparseable payloads."""

    try:
        document = json.loads(message.payload)
    except ValueError:
        return f"entry:{message.message_id}"
    conversation_id = document.get("conversation_id") if isinstance(document, dict) else None
    if conversation_id is None or not str(conversation_id).strip():
        return f"entry:{message.message_id}"
    return f"conversation:{str(conversation_id).strip()}"


async def handle_message(
    queue: EventQueue,
    processor: CallEventProcessor,
    message: QueueMessage,
    *,
    lease_ms: int,
) -> bool:
    """Process one entry; return True when it was acknowledged."""

    async with queue.lease(_lease_name(message), lease_ms) as acquired:
        if not acquired:
            logger.info("Entry %s is being processed elsewhere; leaving it pending", message.message_id)
            return False
        try:
            result = await processor.process(message.payload, received_at=message.received_at)
        except ValidationFailure as exc:
            logger.error("Dropping entry %s: %s", message.message_id, exc)
            await queue.ack(message.message_id)
            return True
        except TransientStorageFailure as exc:
            logger.warning("Entry %s will be redelivered: %s", message.message_id, exc)
            return False
        except Exception:  # noqa: BLE001 - unknown failures are retried via redelivery
            logger.exception("Unexpected failure processing entry %s; leaving it pending", message.message_id)
            return False

        await queue.ack(message.message_id)
        logger.info("Conversation %s -> %s", result.conversation_id, CallEventState.ACKNOWLEDGED.value)
        return True


async def consume(
    queue: EventQueue,
    processor: CallEventProcessor,
    *,
    consumer: str,
    stop: asyncio.Event,
    lease_ms: int,
) -> None:
    """Pull and process entries until ``stop`` is set."""

    logger.info("Consumer %s started", consumer)
    while not stop.is_set():
        try:
            message = await queue.next_message(consumer)
        except Exception:  # noqa: BLE001 - keep the loop alive across Redis outages
            logger.exception("Consumer %s could not read from the queue", consumer)
            await asyncio.sleep(IDLE_BACKOFF_SECONDS)
            continue
        if message is None:
            continue
        await handle_message(queue, processor, message, lease_ms=lease_ms)
    logger.info("Consumer %s stopped", consumer)


async def run() -> None:
    configure_logging()
    # XREADGROUP blocks server-side, so the socket timeout must outlast the block window.
    redis_client = create_redis(
        settings.redis_url,
        socket_timeout=settings.queue_block_ms / 1000 + 5,
    )
    queue = EventQueue(
        redis_client,
        stream=settings.queue_stream,
        group=settings.queue_group,
        reclaim_idle_ms=settings.queue_reclaim_idle_ms,
        block_ms=settings.queue_block_ms,
    )
    await queue.ensure_group()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    base_name = f"{socket.gethostname()}-{os.getpid()}"
    async with httpx.AsyncClient() as http_client:
        processor = CallEventProcessor(
            session_factory=SessionLocal,
            object_store=LocalObjectStore(settings.storage_root),
            classifier=ClassificationClient.from_settings(),
            http_client=http_client,
            recording_timeout=settings.recording_fetch_timeout,
        )
        consumers = [
            consume(queue, processor, consumer=f"{base_name}-{index}", stop=stop, lease_ms=settings.conversation_lease_ms)
            for index in range(settings.worker_concurrency)
        ]
        try:
            await asyncio.gather(*consumers)
        finally:
            await redis_client.aclose()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
