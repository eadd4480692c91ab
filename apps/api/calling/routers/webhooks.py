"""Inbound webhooks from the voice platform."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..core.config import settings
from ..core.errors import TransientStorageFailure
from ..dependencies import get_event_queue
from ..schemas.webhooks import WebhookAccepted
from ..services.event_queue import EventQueue
from ..services.signatures import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter()


async def read_verified_body(request: Request) -> bytes:
    """Return the raw body after checking its HMAC signature header."""

    body = await request.body()
    header_value = request.headers.get(settings.voice_signature_header)
    if not verify_signature(body, header_value, settings.voice_webhook_secret):
        logger.warning("Rejected %s with missing or invalid signature", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    return body


@router.post(
    "/call-completed",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=WebhookAccepted,
)
async def call_completed(
    body: bytes = Depends(read_verified_body),
    queue: EventQueue = Depends(get_event_queue),
) -> WebhookAccepted:
    """Queue a call-completed event for asynchronous processing."""

    try:
        message_id = await queue.enqueue(body)
    except TransientStorageFailure as exc:
        logger.error("Could not enqueue call-completed event: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Queue unavailable") from exc

    logger.info("Queued call-completed event as %s (%d bytes)", message_id, len(body))
    return WebhookAccepted()
