"""FastAPI application for call event intake, variables and call history."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, time, timezone
from typing import AsyncIterator

import httpx
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import settings
from .core.logging import configure_logging
from .db.session import SessionLocal, get_session
from .dependencies import get_event_queue
from .repositories import notes as notes_repo
from .routers import calls, variables, webhooks
from .schemas.calls import StatsResponse
from .services.event_queue import EventQueue, create_redis
from .services.object_store import LocalObjectStore
from .services.outbound_calls import OutboundCallInitiator
from .services.variable_cache import VariableCache
from .services.variables import DynamicVariableProvider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build process-wide collaborators once and share them through ``app.state``."""

    configure_logging()
    redis_client = create_redis(settings.redis_url, socket_timeout=settings.redis_socket_timeout)
    queue = EventQueue(
        redis_client,
        stream=settings.queue_stream,
        group=settings.queue_group,
        reclaim_idle_ms=settings.queue_reclaim_idle_ms,
    )
    try:
        await queue.ensure_group()
    except RedisError:
        logger.exception("Event queue not reachable at startup; webhooks will answer 503 until it is")

    cache = VariableCache(ttl_seconds=settings.variable_cache_ttl_seconds)
    http_client = httpx.AsyncClient()

    app.state.event_queue = queue
    app.state.object_store = LocalObjectStore(settings.storage_root)
    app.state.variable_provider = DynamicVariableProvider(cache, SessionLocal)
    app.state.call_initiator = OutboundCallInitiator(
        http_client=http_client,
        cache=cache,
        session_factory=SessionLocal,
    )
    try:
        yield
    finally:
        await http_client.aclose()
        await redis_client.aclose()


app = FastAPI(title="AI Calling Service", version="0.1.0", lifespan=lifespan)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])
app.include_router(variables.router, prefix="/api/variables", tags=["voice"])
app.include_router(calls.router, prefix="/api/calls", tags=["calls"])


@app.get("/api/health", tags=["meta"])
async def health() -> dict[str, str]:
    """Simple liveness probe."""

    return {"status": "ok"}


@app.head("/api/health", tags=["meta"])
async def health_head() -> Response:
    """Allow HEAD for uptime monitors that only need the status code."""

    return Response(status_code=200)


@app.get("/api/stats", response_model=StatsResponse, tags=["meta"])
async def stats(
    session: AsyncSession = Depends(get_session),
    queue: EventQueue = Depends(get_event_queue),
) -> StatsResponse:
    """Calls processed since midnight UTC and the queue backlog."""

    midnight = datetime.combine(datetime.now(timezone.utc).date(), time.min, tzinfo=timezone.utc)
    calls_today = await notes_repo.count_since(session, midnight)

    queue_pending: int | None = None
    try:
        queue_pending = await queue.pending_count()
    except RedisError:
        logger.warning("Queue depth unavailable for stats")
    return StatsResponse(calls_today=calls_today, queue_pending=queue_pending)

