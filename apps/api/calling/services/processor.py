"""Call event processing pipeline.

One queued call-completed event moves through::

    received -> transcript_persisted -> recording_persisted -> artifact_recorded
             -> classified -> association_updated -> acknowledged

Nothing about progress is kept in memory. Each run re-derives its position from
durable side effects keyed by the conversation id (stored objects, the call note),
so a redelivery after a crash simply picks up where the previous run stopped.
"""
from __future__ import annotations

import enum
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Callable

import httpx
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import TransientStorageFailure, ValidationFailure
from ..db.session import SessionFactory
from ..models.base import utcnow
from ..models.note import LeadOwner, ListingOwner, OwnerRef
from ..repositories import associations as associations_repo
from ..repositories import leads as leads_repo
from ..repositories import listings as listings_repo
from ..repositories import notes as notes_repo
from ..schemas.webhooks import CallCompletedEvent
from .classifier import Classification, ClassificationClient
from .object_store import RECORDING_SUFFIX, TRANSCRIPT_SUFFIX, ObjectStore, call_object_key

logger = logging.getLogger(__name__)


class CallEventState(str, enum.Enum):
    RECEIVED = "received"
    TRANSCRIPT_PERSISTED = "transcript_persisted"
    RECORDING_PERSISTED = "recording_persisted"
    ARTIFACT_RECORDED = "artifact_recorded"
    CLASSIFIED = "classified"
    ASSOCIATION_UPDATED = "association_updated"
    ACKNOWLEDGED = "acknowledged"


@dataclass(slots=True)
class ProcessResult:
    conversation_id: str
    state: CallEventState
    note_id: int | None = None
    transcript_path: str | None = None
    recording_path: str | None = None
    classification: Classification | None = None
    association_updated: bool = False
    artifact_created: bool = False


@dataclass(slots=True)
class _Resolved:
    lead_id: int | None
    listing_id: int | None

    @property
    def owner(self) -> OwnerRef | None:
        if self.lead_id is not None:
            return LeadOwner(self.lead_id)
        if self.listing_id is not None:
            return ListingOwner(self.listing_id)
        return None


def parse_event(payload: bytes) -> tuple[CallCompletedEvent, str, dict]:
    """Decode a raw webhook body; anything unusable is a ``ValidationFailure``."""

    try:
        document = json.loads(payload)
    except ValueError as exc:
        raise ValidationFailure("Event body is not valid JSON") from exc
    if not isinstance(document, dict):
        raise ValidationFailure("Event body is not a JSON object")
    try:
        event = CallCompletedEvent.model_validate(document)
    except ValidationError as exc:
        raise ValidationFailure(f"Event failed validation: {exc.error_count()} error(s)") from exc
    conversation_id = event.conversation_id
    if not conversation_id:
        raise ValidationFailure("Event has no conversation_id")
    return event, conversation_id, document


class CallEventProcessor:
    """Run the persistence, classification and scoring steps for one event."""

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        object_store: ObjectStore,
        classifier: ClassificationClient,
        http_client: httpx.AsyncClient,
        recording_timeout: float = 15.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._store = object_store
        self._classifier = classifier
        self._http = http_client
        self._recording_timeout = recording_timeout
        self._clock = clock

    async def process(self, payload: bytes, *, received_at: datetime) -> ProcessResult:
        """Process one event.

        Raises ``ValidationFailure`` for events that must be dropped and
        ``TransientStorageFailure`` for events that must be redelivered.
        """

        event, conversation_id, document = parse_event(payload)
        result = ProcessResult(conversation_id=conversation_id, state=CallEventState.RECEIVED)
        self._advance(result, CallEventState.RECEIVED)

        async with self._transaction("lookup") as session:
            resolved = await self._resolve(session, event)
            existing = await notes_repo.get_by_conversation_id(session, conversation_id)

        if existing is not None:
            logger.info(
                "Conversation %s already has note %s; skipping artifact persistence",
                conversation_id,
                existing.id,
            )
            result.note_id = existing.id
            result.transcript_path = existing.transcript_path
            result.recording_path = existing.recording_path
            result.state = CallEventState.ARTIFACT_RECORDED
        else:
            result.transcript_path = await self._persist_transcript(event, received_at)
            self._advance(result, CallEventState.TRANSCRIPT_PERSISTED)
            result.recording_path = await self._persist_recording(event, received_at)
            self._advance(result, CallEventState.RECORDING_PERSISTED)

            async with self._transaction("artifact") as session:
                note = await notes_repo.create_call_note(
                    session,
                    conversation_id=conversation_id,
                    owner=resolved.owner,
                    body=event.summary,
                    transcript_path=result.transcript_path,
                    recording_path=result.recording_path,
                    metadata={"event": document, "received_at": received_at.isoformat()},
                )
            result.note_id = note.id
            result.artifact_created = True
            self._advance(result, CallEventState.ARTIFACT_RECORDED)

        classification = await self._classifier.classify(event.summary)
        result.classification = classification
        self._advance(result, CallEventState.CLASSIFIED)

        if resolved.lead_id is not None and resolved.listing_id is not None:
            async with self._transaction("association") as session:
                await associations_repo.upsert_interest(
                    session,
                    lead_id=resolved.lead_id,
                    listing_id=resolved.listing_id,
                    interest_level=classification.interest_level,
                    interest_score=classification.interest_score,
                    contacted_at=self._clock(),
                    conversation_id=conversation_id,
                )
            result.association_updated = True
            self._advance(result, CallEventState.ASSOCIATION_UPDATED)
        else:
            logger.info(
                "Conversation %s: lead=%s listing=%s not both resolvable; association skipped",
                conversation_id,
                resolved.lead_id,
                resolved.listing_id,
            )

        return result

    @asynccontextmanager
    async def _transaction(self, step: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except (SQLAlchemyError, OSError) as exc:
            raise TransientStorageFailure(f"Relational store failed during {step}") from exc

    @staticmethod
    def _advance(result: ProcessResult, state: CallEventState) -> None:
        result.state = state
        logger.info("Conversation %s -> %s", result.conversation_id, state.value)

    async def _resolve(self, session: AsyncSession, event: CallCompletedEvent) -> _Resolved:
        lead_id = None
        listing_id = None
        if event.contact_id is not None:
            if await leads_repo.get_by_id(session, event.contact_id) is not None:
                lead_id = event.contact_id
            else:
                logger.warning("Conversation %s references unknown lead %s", event.conversation_id, event.contact_id)
        if event.property_id is not None:
            if await listings_repo.get_by_id(session, event.property_id) is not None:
                listing_id = event.property_id
            else:
                logger.warning(
                    "Conversation %s references unknown listing %s", event.conversation_id, event.property_id
                )
        return _Resolved(lead_id=lead_id, listing_id=listing_id)

    async def _persist_transcript(self, event: CallCompletedEvent, received_at: datetime) -> str | None:
        text = event.transcript_text()
        if not text:
            return None
        key = call_object_key(event.conversation_id or "", received_at, TRANSCRIPT_SUFFIX)
        if await self._store.exists(key):
            return key
        await self._store.put(key, text.encode("utf-8"), content_type="text/plain; charset=utf-8")
        return key

    async def _persist_recording(self, event: CallCompletedEvent, received_at: datetime) -> str | None:
        if not event.recording_url:
            return None
        key = call_object_key(event.conversation_id or "", received_at, RECORDING_SUFFIX)
        if await self._store.exists(key):
            return key
        audio = await self._fetch_recording(event)
        if audio is None:
            return None
        await self._store.put(key, audio, content_type="audio/mpeg")
        return key

    async def _fetch_recording(self, event: CallCompletedEvent) -> bytes | None:
        """Download the recording; failures are logged and yield ``None``."""

        url = event.recording_url or ""
        try:
            response = await self._http.get(url, timeout=self._recording_timeout, follow_redirects=True)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Recording fetch failed for %s from %s: %s", event.conversation_id, url, exc)
            return None
        if not response.content:
            logger.warning("Recording for %s was empty", event.conversation_id)
            return None
        return response.content
