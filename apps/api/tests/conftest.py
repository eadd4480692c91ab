"""Shared fakes for pipeline, queue and API tests."""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from calling.core.errors import TransientStorageFailure
from calling.models.note import NoteKind
from calling.repositories import associations as associations_repo
from calling.repositories import leads as leads_repo
from calling.repositories import listings as listings_repo
from calling.repositories import notes as notes_repo
from calling.services.classifier import Classification
from calling.services.object_store import ObjectStore

RECEIVED_AT = datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)


class DummySession:
    """Minimal session stub supporting async context and transaction blocks."""

    def __init__(self) -> None:
        self.added: list[object] = []

    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def begin(self):  # noqa: D401 - mimic SQLAlchemy's async begin
        session = self

        class _Tx:
            async def __aenter__(self_inner):
                return session

            async def __aexit__(self_inner, exc_type, exc, tb):
                return False

        return _Tx()


class DummySessionFactory:
    def __init__(self) -> None:
        self.opened = 0

    def __call__(self) -> DummySession:
        self.opened += 1
        return DummySession()


class MemoryObjectStore(ObjectStore):
    def __init__(self, *, fail_puts: bool = False) -> None:
        self.objects: dict[str, bytes] = {}
        self.fail_puts = fail_puts
        self.puts: list[str] = []

    async def put(self, key: str, data: bytes, *, content_type: str) -> None:
        if self.fail_puts:
            raise TransientStorageFailure(f"Failed writing object {key}")
        self.puts.append(key)
        self.objects[key] = data

    async def get(self, key: str) -> bytes | None:
        return self.objects.get(key)

    async def exists(self, key: str) -> bool:
        return key in self.objects


class StubClassifier:
    """Returns queued results in order, repeating the last one."""

    def __init__(self, *results: Classification) -> None:
        self.results = list(results)
        self.calls: list[str] = []

    async def classify(self, text: str) -> Classification:
        self.calls.append(text)
        index = min(len(self.calls), len(self.results)) - 1
        return self.results[index]


class FakeQueue:
    def __init__(self, *, fail_enqueue: bool = False, busy: set[str] | None = None) -> None:
        self.enqueued: list[bytes] = []
        self.acked: list[str] = []
        self.fail_enqueue = fail_enqueue
        self.busy = busy or set()
        self.leases: list[str] = []
        self.pending = 0

    async def enqueue(self, payload: bytes, *, received_at: datetime | None = None) -> str:
        if self.fail_enqueue:
            raise TransientStorageFailure("Event queue unavailable")
        self.enqueued.append(payload)
        return f"{len(self.enqueued)}-0"

    async def ack(self, message_id: str) -> None:
        self.acked.append(message_id)

    async def pending_count(self) -> int:
        return self.pending

    @asynccontextmanager
    async def lease(self, name: str, ttl_ms: int):
        self.leases.append(name)
        yield name not in self.busy


class MemoryDB:
    """In-memory stand-in for the lead, listing, note and association repositories."""

    def __init__(self) -> None:
        self.leads: dict[int, SimpleNamespace] = {}
        self.listings: dict[int, SimpleNamespace] = {}
        self.notes: dict[str, SimpleNamespace] = {}
        self.associations: dict[tuple[int, int], dict] = {}
        self.note_creations = 0
        self.association_writes = 0
        self.fail_notes = False

    def add_lead(self, lead_id: int, **fields) -> SimpleNamespace:
        lead = SimpleNamespace(id=lead_id, **fields)
        self.leads[lead_id] = lead
        return lead

    def add_listing(self, listing_id: int, **fields) -> SimpleNamespace:
        listing = SimpleNamespace(id=listing_id, **fields)
        self.listings[listing_id] = listing
        return listing

    async def get_lead(self, session, lead_id):
        return self.leads.get(lead_id)

    async def get_listing(self, session, listing_id):
        return self.listings.get(listing_id)

    async def get_note(self, session, conversation_id):
        return self.notes.get(conversation_id)

    async def create_note(self, session, *, conversation_id, owner, body, transcript_path, recording_path, metadata):
        from sqlalchemy.exc import OperationalError

        if self.fail_notes:
            raise OperationalError("INSERT INTO notes", {}, Exception("connection reset"))
        if conversation_id not in self.notes:
            self.note_creations += 1
            self.notes[conversation_id] = SimpleNamespace(
                id=self.note_creations,
                conversation_id=conversation_id,
                owner=owner,
                owner_type=owner.type if owner else None,
                owner_id=owner.id if owner else None,
                kind=NoteKind.CALL_SUMMARY,
                body=body,
                transcript_path=transcript_path,
                recording_path=recording_path,
                metadata_json=metadata,
                created_at=RECEIVED_AT,
            )
        return self.notes[conversation_id]

    async def upsert_interest(
        self, session, *, lead_id, listing_id, interest_level, interest_score, contacted_at, conversation_id
    ):
        self.association_writes += 1
        self.associations[(lead_id, listing_id)] = {
            "interest_level": interest_level,
            "interest_score": interest_score,
            "last_contacted_at": contacted_at,
            "last_conversation_id": conversation_id,
        }

    async def association_by_conversation(self, session, conversation_id):
        for (lead_id, listing_id), row in self.associations.items():
            if row["last_conversation_id"] == conversation_id:
                return SimpleNamespace(lead_id=lead_id, listing_id=listing_id, **row)
        return None

    async def record_contact_attempt(self, session, *, lead_id, listing_id, contacted_at):
        row = self.associations.setdefault(
            (lead_id, listing_id),
            {
                "interest_level": None,
                "interest_score": 0,
                "last_contacted_at": None,
                "last_conversation_id": None,
            },
        )
        row["last_contacted_at"] = contacted_at


@pytest.fixture
def memory_db(monkeypatch) -> MemoryDB:
    db = MemoryDB()
    monkeypatch.setattr(leads_repo, "get_by_id", db.get_lead)
    monkeypatch.setattr(listings_repo, "get_by_id", db.get_listing)
    monkeypatch.setattr(notes_repo, "get_by_conversation_id", db.get_note)
    monkeypatch.setattr(notes_repo, "create_call_note", db.create_note)
    monkeypatch.setattr(associations_repo, "upsert_interest", db.upsert_interest)
    monkeypatch.setattr(associations_repo, "get_by_conversation_id", db.association_by_conversation)
    monkeypatch.setattr(associations_repo, "record_contact_attempt", db.record_contact_attempt)
    return db
