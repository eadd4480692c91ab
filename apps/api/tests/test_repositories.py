"""Tests for the conflict handling in note and association writes."""
from __future__ import annotations

from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql

from calling.core.errors import TransientStorageFailure
from calling.models.association import InterestLevel
from calling.models.note import LeadOwner
from calling.repositories import associations as associations_repo
from calling.repositories import notes as notes_repo

from conftest import RECEIVED_AT


class _Result:
    def __init__(self, row) -> None:
        self._row = row

    def scalar_one_or_none(self):
        return self._row


class RecordingSession:
    """Captures executed statements and answers selects with a fixed row."""

    def __init__(self, row=None) -> None:
        self.row = row
        self.statements: list = []

    async def execute(self, stmt):
        self.statements.append(stmt)
        return _Result(self.row)


def _sql(stmt) -> str:
    return " ".join(str(stmt.compile(dialect=postgresql.dialect())).split())


def _set_clause(sql: str) -> str:
    return sql.split("DO UPDATE SET", 1)[1]


@pytest.mark.asyncio
async def test_note_insert_ignores_duplicate_conversation():
    existing = SimpleNamespace(id=5, conversation_id="c1")
    session = RecordingSession(row=existing)

    note = await notes_repo.create_call_note(
        session,
        conversation_id="c1",
        owner=LeadOwner(1),
        body="summary",
        transcript_path=None,
        recording_path=None,
        metadata={},
    )

    assert note is existing
    insert_sql = _sql(session.statements[0])
    assert insert_sql.startswith("INSERT INTO notes")
    assert "ON CONFLICT (conversation_id) DO NOTHING" in insert_sql
    assert "FROM notes" in _sql(session.statements[1])


@pytest.mark.asyncio
async def test_note_missing_after_insert_is_transient():
    session = RecordingSession(row=None)

    with pytest.raises(TransientStorageFailure):
        await notes_repo.create_call_note(
            session,
            conversation_id="c1",
            owner=None,
            body="",
            transcript_path=None,
            recording_path=None,
            metadata={},
        )


@pytest.mark.asyncio
async def test_interest_upsert_targets_pair_and_overwrites_scoring():
    session = RecordingSession()

    await associations_repo.upsert_interest(
        session,
        lead_id=1,
        listing_id=2,
        interest_level=InterestLevel.HOT,
        interest_score=88,
        contacted_at=RECEIVED_AT,
        conversation_id="c1",
    )

    [stmt] = session.statements
    sql = _sql(stmt)
    assert sql.startswith("INSERT INTO lead_listing")
    assert "ON CONFLICT (lead_id, listing_id) DO UPDATE SET" in sql
    updated = _set_clause(sql)
    for column in ("interest_level", "interest_score", "last_contacted_at", "last_conversation_id", "updated_at"):
        assert f"{column} =" in updated
    assert "lead_id =" not in updated


@pytest.mark.asyncio
async def test_contact_attempt_leaves_scoring_untouched():
    session = RecordingSession()

    await associations_repo.record_contact_attempt(session, lead_id=1, listing_id=2, contacted_at=RECEIVED_AT)

    sql = _sql(session.statements[0])
    assert "ON CONFLICT (lead_id, listing_id) DO UPDATE SET" in sql
    updated = _set_clause(sql)
    assert "last_contacted_at =" in updated
    assert "interest_level" not in updated
    assert "interest_score" not in updated
    assert "last_conversation_id" not in updated
