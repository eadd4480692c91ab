"""Call artifact (note) persistence."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import TransientStorageFailure
from ..models.note import Note, NoteKind, OwnerRef


async def get_by_conversation_id(session: AsyncSession, conversation_id: str) -> Note | None:
    """Return the artifact recorded for a conversation, if any."""

    stmt = select(Note).where(Note.conversation_id == conversation_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_call_note(
    session: AsyncSession,
    *,
    conversation_id: str,
    owner: OwnerRef | None,
    body: str,
    transcript_path: str | None,
    recording_path: str | None,
    metadata: dict[str, Any],
) -> Note:
    """Insert the call summary note once per conversation.

    A concurrent insert for the same conversation loses on the unique index and the
    existing row is returned instead.
    """

    stmt = (
        insert(Note)
        .values(
            conversation_id=conversation_id,
            owner_type=owner.type if owner else None,
            owner_id=owner.id if owner else None,
            kind=NoteKind.CALL_SUMMARY,
            body=body,
            transcript_path=transcript_path,
            recording_path=recording_path,
            metadata_json=metadata,
        )
        .on_conflict_do_nothing(index_elements=[Note.conversation_id])
    )
    await session.execute(stmt)
    note = await get_by_conversation_id(session, conversation_id)
    if note is None:
        raise TransientStorageFailure(f"Note for conversation {conversation_id} vanished after insert")
    return note


async def list_recent(session: AsyncSession, *, limit: int) -> list[Note]:
    """Return the newest call summaries first."""

    stmt = (
        select(Note)
        .where(Note.kind == NoteKind.CALL_SUMMARY)
        .order_by(Note.created_at.desc(), Note.id.desc())
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars())


async def count_since(session: AsyncSession, since: datetime) -> int:
    stmt = select(func.count(Note.id)).where(Note.kind == NoteKind.CALL_SUMMARY, Note.created_at >= since)
    return int((await session.execute(stmt)).scalar_one())
