"""Call artifact (note) model and its polymorphic owner reference."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import enum

from sqlalchemy import DateTime, Enum, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class NoteKind(str, enum.Enum):
    CALL_SUMMARY = "call_summary"
    TRANSCRIPT = "transcript"
    GENERAL = "general"


class OwnerType(str, enum.Enum):
    LEAD = "lead"
    LISTING = "listing"


@dataclass(frozen=True, slots=True)
class LeadOwner:
    id: int
    type: OwnerType = OwnerType.LEAD


@dataclass(frozen=True, slots=True)
class ListingOwner:
    id: int
    type: OwnerType = OwnerType.LISTING


OwnerRef = LeadOwner | ListingOwner


class Note(Base):
    """Durable record of a call's summary, transcript and recording pointers."""

    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_type: Mapped[OwnerType | None] = mapped_column(Enum(OwnerType, name="note_owner_type"))
    owner_id: Mapped[int | None] = mapped_column(Integer)
    kind: Mapped[NoteKind] = mapped_column(
        Enum(NoteKind, name="note_kind"), default=NoteKind.GENERAL, nullable=False
    )
    body: Mapped[str] = mapped_column(Text, default="", nullable=False)
    recording_path: Mapped[str | None] = mapped_column(String)
    transcript_path: Mapped[str | None] = mapped_column(String)
    conversation_id: Mapped[str | None] = mapped_column(String, unique=True)
    metadata_json: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def owner(self) -> OwnerRef | None:
        if self.owner_id is None or self.owner_type is None:
            return None
        if self.owner_type is OwnerType.LEAD:
            return LeadOwner(self.owner_id)
        return ListingOwner(self.owner_id)
