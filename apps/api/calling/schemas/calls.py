"""Schemas for call history and outbound calls."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ..models.association import InterestLevel
from ..models.note import NoteKind, OwnerType


class CallSummary(BaseModel):
    conversation_id: str
    created_at: datetime
    owner_type: OwnerType | None = None
    owner_id: int | None = None
    summary: str = ""
    has_transcript: bool = False
    has_recording: bool = False


class CallListResponse(BaseModel):
    items: list[CallSummary]


class InterestSnapshot(BaseModel):
    lead_id: int
    listing_id: int
    interest_level: InterestLevel
    interest_score: int
    last_contacted_at: datetime | None = None
    last_conversation_id: str | None = None


class CallDetail(BaseModel):
    conversation_id: str
    kind: NoteKind
    created_at: datetime
    owner_type: OwnerType | None = None
    owner_id: int | None = None
    summary: str
    transcript: str | None = None
    recording_url: str | None = Field(default=None, description="Time-limited link to the stored recording")
    interest: InterestSnapshot | None = None


class CallDetailResponse(BaseModel):
    call: CallDetail


class OutboundCallRequest(BaseModel):
    contact_id: int
    property_id: int


class OutboundCallResponse(BaseModel):
    conversation_id: str
    to_number: str
    status: str = "initiated"


class StatsResponse(BaseModel):
    calls_today: int
    queue_pending: int | None = None
