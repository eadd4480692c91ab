"""Lead/listing association persistence.

Writes go through ``INSERT .. ON CONFLICT`` on the (lead_id, listing_id) unique
constraint so concurrent first contacts never produce duplicate rows.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.association import InterestLevel, LeadListing


async def get_pair(session: AsyncSession, lead_id: int, listing_id: int) -> LeadListing | None:
    stmt = select(LeadListing).where(LeadListing.lead_id == lead_id, LeadListing.listing_id == listing_id)
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_by_conversation_id(session: AsyncSession, conversation_id: str) -> LeadListing | None:
    """Return the association last touched by the given conversation."""

    stmt = (
        select(LeadListing)
        .where(LeadListing.last_conversation_id == conversation_id)
        .order_by(LeadListing.updated_at.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def upsert_interest(
    session: AsyncSession,
    *,
    lead_id: int,
    listing_id: int,
    interest_level: InterestLevel,
    interest_score: int,
    contacted_at: datetime,
    conversation_id: str,
) -> None:
    """Create or overwrite the scoring fields for a pair."""

    values = {
        "interest_level": interest_level,
        "interest_score": interest_score,
        "last_contacted_at": contacted_at,
        "last_conversation_id": conversation_id,
        "updated_at": contacted_at,
    }
    stmt = insert(LeadListing).values(lead_id=lead_id, listing_id=listing_id, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[LeadListing.lead_id, LeadListing.listing_id],
        set_=values,
    )
    await session.execute(stmt)


async def record_contact_attempt(
    session: AsyncSession,
    *,
    lead_id: int,
    listing_id: int,
    contacted_at: datetime,
) -> None:
    """Ensure the pair exists and stamp the contact time without touching scores."""

    stmt = insert(LeadListing).values(
        lead_id=lead_id,
        listing_id=listing_id,
        last_contacted_at=contacted_at,
        updated_at=contacted_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[LeadListing.lead_id, LeadListing.listing_id],
        set_={"last_contacted_at": contacted_at, "updated_at": contacted_at},
    )
    await session.execute(stmt)
