"""Listing repository helpers."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.listing import Listing


async def get_by_id(session: AsyncSession, listing_id: int) -> Listing | None:
    """Return a listing by identifier."""

    return await session.get(Listing, listing_id)
