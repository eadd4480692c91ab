"""Lead to listing association carrying interest scoring."""
from __future__ import annotations

from datetime import datetime
import enum
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

if TYPE_CHECKING:
    from .lead import Lead
    from .listing import Listing


class InterestLevel(str, enum.Enum):
    UNKNOWN = "unknown"
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"


class LeadListing(Base):
    """One row per (lead, listing) pair."""

    __tablename__ = "lead_listing"
    __table_args__ = (
        UniqueConstraint("lead_id", "listing_id"),
        CheckConstraint("interest_score BETWEEN 0 AND 100", name="interest_score_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    interest_level: Mapped[InterestLevel] = mapped_column(
        Enum(InterestLevel, name="interest_level"), default=InterestLevel.UNKNOWN, nullable=False
    )
    interest_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_contacted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_conversation_id: Mapped[str | None] = mapped_column(String, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    lead: Mapped["Lead"] = relationship("Lead", back_populates="listings")
    listing: Mapped["Listing"] = relationship("Listing", back_populates="leads")
