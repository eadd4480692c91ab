"""Expose ORM models."""
from .association import InterestLevel, LeadListing
from .lead import Lead
from .listing import Listing, ListingStatus
from .note import LeadOwner, ListingOwner, Note, NoteKind, OwnerRef, OwnerType

__all__ = [
    "InterestLevel",
    "Lead",
    "LeadListing",
    "LeadOwner",
    "Listing",
    "ListingOwner",
    "ListingStatus",
    "Note",
    "NoteKind",
    "OwnerRef",
    "OwnerType",
]
