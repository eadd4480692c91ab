"""Dynamic variables handed to the voice agent for a call.

The voice platform's template engine substitutes every value as text, so each
field is rendered here as a display string.
"""
from __future__ import annotations

import logging

from ..core.errors import NotFound
from ..db.session import SessionFactory
from ..models.lead import Lead
from ..models.listing import Listing
from ..repositories import associations as associations_repo
from ..repositories import leads as leads_repo
from ..repositories import listings as listings_repo
from .variable_cache import VariableCache

logger = logging.getLogger(__name__)

NO_FEATURES = "No specific features listed"


def _display_count(value: int | None) -> str:
    return str(value) if value is not None else "not specified"


def _display_price(value: int | None) -> str:
    if value is None:
        return "price on application"
    return f"${int(value):,}"


def _bulleted(items: list[str] | None) -> str:
    cleaned = [str(item).strip() for item in items or [] if str(item).strip()]
    if not cleaned:
        return NO_FEATURES
    return "\n".join(f"- {item}" for item in cleaned)


def build_variables(lead: Lead, listing: Listing) -> dict[str, str]:
    """Flatten a lead and listing into the string map the agent script expects."""

    full_name = (lead.name or "").strip()
    first_name = full_name.split()[0] if full_name else "there"
    address = listing.address or ""
    if listing.suburb:
        address = f"{address}, {listing.suburb}" if address else listing.suburb

    return {
        "lead_id": str(lead.id),
        "lead_name": full_name or "there",
        "lead_first_name": first_name,
        "lead_phone": lead.phone or "",
        "lead_email": lead.email or "",
        "property_id": str(listing.id),
        "property_title": listing.title or address,
        "property_address": address,
        "property_type": (listing.property_type or "property").strip(),
        "property_status": listing.status.value.replace("_", " ").title() if listing.status else "",
        "property_price": _display_price(listing.price),
        "property_bedrooms": _display_count(listing.bedrooms),
        "property_bathrooms": _display_count(listing.bathrooms),
        "property_parking": _display_count(listing.parking_spaces),
        "property_features": _bulleted(listing.features),
    }


class DynamicVariableProvider:
    """Serve per-call variables, preferring the cache seeded at call start."""

    def __init__(self, cache: VariableCache, session_factory: SessionFactory) -> None:
        self._cache = cache
        self._session_factory = session_factory

    async def get_variables(
        self,
        *,
        conversation_id: str | None = None,
        lead_id: int | None = None,
        listing_id: int | None = None,
    ) -> dict[str, str]:
        if conversation_id:
            cached = self._cache.get(conversation_id)
            if cached is not None:
                logger.debug("Variable cache hit for %s", conversation_id)
                return cached

        async with self._session_factory() as session:
            if (lead_id is None or listing_id is None) and conversation_id:
                association = await associations_repo.get_by_conversation_id(session, conversation_id)
                if association is not None:
                    lead_id, listing_id = association.lead_id, association.listing_id

            if lead_id is None or listing_id is None:
                raise NotFound("contact_id and property_id are required when the conversation is unknown")

            lead = await leads_repo.get_by_id(session, lead_id)
            if lead is None:
                raise NotFound(f"Lead {lead_id} not found")
            listing = await listings_repo.get_by_id(session, listing_id)
            if listing is None:
                raise NotFound(f"Listing {listing_id} not found")

            return build_variables(lead, listing)
