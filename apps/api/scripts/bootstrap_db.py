"""Create database schema and seed sample leads and listings for development."""
from __future__ import annotations

import asyncio

from calling.db.session import SessionLocal, engine
from calling.models import Lead, Listing, ListingStatus
from calling.models.base import Base

LISTINGS = [
	{
		"id": 1,
		"owner_id": "agency-harbourside",
		"status": ListingStatus.ACTIVE,
		"title": "Renovated terrace close to the park",
		"address": "14 Wattle Street",
		"suburb": "Glebe",
		"property_type": "terrace",
		"price": 1_650_000,
		"bedrooms": 3,
		"bathrooms": 2,
		"parking_spaces": 1,
		"features": ["North-facing courtyard", "Ducted air conditioning", "Walk to light rail"],
	},
	{
		"id": 2,
		"owner_id": "agency-harbourside",
		"status": ListingStatus.ACTIVE,
		"title": "Two bedroom apartment with harbour glimpses",
		"address": "8/221 Blues Point Road",
		"suburb": "McMahons Point",
		"property_type": "apartment",
		"price": 1_120_000,
		"bedrooms": 2,
		"bathrooms": 1,
		"parking_spaces": 1,
		"features": ["Harbour glimpses", "Secure parking", "Lift access"],
	},
	{
		"id": 3,
		"owner_id": "agency-northshore",
		"status": ListingStatus.DRAFT,
		"title": "Family home on a quiet cul-de-sac",
		"address": "5 Banksia Close",
		"suburb": "Turramurra",
		"property_type": "house",
		"price": None,
		"bedrooms": 5,
		"bathrooms": 3,
		"parking_spaces": 2,
		"features": ["Pool", "Double garage", "Study"],
	},
]

LEADS = [
	{
		"id": 1,
		"name": "Priya Natarajan",
		"phone": "+61412345678",
		"email": "priya.natarajan@example.com",
		"source": "portal_enquiry",
	},
	{
		"id": 2,
		"name": "Tom Whitaker",
		"phone": "+61298765432",
		"email": "tom.whitaker@example.com",
		"source": "open_home",
	},
]


async def create_schema() -> None:
	"""Create the database schema if it does not already exist."""

	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)


async def seed_listings() -> None:
	"""Insert or update demo listings."""

	async with SessionLocal() as session:
		async with session.begin():
			for listing_data in LISTINGS:
				listing = await session.get(Listing, listing_data["id"])
				if listing is None:
					session.add(Listing(**listing_data))
				else:
					for field, value in listing_data.items():
						setattr(listing, field, value)


async def seed_leads() -> None:
	"""Insert or update demo leads."""

	async with SessionLocal() as session:
		async with session.begin():
			for lead_data in LEADS:
				lead = await session.get(Lead, lead_data["id"])
				if lead is None:
					session.add(Lead(**lead_data))
				else:
					for field, value in lead_data.items():
						setattr(lead, field, value)


async def main() -> None:
	await create_schema()
	await seed_listings()
	await seed_leads()
	print("Database schema ensured and demo data seeded.")


if __name__ == "__main__":
	asyncio.run(main())
