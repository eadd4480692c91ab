"""Tests for dynamic variables, the TTL cache and the variables endpoint."""
from __future__ import annotations

import json

import pytest
from httpx import ASGITransport, AsyncClient

from calling.core.errors import NotFound
from calling.dependencies import get_variable_provider
from calling.main import app
from calling.models.listing import ListingStatus
from calling.routers import webhooks
from calling.services.signatures import compute_signature
from calling.services.variable_cache import VariableCache
from calling.services.variables import DynamicVariableProvider, build_variables

from conftest import DummySessionFactory

SECRET = "whsec-test"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


class ExplodingFactory:
    def __call__(self):
        raise AssertionError("cache hit must not open a database session")


def _seed(memory_db):
    memory_db.add_lead(1, name="Priya Natarajan", phone="0412 345 678", email="priya@example.com")
    memory_db.add_listing(
        2,
        title="Light-filled terrace",
        address="14 Wattle Street",
        suburb="Glebe",
        property_type="house",
        status=ListingStatus.ACTIVE,
        price=1650000,
        bedrooms=3,
        bathrooms=2,
        parking_spaces=None,
        features=["North-facing courtyard", "  ", "Walk to light rail"],
    )


def test_variables_are_display_strings(memory_db):
    _seed(memory_db)

    variables = build_variables(memory_db.leads[1], memory_db.listings[2])

    assert all(isinstance(value, str) for value in variables.values())
    assert variables["lead_first_name"] == "Priya"
    assert variables["property_address"] == "14 Wattle Street, Glebe"
    assert variables["property_status"] == "Active"
    assert variables["property_price"] == "$1,650,000"
    assert variables["property_bedrooms"] == "3"
    assert variables["property_parking"] == "not specified"
    assert variables["property_features"] == "- North-facing courtyard\n- Walk to light rail"


def test_missing_price_and_features_have_fallback_text(memory_db):
    _seed(memory_db)
    listing = memory_db.listings[2]
    listing.price = None
    listing.features = []

    variables = build_variables(memory_db.leads[1], listing)

    assert variables["property_price"] == "price on application"
    assert variables["property_features"] == "No specific features listed"


@pytest.mark.asyncio
async def test_cache_hit_skips_database():
    cache = VariableCache(ttl_seconds=900)
    cache.put("conv-1", {"lead_name": "Priya"})
    provider = DynamicVariableProvider(cache, ExplodingFactory())

    assert await provider.get_variables(conversation_id="conv-1") == {"lead_name": "Priya"}


@pytest.mark.asyncio
async def test_expired_entry_is_recomputed_from_ids(memory_db):
    _seed(memory_db)
    clock = FakeClock()
    cache = VariableCache(ttl_seconds=900, clock=clock)
    cache.put("conv-1", {"lead_name": "stale"})
    factory = DummySessionFactory()
    provider = DynamicVariableProvider(cache, factory)

    clock.now += 901
    variables = await provider.get_variables(conversation_id="conv-1", lead_id=1, listing_id=2)

    assert variables["lead_name"] == "Priya Natarajan"
    assert factory.opened == 1
    assert len(cache) == 0


def test_cache_returns_copies_and_expires():
    clock = FakeClock()
    cache = VariableCache(ttl_seconds=10, clock=clock)
    cache.put("conv-1", {"a": "1"})

    cache.get("conv-1")["a"] = "changed"
    assert cache.get("conv-1") == {"a": "1"}

    clock.now += 10
    assert cache.get("conv-1") is None


@pytest.mark.asyncio
async def test_pair_is_resolved_from_conversation_association(memory_db):
    _seed(memory_db)
    await memory_db.upsert_interest(
        None,
        lead_id=1,
        listing_id=2,
        interest_level=None,
        interest_score=0,
        contacted_at=None,
        conversation_id="conv-9",
    )
    provider = DynamicVariableProvider(VariableCache(), DummySessionFactory())

    variables = await provider.get_variables(conversation_id="conv-9")

    assert variables["lead_id"] == "1"
    assert variables["property_id"] == "2"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"conversation_id": "unknown"},
        {"lead_id": 404, "listing_id": 2},
        {"lead_id": 1, "listing_id": 404},
    ],
)
async def test_unknown_records_raise_not_found(memory_db, kwargs):
    _seed(memory_db)
    provider = DynamicVariableProvider(VariableCache(), DummySessionFactory())

    with pytest.raises(NotFound):
        await provider.get_variables(**kwargs)


@pytest.fixture
def signed_client(monkeypatch, memory_db):
    _seed(memory_db)
    monkeypatch.setattr(webhooks.settings, "voice_webhook_secret", SECRET)
    monkeypatch.setattr(webhooks.settings, "voice_signature_header", "X-Signature")
    provider = DynamicVariableProvider(VariableCache(), DummySessionFactory())
    app.dependency_overrides[get_variable_provider] = lambda: provider
    yield
    app.dependency_overrides.clear()


async def _post(payload: dict, *, secret: str = SECRET):
    body = json.dumps(payload).encode("utf-8")
    headers = {"X-Signature": compute_signature(body, secret), "Content-Type": "application/json"}
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        return await client.post("/api/variables", content=body, headers=headers)


@pytest.mark.asyncio
async def test_endpoint_returns_client_data(signed_client):
    response = await _post({"conversation_id": "conv-2", "contact_id": 1, "property_id": 2})

    assert response.status_code == 200
    assert response.json()["client_data"]["property_title"] == "Light-filled terrace"


@pytest.mark.asyncio
async def test_endpoint_maps_errors(signed_client):
    assert (await _post({"contact_id": 1, "property_id": 404})).status_code == 404
    assert (await _post({"contact_id": 1})).status_code == 422
    assert (await _post({"contact_id": 1, "property_id": 2}, secret="wrong")).status_code == 401
