"""Outbound call placement through the voice platform."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx

from ..core.config import settings
from ..core.errors import InvalidPhoneNumber, NotFound, PermanentUpstreamFailure, TransientUpstreamFailure
from ..db.session import SessionFactory
from ..models.base import utcnow
from ..repositories import associations as associations_repo
from ..repositories import leads as leads_repo
from ..repositories import listings as listings_repo
from .variable_cache import VariableCache
from .variables import build_variables

logger = logging.getLogger(__name__)

OUTBOUND_CALL_PATH = "/v1/convai/twilio/outbound-call"

# region -> (country calling code, national trunk prefix)
REGION_DIALING: dict[str, tuple[str, str]] = {
    "AU": ("61", "0"),
    "NZ": ("64", "0"),
    "GB": ("44", "0"),
    "IE": ("353", "0"),
    "US": ("1", ""),
    "CA": ("1", ""),
}

E164_MIN_DIGITS = 8
E164_MAX_DIGITS = 15


def _digits_only(value: str) -> str:
    return re.sub(r"\D", "", value)


def normalize_phone(raw: str | None, default_region: str) -> str:
    """Return ``raw`` as ``+<digits>`` E.164, reading national numbers in ``default_region``."""

    value = (raw or "").strip()
    digits = _digits_only(value)
    if not digits:
        raise InvalidPhoneNumber(f"No digits in phone number {raw!r}")

    if value.startswith("+"):
        international = digits
    elif value.startswith("00"):
        international = digits[2:]
    else:
        region = default_region.upper()
        if region not in REGION_DIALING:
            raise InvalidPhoneNumber(f"Unsupported default region {default_region!r}")
        country_code, trunk_prefix = REGION_DIALING[region]
        if country_code == "1" and len(digits) == 11 and digits.startswith("1"):
            international = digits
        else:
            national = digits[len(trunk_prefix):] if trunk_prefix and digits.startswith(trunk_prefix) else digits
            international = country_code + national

    if international.startswith("0") or not E164_MIN_DIGITS <= len(international) <= E164_MAX_DIGITS:
        raise InvalidPhoneNumber(f"Phone number {raw!r} is not a valid international number")
    if international.startswith("1") and len(international) != 11:
        raise InvalidPhoneNumber(f"Phone number {raw!r} is not a valid NANP number")
    return f"+{international}"


@dataclass(slots=True)
class OutboundCall:
    conversation_id: str
    to_number: str
    call_sid: str | None = None


class OutboundCallInitiator:
    """Place a call for a (lead, listing) pair and pre-seed its dynamic variables."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        cache: VariableCache,
        session_factory: SessionFactory,
        base_url: str = settings.voice_api_base_url,
        api_key: str = settings.voice_api_key,
        agent_id: str = settings.voice_agent_id,
        phone_number_id: str = settings.voice_phone_number_id,
        default_region: str = settings.default_phone_region,
        timeout: float = settings.voice_request_timeout,
    ) -> None:
        self._http = http_client
        self._cache = cache
        self._session_factory = session_factory
        self._url = base_url.rstrip("/") + OUTBOUND_CALL_PATH
        self._api_key = api_key
        self._agent_id = agent_id
        self._phone_number_id = phone_number_id
        self._default_region = default_region
        self._timeout = timeout

    async def start_call(self, *, lead_id: int, listing_id: int) -> OutboundCall:
        async with self._session_factory() as session:
            lead = await leads_repo.get_by_id(session, lead_id)
            if lead is None:
                raise NotFound(f"Lead {lead_id} not found")
            listing = await listings_repo.get_by_id(session, listing_id)
            if listing is None:
                raise NotFound(f"Listing {listing_id} not found")
            to_number = normalize_phone(lead.phone, self._default_region)
            variables = build_variables(lead, listing)

        payload = {
            "agent_id": self._agent_id,
            "agent_phone_number_id": self._phone_number_id,
            "to_number": to_number,
            "conversation_initiation_client_data": {"dynamic_variables": variables},
        }
        try:
            response = await self._http.post(
                self._url,
                json=payload,
                headers={"xi-api-key": self._api_key},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise TransientUpstreamFailure(f"Voice platform unreachable: {exc}") from exc

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientUpstreamFailure("Voice platform busy", status_code=response.status_code)
        if response.status_code >= 400:
            raise PermanentUpstreamFailure(
                f"Voice platform rejected call: {response.text[:200]}", status_code=response.status_code
            )

        data = response.json()
        conversation_id = str(data.get("conversation_id") or "").strip()
        if not conversation_id:
            raise PermanentUpstreamFailure("Voice platform response had no conversation_id")

        self._cache.put(conversation_id, variables)

        async with self._session_factory() as session, session.begin():
            await associations_repo.record_contact_attempt(
                session, lead_id=lead_id, listing_id=listing_id, contacted_at=utcnow()
            )

        logger.info("Placed call %s to lead %s for listing %s", conversation_id, lead_id, listing_id)
        return OutboundCall(conversation_id=conversation_id, to_number=to_number, call_sid=data.get("callSid"))
