"""Call history, recordings and outbound call endpoints."""
from __future__ import annotations

import time

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.errors import InvalidPhoneNumber, NotFound, UpstreamFailure
from ..db.session import get_session
from ..dependencies import get_call_initiator, get_object_store
from ..repositories import associations as associations_repo
from ..repositories import notes as notes_repo
from ..schemas import calls as calls_schema
from ..services.object_store import ObjectStore
from ..services.outbound_calls import OutboundCallInitiator
from ..services.signatures import sign_recording_link, verify_recording_link

router = APIRouter()


def _recording_link(request: Request, conversation_id: str) -> str | None:
    if not settings.recording_url_secret:
        return None
    expires = int(time.time()) + settings.recording_url_ttl_seconds
    signature = sign_recording_link(conversation_id, expires, settings.recording_url_secret)
    base = str(request.url_for("get_recording", conversation_id=conversation_id))
    return f"{base}?expires={expires}&signature={signature}"


@router.get("", response_model=calls_schema.CallListResponse)
async def list_calls(
    limit: int = Query(default=50, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
) -> calls_schema.CallListResponse:
    """Return the most recent call summaries."""

    notes = await notes_repo.list_recent(session, limit=limit)
    return calls_schema.CallListResponse(
        items=[
            calls_schema.CallSummary(
                conversation_id=note.conversation_id or "",
                created_at=note.created_at,
                owner_type=note.owner_type,
                owner_id=note.owner_id,
                summary=note.body,
                has_transcript=bool(note.transcript_path),
                has_recording=bool(note.recording_path),
            )
            for note in notes
        ]
    )


@router.get("/{conversation_id}", response_model=calls_schema.CallDetailResponse)
async def get_call(
    conversation_id: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
    store: ObjectStore = Depends(get_object_store),
) -> calls_schema.CallDetailResponse:
    """Return the call summary, transcript, recording link and interest scoring."""

    note = await notes_repo.get_by_conversation_id(session, conversation_id)
    if note is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Call not found")

    transcript = None
    if note.transcript_path:
        raw = await store.get(note.transcript_path)
        transcript = raw.decode("utf-8") if raw is not None else None

    interest = None
    association = await associations_repo.get_by_conversation_id(session, conversation_id)
    if association is not None:
        interest = calls_schema.InterestSnapshot(
            lead_id=association.lead_id,
            listing_id=association.listing_id,
            interest_level=association.interest_level,
            interest_score=association.interest_score,
            last_contacted_at=association.last_contacted_at,
            last_conversation_id=association.last_conversation_id,
        )

    return calls_schema.CallDetailResponse(
        call=calls_schema.CallDetail(
            conversation_id=conversation_id,
            kind=note.kind,
            created_at=note.created_at,
            owner_type=note.owner_type,
            owner_id=note.owner_id,
            summary=note.body,
            transcript=transcript,
            recording_url=_recording_link(request, conversation_id) if note.recording_path else None,
            interest=interest,
        )
    )


@router.get("/{conversation_id}/recording", name="get_recording")
async def get_recording(
    conversation_id: str,
    expires: int = Query(...),
    signature: str = Query(...),
    session: AsyncSession = Depends(get_session),
    store: ObjectStore = Depends(get_object_store),
) -> Response:
    """Stream a stored recording while its signed link is still valid."""

    if not verify_recording_link(
        conversation_id, expires, signature, settings.recording_url_secret, now=time.time()
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Link expired or invalid")

    note = await notes_repo.get_by_conversation_id(session, conversation_id)
    audio = await store.get(note.recording_path) if note is not None and note.recording_path else None
    if audio is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recording not found")
    return Response(content=audio, media_type="audio/mpeg")


@router.post(
    "/outbound",
    status_code=status.HTTP_201_CREATED,
    response_model=calls_schema.OutboundCallResponse,
)
async def start_outbound_call(
    payload: calls_schema.OutboundCallRequest,
    initiator: OutboundCallInitiator = Depends(get_call_initiator),
) -> calls_schema.OutboundCallResponse:
    """Place an AI call to a lead about a listing."""

    try:
        call = await initiator.start_call(lead_id=payload.contact_id, listing_id=payload.property_id)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidPhoneNumber as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except UpstreamFailure as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    return calls_schema.OutboundCallResponse(conversation_id=call.conversation_id, to_number=call.to_number)
