"""Dynamic variables requested by the voice platform at call time."""
from __future__ import annotations

import json

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from ..core.errors import NotFound
from ..dependencies import get_variable_provider
from ..schemas.variables import VariablesRequest, VariablesResponse
from ..services.variables import DynamicVariableProvider
from .webhooks import read_verified_body

router = APIRouter()


@router.post("", response_model=VariablesResponse)
async def get_variables(
    body: bytes = Depends(read_verified_body),
    provider: DynamicVariableProvider = Depends(get_variable_provider),
) -> VariablesResponse:
    """Return the flat string map the agent substitutes into its script."""

    try:
        payload = VariablesRequest.model_validate(json.loads(body or b"{}"))
    except (ValueError, ValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    try:
        client_data = await provider.get_variables(
            conversation_id=payload.conversation_id,
            lead_id=payload.contact_id,
            listing_id=payload.property_id,
        )
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return VariablesResponse(client_data=client_data)
