"""Schemas for dynamic variable lookups."""
from __future__ import annotations

from pydantic import BaseModel, model_validator


class VariablesRequest(BaseModel):
    conversation_id: str | None = None
    contact_id: int | None = None
    property_id: int | None = None

    @model_validator(mode="after")
    def _require_lookup_key(self) -> "VariablesRequest":
        if not self.conversation_id and (self.contact_id is None or self.property_id is None):
            raise ValueError("Provide conversation_id or both contact_id and property_id")
        return self


class VariablesResponse(BaseModel):
    client_data: dict[str, str]
