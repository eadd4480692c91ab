"""Schemas for voice platform webhooks."""
from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CallCompletedEvent(BaseModel):
    """Post-call payload delivered by the voice platform."""

    model_config = ConfigDict(extra="allow")

    conversation_id: str | None = None
    summary: str = ""
    transcript: str | list[dict[str, Any]] | None = None
    recording_url: str | None = None
    contact_id: int | None = None
    property_id: int | None = None

    @field_validator("conversation_id", "recording_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("summary", mode="before")
    @classmethod
    def _summary_text(cls, value: object) -> object:
        return "" if value is None else str(value)

    @field_validator("transcript", mode="before")
    @classmethod
    def _transcript_shape(cls, value: object) -> object:
        """Keep text or a list of turn objects; flatten any other shape to text."""

        if value is None or isinstance(value, str):
            return value
        if isinstance(value, dict):
            return [value] if "message" in value else json.dumps(value)
        if isinstance(value, list):
            if all(isinstance(item, dict) for item in value):
                return value
            lines = []
            for item in value:
                if isinstance(item, dict):
                    lines.append(f"{item.get('role') or 'unknown'}: {item.get('message') or ''}")
                elif item is not None:
                    lines.append(str(item))
            return "\n".join(lines)
        return str(value)

    @field_validator("contact_id", "property_id", mode="before")
    @classmethod
    def _lenient_id(cls, value: object) -> int | None:
        """Unparseable identifiers are treated as unresolved rather than rejecting the event."""

        if value is None or isinstance(value, bool):
            return None
        try:
            return int(str(value).strip())
        except ValueError:
            return None

    def transcript_text(self) -> str:
        """Render the transcript as plain text, one turn per line for structured transcripts."""

        if not self.transcript:
            return ""
        if isinstance(self.transcript, str):
            return self.transcript.strip()
        lines = []
        for turn in self.transcript:
            role = str(turn.get("role") or "unknown").strip()
            message = str(turn.get("message") or "").strip()
            if message:
                lines.append(f"{role}: {message}")
        return "\n".join(lines)


class WebhookAccepted(BaseModel):
    status: str = Field(default="accepted")
