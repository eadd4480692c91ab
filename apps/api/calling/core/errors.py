"""Failure taxonomy for the call event pipeline."""
from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for pipeline failures."""


class AuthenticationFailure(PipelineError):
    """Inbound request carried a missing or invalid signature."""


class ValidationFailure(PipelineError):
    """Event cannot be processed and must not be retried."""


class TransientStorageFailure(PipelineError):
    """Object or relational store unavailable; the event should be redelivered."""


class UpstreamFailure(PipelineError):
    """Reasoning service call failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientUpstreamFailure(UpstreamFailure):
    """5xx or rate-limited response; safe to retry."""


class PermanentUpstreamFailure(UpstreamFailure):
    """Any other upstream failure; retrying will not help."""


class NotFound(PipelineError):
    """Requested lead or listing does not exist."""


class InvalidPhoneNumber(ValueError):
    """Phone number could not be normalised to E.164."""
