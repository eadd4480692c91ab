"""Lead interest classification built on Gemini."""
from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Awaitable, Callable, Dict, Sequence

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from ..core.config import settings
from ..core.errors import PermanentUpstreamFailure, TransientUpstreamFailure, UpstreamFailure
from ..models.association import InterestLevel

logger = logging.getLogger(__name__)

CLASSIFICATION_PROMPT = (
    "You classify how interested a real estate lead is in a property, based on a summary of a "
    "phone call with them. Respond with a JSON object containing exactly three fields and "
    "nothing else:\n"
    '  "interest_level": one of "unknown", "cold", "warm", "hot"\n'
    '  "interest_score": integer from 0 (no interest) to 100 (ready to act)\n'
    '  "rationale": one short sentence explaining the rating\n'
)

SCORE_MIN = 0
SCORE_MAX = 100

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class Classification:
    interest_level: InterestLevel
    interest_score: int
    rationale: str


ANALYSIS_FAILED = Classification(InterestLevel.UNKNOWN, 0, "analysis_failed")
NO_SUMMARY = Classification(InterestLevel.UNKNOWN, 0, "no_summary")


@lru_cache
def _configured_api(api_key: str) -> bool:
    """Configure the Google Generative AI client once per key."""

    genai.configure(api_key=api_key)
    return True


_model_cache: Dict[str, genai.GenerativeModel] = {}


def _get_model(name: str) -> genai.GenerativeModel:
    model_name = name.strip()
    if model_name not in _model_cache:
        _model_cache[model_name] = genai.GenerativeModel(
            model_name,
            generation_config=genai.GenerationConfig(
                response_mime_type="application/json",
                temperature=0.0,
            ),
        )
    return _model_cache[model_name]


def _generate(model_name: str, prompt: str, *, timeout: float) -> str:
    response = _get_model(model_name).generate_content(prompt, request_options={"timeout": timeout})
    return (getattr(response, "text", "") or "").strip()


TRANSIENT_ERRORS = (
    google_exceptions.ServerError,
    google_exceptions.TooManyRequests,
    google_exceptions.ResourceExhausted,
    google_exceptions.DeadlineExceeded,
    TimeoutError,
)


def to_upstream_failure(exc: Exception) -> UpstreamFailure:
    """Map a client exception onto the retryable / non-retryable split."""

    if isinstance(exc, UpstreamFailure):
        return exc
    status_code = getattr(exc, "code", None)
    status_code = status_code if isinstance(status_code, int) else None
    if isinstance(exc, TRANSIENT_ERRORS):
        return TransientUpstreamFailure(str(exc) or exc.__class__.__name__, status_code=status_code)
    if status_code is not None and (status_code >= 500 or status_code == 429):
        return TransientUpstreamFailure(str(exc), status_code=status_code)
    return PermanentUpstreamFailure(str(exc) or exc.__class__.__name__, status_code=status_code)


def _clamp_score(value: object) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not a score")
    score = float(value)  # type: ignore[arg-type]
    if math.isnan(score):
        raise ValueError("NaN is not a score")
    # Clamp before rounding; int() rejects infinities.
    return int(round(max(SCORE_MIN, min(SCORE_MAX, score))))


def parse_classification(raw: str) -> Classification:
    """Parse the model's JSON reply, falling back to ``ANALYSIS_FAILED``."""

    text = _FENCE_RE.sub("", raw.strip())
    try:
        data = json.loads(text)
    except ValueError:
        logger.warning("Classification reply was not JSON: %.200s", raw)
        return ANALYSIS_FAILED
    if not isinstance(data, dict):
        logger.warning("Classification reply was not an object: %.200s", raw)
        return ANALYSIS_FAILED

    level_raw = str(data.get("interest_level", "")).strip().lower()
    try:
        level = InterestLevel(level_raw)
    except ValueError:
        logger.warning("Classification returned unrecognised interest_level %r", level_raw)
        return ANALYSIS_FAILED

    try:
        score = _clamp_score(data.get("interest_score", 0))
    except (TypeError, ValueError, OverflowError):
        logger.warning("Classification returned non-numeric interest_score %r", data.get("interest_score"))
        return ANALYSIS_FAILED

    rationale = str(data.get("rationale") or "").strip()
    return Classification(interest_level=level, interest_score=score, rationale=rationale)


class ClassificationClient:
    """Classify call summaries; never raises.

    Transient failures (5xx, 429, timeouts) are retried on a fixed delay schedule up to
    ``max_attempts``; anything else stops immediately. Every failure path ends in
    ``ANALYSIS_FAILED``.
    """

    def __init__(
        self,
        *,
        api_key: str,
        models: Sequence[str],
        retry_delays: Sequence[float] = (1.0, 2.0, 4.0),
        max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        generate: Callable[..., str] = _generate,
        request_timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key.strip()
        self._models = [name for name in dict.fromkeys(m.strip() for m in models) if name]
        self._retry_delays = list(retry_delays)
        self._max_attempts = max(1, max_attempts)
        self._sleep = sleep
        self._generate = generate
        self._request_timeout = request_timeout

    @classmethod
    def from_settings(cls) -> "ClassificationClient":
        return cls(
            api_key=settings.gemini_api_key,
            models=[settings.gemini_model, *settings.gemini_model_fallbacks],
            retry_delays=settings.classification_retry_delays,
            max_attempts=settings.classification_max_attempts,
            request_timeout=settings.classification_request_timeout,
        )

    async def classify(self, text: str) -> Classification:
        summary = (text or "").strip()
        if not summary:
            return NO_SUMMARY
        if not self._api_key or not self._models:
            logger.warning("Gemini API key or model missing; skipping classification.")
            return ANALYSIS_FAILED

        prompt = f"{CLASSIFICATION_PROMPT}\nCall summary:\n{summary}\n"
        for attempt in range(1, self._max_attempts + 1):
            try:
                raw = await self._request(prompt)
            except TransientUpstreamFailure as exc:
                if attempt >= self._max_attempts:
                    logger.error("Classification failed after %d attempts: %s", attempt, exc)
                    return ANALYSIS_FAILED
                delay = self._delay_for(attempt)
                logger.warning(
                    "Classification attempt %d/%d failed (status=%s); retrying in %.1fs",
                    attempt,
                    self._max_attempts,
                    exc.status_code,
                    delay,
                )
                await self._sleep(delay)
                continue
            except PermanentUpstreamFailure as exc:
                logger.error("Classification rejected (status=%s): %s", exc.status_code, exc)
                return ANALYSIS_FAILED
            return parse_classification(raw)
        return ANALYSIS_FAILED

    def _delay_for(self, attempt: int) -> float:
        if not self._retry_delays:
            return 0.0
        return self._retry_delays[min(attempt - 1, len(self._retry_delays) - 1)]

    async def _request(self, prompt: str) -> str:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._call_models, prompt)
        except Exception as exc:  # noqa: BLE001 - every client error is mapped below
            raise to_upstream_failure(exc) from exc

    def _call_models(self, prompt: str) -> str:
        """Try the primary model, then fallbacks that are merely not found."""

        if self._generate is _generate:
            _configured_api(self._api_key)
        last_error: Exception | None = None
        for model_name in self._models:
            try:
                return self._generate(model_name, prompt, timeout=self._request_timeout)
            except google_exceptions.NotFound as exc:
                logger.warning("Gemini model %s not available: %s", model_name, exc)
                _model_cache.pop(model_name, None)
                last_error = exc
        raise PermanentUpstreamFailure("No Gemini models available", status_code=404) from last_error
