"""
FloraLens Backend - Google Gemini Vision Service
==================================================

What:  VisionService implementation backed by Google Gemini.
How:   Sends the inline image + fixed instruction with JSON structured output
       (response_mime_type + response_schema), then validates the returned JSON
       against FloraFaunaAnalysis with pydantic.
Who:   Created once per process; called by ScanService for each upload.
When:  After the image is stored, before the Scan row is inserted.

Failure handling:
    Transport errors (unavailable, deadline, connection) may be retried by
    tenacity, up to RETRY_MAX_ATTEMPTS (default 1: a single call). A response
    that arrives but does not satisfy the schema is never retried or
    repaired. Every failure is reported as AnalysisFailure.
"""

import logging
import time
import uuid
from functools import lru_cache
from typing import Any, Dict

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings
from app.schemas.scan import FloraFaunaAnalysis
from app.services.vision_base import (
    ANALYSIS_INSTRUCTION,
    AnalysisFailure,
    AnalysisOutcome,
    AnalysisSuccess,
    VisionService,
)

logger = logging.getLogger(__name__)

# Errors worth another attempt; everything else fails on the first try.
TRANSIENT_ERRORS = (
    ConnectionError,
    TimeoutError,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.TooManyRequests,
)

# Gemini's OpenAPI-subset schema for FloraFaunaAnalysis. Property names are
# the camelCase aliases, so the JSON validates straight into the model.
ANALYSIS_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "description": "Analysis of a flora or fauna species from an image",
    "properties": {
        "species": {"type": "STRING", "description": "Scientific name of the species"},
        "commonName": {"type": "STRING", "description": "Common name of the species"},
        "isSafeToEat": {"type": "BOOLEAN", "description": "Whether the species is safe to eat"},
        "isSafeToTouch": {"type": "BOOLEAN", "description": "Whether the species is safe to touch"},
        "confidence": {
            "type": "STRING",
            "format": "enum",
            "enum": ["high", "medium", "low"],
            "description": "Confidence level of the identification",
        },
        "warnings": {
            "type": "STRING",
            "description": "Any warnings or cautions about this species",
        },
        "description": {
            "type": "STRING",
            "description": "Detailed description of the species and its characteristics",
        },
    },
    "required": [
        "species",
        "commonName",
        "isSafeToEat",
        "isSafeToTouch",
        "confidence",
        "warnings",
        "description",
    ],
}


class GeminiService(VisionService):
    """
    Gemini implementation of the vision adapter.

    Error chain:
        transient API error → tenacity retry (if attempts > 1)
        → still failing      → AnalysisFailure("transport: ...")
        blocked/empty reply → AnalysisFailure("empty response: ...")
        JSON off-schema     → AnalysisFailure("schema: ...")
    """

    def __init__(self):
        if settings.gemini_api_key and settings.gemini_api_key != "your_gemini_api_key_here":
            genai.configure(api_key=settings.gemini_api_key)

        self.model = genai.GenerativeModel(settings.gemini_model)
        self.generation_config = genai.GenerationConfig(
            response_mime_type="application/json",
            response_schema=ANALYSIS_RESPONSE_SCHEMA,
        )

        logger.info(
            "GeminiService initialized with model=%s, attempts=%d, timeout=%ds",
            settings.gemini_model,
            settings.retry_max_attempts,
            settings.gemini_timeout,
        )

    async def analyze_image(self, data: bytes, mime_type: str) -> AnalysisOutcome:
        """
        Identify the species in `data`.

        Flow:
            1. Call Gemini (with transport retry)
            2. Read response.text (raises ValueError when blocked/empty)
            3. Validate the JSON against FloraFaunaAnalysis
        """
        call_id = str(uuid.uuid4())[:8]
        logger.info(
            "[%s] Starting Gemini analysis: %d bytes, %s",
            call_id,
            len(data),
            mime_type,
        )

        try:
            response = await self._call_gemini_with_retry(data, mime_type, call_id)
        except Exception as e:
            logger.error(
                "[%s] Gemini call failed: %s: %s",
                call_id,
                type(e).__name__,
                str(e),
            )
            return AnalysisFailure(reason=f"transport: {type(e).__name__}")

        try:
            raw = response.text
        except ValueError as e:
            logger.warning("[%s] Gemini returned no usable candidate: %s", call_id, str(e))
            return AnalysisFailure(reason="empty response: no candidate text")

        if not raw or not raw.strip():
            logger.warning("[%s] Gemini returned an empty body", call_id)
            return AnalysisFailure(reason="empty response: blank text")

        try:
            analysis = FloraFaunaAnalysis.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(
                "[%s] Gemini output failed schema validation (%d errors)",
                call_id,
                e.error_count(),
            )
            return AnalysisFailure(reason=f"schema: {e.error_count()} validation errors")

        logger.info(
            "[%s] Gemini analysis completed: species=%s confidence=%s",
            call_id,
            analysis.species,
            analysis.confidence.value,
        )
        return AnalysisSuccess(analysis=analysis)

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call_gemini_with_retry(self, data: bytes, mime_type: str, call_id: str):
        """
        The raw generate_content call, kept separate so only it is retried.

        Inline image parts are {"mime_type", "data"} dicts; the SDK
        base64-encodes the bytes for transport.
        """
        start_time = time.perf_counter()
        try:
            response = await self.model.generate_content_async(
                [
                    {"mime_type": mime_type, "data": data},
                    ANALYSIS_INSTRUCTION,
                ],
                generation_config=self.generation_config,
                request_options={"timeout": settings.gemini_timeout},
            )
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.warning(
                "[%s] Gemini API call failed after %.0fms: %s",
                call_id,
                duration_ms,
                str(e),
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info("[%s] Gemini responded in %.0fms", call_id, duration_ms)
        return response

    async def health_check(self) -> bool:
        """
        List models to verify the API key and connectivity.

        list_models is free and does not consume generation quota.
        """
        try:
            models = await run_in_threadpool(lambda: list(genai.list_models()))
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False

        target = f"models/{settings.gemini_model}"
        if target not in {m.name for m in models}:
            logger.warning("Configured model %s not found in available models", target)
        return True


@lru_cache(maxsize=1)
def get_vision_service() -> VisionService:
    """FastAPI dependency returning the process-wide vision adapter."""
    return GeminiService()
