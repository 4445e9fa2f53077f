"""
FloraLens Backend - Pydantic Request/Response Schemas
=======================================================

What:  Pydantic models defining the API contract between the app and backend,
       plus the fixed output schema the vision model must satisfy.
How:   FastAPI uses these models to serialize responses and generate the
       OpenAPI docs. JSON field names are camelCase (the mobile client's
       convention); Python attributes stay snake_case.
Who:   Route handlers, ScanService, GeminiService and the HTTP client.

Schemas are separate from the SQLAlchemy model: the API never exposes a
stored URL, only one signed at read time.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for every API model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Confidence(str, Enum):
    """The model's self-reported certainty in its identification."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ══════════════════════════════════════════════════════════════════════════
# Vision Model Output - the fixed structured-output schema
# ══════════════════════════════════════════════════════════════════════════


class FloraFaunaAnalysis(CamelModel):
    """
    What:  Analysis of a flora or fauna species from an image.
    Who:   Produced by the vision adapter, persisted as a Scan, returned
           under `analysis` by POST /api/scans/upload.

    All seven fields are required. An object missing any of them, or with
    a confidence outside {high, medium, low}, is rejected as a whole.
    """

    species: str = Field(description="Scientific name of the species")
    common_name: str = Field(description="Common name of the species")
    is_safe_to_eat: bool = Field(description="Whether the species is safe to eat")
    is_safe_to_touch: bool = Field(description="Whether the species is safe to touch")
    confidence: Confidence = Field(description="Confidence level of the identification")
    warnings: str = Field(description="Any warnings or cautions about this species")
    description: str = Field(
        description="Detailed description of the species and its characteristics"
    )


# ══════════════════════════════════════════════════════════════════════════
# Response Models - What the API returns to clients
# ══════════════════════════════════════════════════════════════════════════


class ScanResponse(CamelModel):
    """
    What:  Full representation of a stored scan.
    Who:   Items of GET /api/scans and the body of GET /api/scans/{id}.

    image_url is signed when the response is built and expires after
    SIGNED_URL_TTL seconds.
    """

    id: uuid.UUID = Field(description="Unique scan identifier (UUID)")
    user_id: str = Field(description="Owner of the scan")
    image_key: str = Field(description="Durable storage key of the image")
    image_url: str = Field(description="Freshly signed, time-limited image URL")
    species: str
    common_name: str
    is_safe_to_eat: bool
    is_safe_to_touch: bool
    confidence: Confidence
    warnings: str
    description: str
    created_at: datetime = Field(description="When the scan was created (UTC ISO 8601)")


class UploadResponse(CamelModel):
    """
    What:  Response after a successful upload and analysis.
    Who:   Returned by POST /api/scans/upload.
    """

    scan_id: uuid.UUID = Field(description="Id of the newly created scan")
    image_url: str = Field(description="Signed URL of the uploaded image")
    analysis: FloraFaunaAnalysis = Field(description="Schema-validated analysis")


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(CamelModel):
    """
    What:  Standardized error body for every non-2xx response.

    Example:
        {
            "error": "payload_too_large",
            "message": "File too large",
            "details": {"max_size_bytes": 10485760},
            "requestId": "550e8400"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(CamelModel):
    """Health check response showing service and dependency status."""

    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    storage: str = Field(description="Object storage: available, unavailable")
    vision: str = Field(description="Vision model: available, unavailable")
    uptime_seconds: float = Field(description="Seconds since service started")
