"""
FloraLens Backend - Health Check Route
========================================

What:  Health check endpoint for monitoring and load balancer checks.
How:   Checks the database (SELECT 1), the storage backend and the vision
       provider, and reports an aggregate status.

Status levels:
    - healthy:   every dependency answers (HTTP 200)
    - degraded:  storage or vision down (HTTP 200, flagged for monitoring)
    - unhealthy: database down (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app import __version__
from app.database import engine
from app.schemas.scan import HealthResponse
from app.services.gemini_service import get_vision_service
from app.services.storage_base import StorageService
from app.services.storage_service import get_storage_service
from app.services.vision_base import VisionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
)
async def health_check(
    storage: StorageService = Depends(get_storage_service),
    vision: VisionService = Depends(get_vision_service),
):
    db_status = "connected"
    storage_status = "available"
    vision_status = "available"
    overall = "healthy"

    # ── Database ──────────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Storage ───────────────────────────────────────────────────────────
    if not await storage.health_check():
        storage_status = "unavailable"
        overall = "degraded" if overall != "unhealthy" else overall

    # ── Vision ────────────────────────────────────────────────────────────
    if not await vision.health_check():
        vision_status = "unavailable"
        overall = "degraded" if overall != "unhealthy" else overall

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        storage=storage_status,
        vision=vision_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        return JSONResponse(status_code=503, content=body.model_dump(by_alias=True))
    return body
