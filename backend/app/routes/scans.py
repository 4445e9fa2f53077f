"""
FloraLens Backend - Scan Route Handlers
=========================================

What:  POST /api/scans/upload, GET /api/scans, GET /api/scans/{id}.
How:   Resolve the RequestContext (401 without a valid bearer token), read
       the upload under the size cap, delegate to ScanService.
Who:   Called by the mobile app's home (upload) and profile (history) screens
       and by the CLI client.

Routes stay thin: HTTP extraction and response models here, business rules
in ScanService, error formatting in the global handlers of main.py.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.context import RequestContext, get_request_context
from app.database import get_db_session
from app.exceptions import ValidationError
from app.schemas.scan import ErrorResponse, ScanResponse, UploadResponse
from app.services.gemini_service import get_vision_service
from app.services.scan_service import read_upload, scan_service
from app.services.storage_base import StorageService
from app.services.storage_service import get_storage_service
from app.services.vision_base import VisionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scans", tags=["Scans"])


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        400: {"description": "No file provided", "model": ErrorResponse},
        401: {"description": "Not authenticated", "model": ErrorResponse},
        413: {"description": "File exceeds the size limit", "model": ErrorResponse},
        500: {"description": "Storage, analysis or database failure", "model": ErrorResponse},
    },
    summary="Upload a photo and identify the species",
    description=(
        "Upload one image (max 10 MiB) as multipart field `file`. The image is "
        "stored, analyzed by the vision model against a fixed schema, and saved "
        "as a scan. Returns the scan id, a signed image URL and the analysis."
    ),
)
async def upload_scan(
    file: Optional[UploadFile] = File(
        None,
        description="Photo of a plant, fungus or animal (max 10 MiB)",
    ),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageService = Depends(get_storage_service),
    vision: VisionService = Depends(get_vision_service),
) -> UploadResponse:
    if file is None:
        logger.warning("No file provided", extra=ctx.log_extra())
        raise ValidationError(message="No file provided", field="file")

    try:
        content = await read_upload(file, settings.max_file_size)
    finally:
        await file.close()

    return await scan_service.upload_scan(
        ctx=ctx,
        db=db,
        storage=storage,
        vision=vision,
        filename=file.filename,
        content=content,
        content_type=file.content_type,
    )


@router.get(
    "",
    response_model=List[ScanResponse],
    responses={
        401: {"description": "Not authenticated", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="List the caller's scans, newest first",
)
async def list_scans(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageService = Depends(get_storage_service),
) -> List[ScanResponse]:
    return await scan_service.list_scans(ctx=ctx, db=db, storage=storage)


@router.get(
    "/{scan_id}",
    response_model=ScanResponse,
    responses={
        401: {"description": "Not authenticated", "model": ErrorResponse},
        403: {"description": "Scan belongs to another user", "model": ErrorResponse},
        404: {"description": "Scan not found", "model": ErrorResponse},
    },
    summary="Get one scan with a freshly signed image URL",
)
async def get_scan(
    scan_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageService = Depends(get_storage_service),
) -> ScanResponse:
    """Invalid UUIDs are rejected with 422 by FastAPI path validation."""
    return await scan_service.get_scan(ctx=ctx, db=db, storage=storage, scan_id=scan_id)
