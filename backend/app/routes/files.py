"""
FloraLens Backend - Signed File Route (local storage backend)
===============================================================

What:  GET /api/files/{key}?token=... serves an image stored on local disk.
How:   The token must be an unexpired file token issued by
       LocalStorageService.sign() for exactly this key.
Who:   Hit by <Image source={imageUrl}> in the app; the URL comes from any
       scan response.

With the S3 backend this route always answers 404: S3 serves its own
presigned URLs.
"""

import logging
import mimetypes

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from app.exceptions import ForbiddenError, NotFoundError
from app.services.storage_base import StorageService
from app.services.storage_service import (
    LocalStorageService,
    get_storage_service,
    verify_file_token,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Files"])


@router.get(
    "/files/{key:path}",
    summary="Serve a stored image through a signed URL",
    responses={
        200: {"description": "Image file"},
        403: {"description": "Missing, expired or foreign token"},
        404: {"description": "Object not found"},
    },
)
async def serve_file(
    key: str,
    token: str = Query(default="", description="Signature issued with the image URL"),
    storage: StorageService = Depends(get_storage_service),
) -> FileResponse:
    if not isinstance(storage, LocalStorageService):
        raise NotFoundError(resource="file", resource_id=key)

    if not token or not verify_file_token(token, key):
        logger.warning("Rejected file request with invalid token: %s", key)
        raise ForbiddenError(message="Invalid or expired file link")

    path = storage.resolve_path(key)
    if not path.is_file():
        raise NotFoundError(resource="file", resource_id=key)

    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(
        path=str(path),
        media_type=media_type,
        # Private: the URL itself is the credential
        headers={"Cache-Control": "private, max-age=300"},
    )
