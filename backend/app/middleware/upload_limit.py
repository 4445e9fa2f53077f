"""
FloraLens Backend - Upload Size Limit Middleware
==================================================

What:  Rejects an upload whose declared Content-Length is already over the cap.
How:   Reads the Content-Length header before FastAPI parses the multipart
       body, so neither authentication nor form parsing runs for it.
Who:   Applied to POST /api/scans/upload via Starlette middleware.
When:  After Request ID and Logging, so the 413 carries a request id and
       gets an access line.

Two checks:
    - Here: the declared request length, before any byte of the body is read
    - read_upload(): the actual file bytes, for clients that send no
      Content-Length or send chunked bodies

    The header covers the whole multipart body (boundaries and part
    headers included), so the cap is widened by MULTIPART_OVERHEAD. A file
    of exactly MAX_FILE_SIZE bytes is never rejected here.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings
from app.middleware.request_id import get_request_id

logger = logging.getLogger(__name__)

MULTIPART_OVERHEAD = 64 * 1024


class UploadSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    413 for uploads declaring more than max_file_size + MULTIPART_OVERHEAD.

    A missing or malformed Content-Length passes through unchanged.
    """

    UPLOAD_PATHS = {"/api/scans/upload"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method != "POST" or request.url.path not in self.UPLOAD_PATHS:
            return await call_next(request)

        try:
            declared = int(request.headers.get("content-length", ""))
        except ValueError:
            return await call_next(request)

        limit = settings.max_file_size + MULTIPART_OVERHEAD
        if declared <= limit:
            return await call_next(request)

        rid = get_request_id(request)
        logger.warning(
            "[%s] Upload rejected from Content-Length: %d > %d bytes",
            rid,
            declared,
            limit,
            extra={"request_id": rid},
        )
        return JSONResponse(
            status_code=413,
            content={
                "error": "payload_too_large",
                "message": "File too large",
                "details": {"max_size_bytes": settings.max_file_size},
                "requestId": rid,
            },
        )
