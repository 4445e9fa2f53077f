"""
FloraLens Backend - HTTP Client
=================================

What:  Async client for the scan API, used by the CLI and integration scripts.
How:   httpx.AsyncClient with a bearer token; non-2xx answers become
       ScanClientError carrying the status and the server's message.
Who:   app.cli; anything that wants to drive the API from Python.
"""

import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

import httpx

from app.schemas.scan import ScanResponse, UploadResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"
# Uploads wait on the vision model
DEFAULT_TIMEOUT = httpx.Timeout(90.0, connect=10.0)


class ScanClientError(Exception):
    """A non-2xx answer from the API."""

    def __init__(self, status: int, message: str, request_id: Optional[str] = None):
        self.status = status
        self.message = message
        self.request_id = request_id
        super().__init__(f"{status}: {message}")


class ScanClient:
    """
    Usage:
        async with ScanClient(base_url, token) as client:
            result = await client.upload("fern.jpg")
            history = await client.list_scans()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "ScanClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def upload(self, path: Union[str, Path]) -> UploadResponse:
        """Upload one image file and return the stored analysis."""
        path = Path(path)
        mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
        files = {"file": (path.name, path.read_bytes(), mime_type)}
        logger.debug("Uploading %s (%s)", path, mime_type)
        response = await self._http.post("/api/scans/upload", files=files)
        return UploadResponse.model_validate(self._json(response))

    async def list_scans(self) -> List[ScanResponse]:
        response = await self._http.get("/api/scans")
        return [ScanResponse.model_validate(item) for item in self._json(response)]

    async def get_scan(self, scan_id: Union[str, UUID]) -> ScanResponse:
        response = await self._http.get(f"/api/scans/{scan_id}")
        return ScanResponse.model_validate(self._json(response))

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if response.is_success:
            return response.json()

        message = response.reason_phrase or "Request failed"
        request_id = response.headers.get("X-Request-ID")
        try:
            body: Dict[str, Any] = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict):
            message = body.get("message") or message
            request_id = body.get("requestId") or request_id
        raise ScanClientError(response.status_code, message, request_id)
