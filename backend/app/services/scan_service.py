"""
FloraLens Backend - Scan Service (Upload/Analyze/Persist Orchestrator)
========================================================================

What:  Turns an authenticated upload into a persisted, schema-validated Scan,
       and serves a user's scans back with freshly signed image URLs.
How:   Composes the storage adapter, the vision adapter and the database
       session. Every call receives its collaborators and a RequestContext.
Who:   Called by the /api/scans route handlers.

Upload Flow (POST /api/scans/upload):
    ┌──────────┐    ┌──────────┐    ┌───────────┐    ┌──────────┐
    │ read ≤cap│───▶│ storage  │───▶│  vision   │───▶│  insert  │
    │ (413)    │    │ put+sign │    │  analyze  │    │  Scan    │
    └──────────┘    └──────────┘    └───────────┘    └──────────┘

    Strictly sequential; each step starts after the previous one finished.
    Reading past the cap fails before any external call.

    On failure after the object was stored (analysis or insert), the stored
    object is deleted before the error propagates, unless
    COMPENSATE_FAILED_UPLOADS is off. A failed delete is logged and the
    original error is still the one raised.

Retrieval:
    list_scans: owner's scans, newest first, no pagination
    get_scan:   404 if absent, 403 if owned by someone else
"""

import logging
import re
import time
from typing import List, Optional, Protocol
from uuid import UUID, uuid4

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.context import RequestContext
from app.exceptions import (
    DatabaseError,
    ForbiddenError,
    NotFoundError,
    PayloadTooLargeError,
    StorageServiceError,
    ValidationError,
    VisionServiceError,
)
from app.models.scan import Scan
from app.schemas.scan import FloraFaunaAnalysis, ScanResponse, UploadResponse
from app.services.storage_base import StorageService
from app.services.vision_base import AnalysisFailure, VisionService

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"
DEFAULT_FILENAME = "upload.jpg"
READ_CHUNK_SIZE = 1024 * 1024

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


async def read_upload(
    upload: AsyncReadable,
    max_size: int,
    chunk_size: int = READ_CHUNK_SIZE,
) -> bytes:
    """
    Read an upload in chunks, failing as soon as it grows past `max_size`.

    Exactly `max_size` bytes is accepted; one more byte raises.

    Raises:
        PayloadTooLargeError: more than `max_size` bytes were read.
    """
    chunks: List[bytes] = []
    total = 0
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size:
            raise PayloadTooLargeError(max_size=max_size, context={"bytes_read": total})
        chunks.append(chunk)
    return b"".join(chunks)


def sanitize_filename(filename: Optional[str]) -> str:
    """Strip directories and anything outside [A-Za-z0-9._-] from a client filename."""
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip("._")
    return name[:100] or DEFAULT_FILENAME


def build_image_key(user_id: str, filename: Optional[str], now_ms: Optional[int] = None) -> str:
    """
    scans/<user_id>/<epoch_ms>-<nonce>-<filename>.

    The 8-hex nonce keeps two uploads of one filename in the same
    millisecond on distinct keys.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"scans/{sanitize_filename(user_id)}/{now_ms}-{uuid4().hex[:8]}-{sanitize_filename(filename)}"


class ScanService:
    """
    Business logic for scans. Stateless; collaborators are passed per call.

    Error Handling:
        - client errors (no file, too large) are raised before side effects
        - storage/vision errors keep their own type
        - SQLAlchemy errors are wrapped in DatabaseError
        - every adapter failure is logged with request_id/user_id/key
    """

    async def upload_scan(
        self,
        ctx: RequestContext,
        db: AsyncSession,
        storage: StorageService,
        vision: VisionService,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str] = None,
        compensate: Optional[bool] = None,
    ) -> UploadResponse:
        """
        Store, analyze and persist one uploaded image.

        Args:
            ctx:          Request context with the resolved session
            db:           Async database session
            storage:      Object storage adapter
            vision:       Vision analysis adapter
            filename:     Client filename (sanitized into the key)
            content:      Raw image bytes, already bounded by read_upload()
            content_type: Declared MIME type; image/jpeg when missing
            compensate:   Override COMPENSATE_FAILED_UPLOADS

        Raises:
            ValidationError:     empty content
            StorageServiceError: write or sign failed
            VisionServiceError:  no schema-conforming analysis
            DatabaseError:       insert failed
        """
        if not content:
            logger.warning("No file provided", extra=ctx.log_extra())
            raise ValidationError(message="No file provided", field="file")

        if compensate is None:
            compensate = settings.compensate_failed_uploads
        mime_type = content_type or DEFAULT_MIME_TYPE
        logger.info(
            "Starting image upload and analysis (%d bytes)",
            len(content),
            extra=ctx.log_extra(),
        )

        # ── Step 1: Durable storage ───────────────────────────────────────
        key = build_image_key(ctx.user_id, filename)
        logger.info("Uploading file to storage: %s", key, extra=ctx.log_extra(key=key))
        try:
            stored_key = await storage.put(key, content, mime_type)
        except StorageServiceError as e:
            logger.error(
                "Storage write failed: %s | Context: %s",
                e.message,
                e.context,
                extra=ctx.log_extra(key=key),
            )
            raise

        try:
            image_url = await storage.sign(stored_key)

            # ── Step 2: Structured analysis ───────────────────────────────
            logger.info("Analyzing image", extra=ctx.log_extra(key=stored_key))
            outcome = await vision.analyze_image(content, mime_type)
            if isinstance(outcome, AnalysisFailure):
                logger.error(
                    "Image analysis failed: %s",
                    outcome.reason,
                    extra=ctx.log_extra(key=stored_key),
                )
                raise VisionServiceError(
                    reason=outcome.reason,
                    context={"key": stored_key, "request_id": ctx.request_id},
                )
            analysis = outcome.analysis
            logger.info(
                "Analysis completed: species=%s confidence=%s",
                analysis.species,
                analysis.confidence.value,
                extra=ctx.log_extra(key=stored_key),
            )

            # ── Step 3: Persistence ───────────────────────────────────────
            scan = await self._insert_scan(ctx, db, stored_key, analysis)

        except Exception:
            if compensate:
                await self._discard_object(ctx, storage, stored_key)
            else:
                logger.warning(
                    "Stored object left without a scan: %s",
                    stored_key,
                    extra=ctx.log_extra(key=stored_key),
                )
            raise

        logger.info("Scan saved to database", extra=ctx.log_extra(scan_id=str(scan.id)))
        return UploadResponse(scan_id=scan.id, image_url=image_url, analysis=analysis)

    async def list_scans(
        self,
        ctx: RequestContext,
        db: AsyncSession,
        storage: StorageService,
    ) -> List[ScanResponse]:
        """All scans owned by the caller, created_at descending, each re-signed."""
        logger.info("Retrieving user scans", extra=ctx.log_extra())
        try:
            result = await db.execute(
                select(Scan)
                .where(Scan.user_id == ctx.user_id)
                .order_by(desc(Scan.created_at))
            )
            scans = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error listing scans: %s", str(e), extra=ctx.log_extra())
            raise DatabaseError(
                message="Could not retrieve scans. Please try again.",
                context={"error_type": type(e).__name__},
            )

        items = [self._to_response(scan, await storage.sign(scan.image_key)) for scan in scans]
        logger.info("Scans retrieved: %d", len(items), extra=ctx.log_extra())
        return items

    async def get_scan(
        self,
        ctx: RequestContext,
        db: AsyncSession,
        storage: StorageService,
        scan_id: UUID,
    ) -> ScanResponse:
        """
        One scan by id, with a freshly signed image URL.

        Raises:
            NotFoundError:  no scan with this id
            ForbiddenError: the scan belongs to another user
            DatabaseError:  the query failed
        """
        log_extra = ctx.log_extra(scan_id=str(scan_id))
        logger.info("Retrieving scan details", extra=log_extra)
        try:
            result = await db.execute(select(Scan).where(Scan.id == scan_id))
            scan = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error fetching scan: %s", str(e), extra=log_extra)
            raise DatabaseError(
                message="Could not retrieve the scan. Please try again.",
                context={"scan_id": str(scan_id)},
            )

        if scan is None:
            logger.warning("Scan not found", extra=log_extra)
            raise NotFoundError(resource="scan", resource_id=str(scan_id))

        if scan.user_id != ctx.user_id:
            logger.warning(
                "Unauthorized access to scan owned by %s",
                scan.user_id,
                extra=log_extra,
            )
            raise ForbiddenError(context={"scan_id": str(scan_id)})

        image_url = await storage.sign(scan.image_key)
        return self._to_response(scan, image_url)

    # ── Internals ─────────────────────────────────────────────────────────

    async def _insert_scan(
        self,
        ctx: RequestContext,
        db: AsyncSession,
        image_key: str,
        analysis: FloraFaunaAnalysis,
    ) -> Scan:
        scan = Scan(
            id=uuid4(),
            user_id=ctx.user_id,
            image_key=image_key,
            species=analysis.species,
            common_name=analysis.common_name,
            is_safe_to_eat=analysis.is_safe_to_eat,
            is_safe_to_touch=analysis.is_safe_to_touch,
            confidence=analysis.confidence.value,
            warnings=analysis.warnings,
            description=analysis.description,
        )
        try:
            db.add(scan)
            # Commit here so a failed commit is still inside the compensated block
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "Failed to save scan: %s",
                str(e),
                extra=ctx.log_extra(key=image_key),
            )
            raise DatabaseError(
                message="An error occurred while saving your scan. Please try again.",
                context={"error_type": type(e).__name__, "key": image_key},
            )
        return scan

    async def _discard_object(
        self,
        ctx: RequestContext,
        storage: StorageService,
        key: str,
    ) -> None:
        try:
            await storage.delete(key)
            logger.info("Discarded stored object after failure: %s", key, extra=ctx.log_extra(key=key))
        except Exception as e:
            logger.error(
                "Could not discard stored object %s: %s",
                key,
                str(e),
                extra=ctx.log_extra(key=key),
            )

    @staticmethod
    def _to_response(scan: Scan, image_url: str) -> ScanResponse:
        return ScanResponse(
            id=scan.id,
            user_id=scan.user_id,
            image_key=scan.image_key,
            image_url=image_url,
            species=scan.species,
            common_name=scan.common_name,
            is_safe_to_eat=scan.is_safe_to_eat,
            is_safe_to_touch=scan.is_safe_to_touch,
            confidence=scan.confidence,
            warnings=scan.warnings,
            description=scan.description,
            created_at=scan.created_at,
        )


scan_service = ScanService()
