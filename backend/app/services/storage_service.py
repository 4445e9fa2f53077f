"""
FloraLens Backend - Object Storage Backends
=============================================

What:  Local-disk and S3 implementations of StorageService.
How:   STORAGE_BACKEND selects one; `get_storage_service()` returns the
       process-wide instance, overridable through FastAPI dependency overrides.
Who:   ScanService (put/sign/delete), the files route (local tokens), health.

Backends:
    LocalStorageService
        Writes under STORAGE_ROOT with aiofiles. Keys map to relative paths
        (scans/<user>/<ms>-<name>.jpg). A signed URL points at
        GET /api/files/<key>?token=<jwt>, where the JWT binds the exact key
        and expires after SIGNED_URL_TTL seconds.

    S3StorageService
        boto3 put_object / generate_presigned_url / delete_object. boto3 is
        blocking, so every call runs in the threadpool. S3_ENDPOINT_URL points
        it at MinIO, R2 or any other S3-compatible service.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import aiofiles
import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError
from jose import JWTError, jwt
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.exceptions import StorageServiceError
from app.services.storage_base import StorageService

logger = logging.getLogger(__name__)

FILE_TOKEN_PURPOSE = "file"


# ══════════════════════════════════════════════════════════════════════════
# Signed file tokens (local backend)
# ══════════════════════════════════════════════════════════════════════════

def create_file_token(key: str, ttl_seconds: int) -> str:
    expires = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
    claims = {
        "key": key,
        "purpose": FILE_TOKEN_PURPOSE,
        "exp": int(expires.timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_file_token(token: str, key: str) -> bool:
    """
    True only for an unexpired file token issued for exactly `key`.

    Access tokens are rejected: they carry no `purpose` claim.
    """
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False},
        )
    except JWTError:
        return False
    return claims.get("purpose") == FILE_TOKEN_PURPOSE and claims.get("key") == key


# ══════════════════════════════════════════════════════════════════════════
# Local disk
# ══════════════════════════════════════════════════════════════════════════

class LocalStorageService(StorageService):
    """
    Stores objects as files under a root directory.

    Directory Structure:
        storage/
        └── scans/
            └── <user_id>/
                ├── 1718000000000-photo.jpg
                └── 1718000100000-3f9c2a1b-leaf.png
    """

    def __init__(
        self,
        storage_root: Optional[str] = None,
        public_base_url: Optional[str] = None,
        url_ttl: Optional[int] = None,
    ):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self.url_ttl = url_ttl or settings.signed_url_ttl
        logger.info("LocalStorageService initialized with storage_root=%s", self.storage_root)

    def resolve_path(self, key: str) -> Path:
        """
        Map a key to an absolute path inside the storage root.

        Raises:
            StorageServiceError: the key would escape the root (../, absolute path).
        """
        path = (self.storage_root / key).resolve()
        if not path.is_relative_to(self.storage_root) or path == self.storage_root:
            raise StorageServiceError(
                message="Invalid storage key",
                context={"key": key},
            )
        return path

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self.resolve_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to store object %s: %s", key, str(e))
            raise StorageServiceError(
                message="Failed to save uploaded image. Please try again.",
                context={"key": key, "os_error": str(e)},
            )

        logger.info("Object stored: %s (%d bytes, %s)", key, len(data), content_type)
        return key

    async def sign(self, key: str) -> str:
        token = create_file_token(key, self.url_ttl)
        return f"{self.public_base_url}/api/files/{quote(key, safe='/')}?token={token}"

    async def delete(self, key: str) -> None:
        path = self.resolve_path(key)
        try:
            if path.exists():
                os.remove(path)
                logger.info("Object deleted: %s", key)
            else:
                logger.debug("Delete: object already gone: %s", key)
        except OSError as e:
            raise StorageServiceError(
                message="Failed to delete stored image",
                context={"key": key, "os_error": str(e)},
            )

    async def health_check(self) -> bool:
        return self.storage_root.is_dir() and os.access(self.storage_root, os.W_OK)


# ══════════════════════════════════════════════════════════════════════════
# S3
# ══════════════════════════════════════════════════════════════════════════

class S3StorageService(StorageService):
    """S3 (or S3-compatible) bucket with presigned GET URLs."""

    def __init__(
        self,
        bucket: Optional[str] = None,
        client: Optional[BaseClient] = None,
        url_ttl: Optional[int] = None,
    ):
        self.bucket = bucket or settings.s3_bucket
        self.url_ttl = url_ttl or settings.signed_url_ttl
        self._client = client or boto3.client(
            "s3",
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
        )
        logger.info("S3StorageService initialized with bucket=%s", self.bucket)

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            await run_in_threadpool(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("S3 put_object failed for %s: %s", key, str(e))
            raise StorageServiceError(
                message="Failed to save uploaded image. Please try again.",
                context={"key": key, "bucket": self.bucket, "error": str(e)},
            )

        logger.info("Object stored: s3://%s/%s (%d bytes)", self.bucket, key, len(data))
        return key

    async def sign(self, key: str) -> str:
        try:
            return await run_in_threadpool(
                self._client.generate_presigned_url,
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.url_ttl,
                HttpMethod="GET",
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("S3 presign failed for %s: %s", key, str(e))
            raise StorageServiceError(
                message="Could not generate image URL",
                context={"key": key, "bucket": self.bucket, "error": str(e)},
            )

    async def delete(self, key: str) -> None:
        try:
            await run_in_threadpool(
                self._client.delete_object,
                Bucket=self.bucket,
                Key=key,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageServiceError(
                message="Failed to delete stored image",
                context={"key": key, "bucket": self.bucket, "error": str(e)},
            )
        logger.info("Object deleted: s3://%s/%s", self.bucket, key)

    async def health_check(self) -> bool:
        try:
            await run_in_threadpool(self._client.head_bucket, Bucket=self.bucket)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning("S3 health check failed: %s", str(e))
            return False


# ── Backend Selection ─────────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_storage_service() -> StorageService:
    """FastAPI dependency returning the configured storage backend."""
    if settings.storage_backend == "s3":
        return S3StorageService()
    return LocalStorageService()
