"""
FloraLens Backend - Abstract Object Storage Interface
=======================================================

What:  Contract every object-storage backend implements.
How:   Concrete backends (local disk, S3) inherit from StorageService.
Who:   Called by ScanService for uploads and for signing URLs on reads.

Contract:
    - put() writes bytes under a key and returns the durable key
    - sign() derives a time-limited retrieval URL from a key; the URL is
      never persisted, callers re-sign on every read
    - delete() removes an object; deleting a missing key is not an error
    - backend failures are raised as StorageServiceError
"""

from abc import ABC, abstractmethod


class StorageService(ABC):
    """Abstract interface for durable image storage with signed retrieval."""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """
        Store `data` under `key`.

        Returns:
            The durable key to persist (may differ from `key` if the
            backend normalizes it).

        Raises:
            StorageServiceError: the write failed.
        """
        ...

    @abstractmethod
    async def sign(self, key: str) -> str:
        """Return a retrieval URL for `key` valid for SIGNED_URL_TTL seconds."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the object stored under `key`."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the backend is reachable and writable."""
        ...
