"""Abstract base classes for blob storage operations."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime


@dataclass
class BlobMetadata:
    """Metadata for a stored blob."""

    path: str
    size_bytes: int
    content_type: str
    created_at: datetime
    etag: str


@dataclass
class HealthStatus:
    """Health check result."""

    healthy: bool
    latency_ms: float
    message: str | None = None
    details: dict[str, str] | None = None


class BlobWriteHandle(ABC):
    """Incremental writer for a single blob.

    Bytes are pushed with ``write`` as they arrive; the blob becomes visible
    only after ``close`` returns. ``abort`` discards everything written so far.
    """

    @property
    @abstractmethod
    def path(self) -> str:
        """Path of the blob being written."""

    @property
    @abstractmethod
    def bytes_written(self) -> int:
        """Number of bytes accepted so far."""

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Append bytes to the blob.

        Raises:
            BlobWriteError: If the underlying upload already failed.
        """

    @abstractmethod
    async def close(self) -> BlobMetadata:
        """Finish the upload and return the stored blob's metadata."""

    @abstractmethod
    async def abort(self) -> None:
        """Cancel the upload. Safe to call more than once."""


class BlobStorageBase(ABC):
    """Abstract base class for blob storage operations.

    Implementations must stream in both directions: neither writes nor reads
    may hold a whole blob in memory.
    """

    @abstractmethod
    async def open_write_stream(
        self,
        bucket: str,
        path: str,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> BlobWriteHandle:
        """Open an incremental writer for a new blob.

        Args:
            bucket: Target bucket name.
            path: Path within the bucket.
            content_type: MIME type of the content.
            metadata: Optional key-value metadata.

        Returns:
            Write handle; call ``close`` to commit or ``abort`` to discard.
        """

    @abstractmethod
    def download_stream(
        self,
        bucket: str,
        path: str,
        chunk_size: int = 8192,
    ) -> AsyncIterator[bytes]:
        """Stream download a blob in chunks.

        Args:
            bucket: Source bucket name.
            path: Path within the bucket.
            chunk_size: Size of each chunk in bytes.

        Yields:
            Chunks of blob content.

        Raises:
            BlobNotFoundError: If blob doesn't exist.
        """
        ...

    @abstractmethod
    async def delete(self, bucket: str, path: str) -> bool:
        """Delete a blob from storage.

        Returns:
            True if deleted, False if it didn't exist.
        """

    @abstractmethod
    async def exists(self, bucket: str, path: str) -> bool:
        """Check if a blob exists."""

    @abstractmethod
    async def get_metadata(self, bucket: str, path: str) -> BlobMetadata:
        """Get blob metadata without downloading.

        Raises:
            BlobNotFoundError: If blob doesn't exist.
        """

    @abstractmethod
    async def create_bucket(self, bucket: str) -> bool:
        """Create a new bucket.

        Returns:
            True if created, False if already exists.
        """

    @abstractmethod
    async def health_check(self) -> HealthStatus:
        """Check service health."""
