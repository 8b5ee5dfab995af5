"""MinIO implementation of blob storage."""

import asyncio
import queue
import threading
import time
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime

from minio import Minio
from minio.error import S3Error

from src.commons.infrastructure.blob.base import (
    BlobMetadata,
    BlobStorageBase,
    BlobWriteHandle,
    HealthStatus,
)
from src.commons.telemetry import get_logger

logger = get_logger(__name__)

_MISSING_CODES = frozenset({"NoSuchKey", "NoSuchObject", "NoSuchBucket"})
_EOF = object()


class BlobNotFoundError(Exception):
    """Raised when a blob is not found."""

    def __init__(self, bucket: str, path: str) -> None:
        self.bucket = bucket
        self.path = path
        super().__init__(f"Blob not found: {bucket}/{path}")


class BlobWriteError(Exception):
    """Raised when a streamed blob upload cannot accept or commit data."""

    def __init__(self, bucket: str, path: str, reason: str) -> None:
        self.bucket = bucket
        self.path = path
        self.reason = reason
        super().__init__(f"Blob write failed for {bucket}/{path}: {reason}")


class _QueueReader:
    """Blocking file-like reader fed from the event loop.

    ``put_object`` runs on the handle's own thread and pulls from ``read``;
    the async side pushes with ``offer``, which never blocks. The bounded
    queue gives backpressure, so at most ``max_pending`` writes plus one
    upload part are held in memory.
    """

    _POLL_SECONDS = 0.25

    def __init__(self, max_pending: int) -> None:
        self._queue: queue.Queue[object] = queue.Queue(maxsize=max_pending)
        self._buffer = bytearray()
        self._eof = False
        self._aborted = threading.Event()
        self._failed = threading.Event()

    def read(self, size: int = -1) -> bytes:
        while not self._eof and (size < 0 or len(self._buffer) < size):
            if self._aborted.is_set():
                raise OSError("blob write aborted")
            try:
                item = self._queue.get(timeout=self._POLL_SECONDS)
            except queue.Empty:
                continue
            if item is _EOF:
                self._eof = True
            else:
                self._buffer.extend(item)  # type: ignore[arg-type]

        if size < 0 or size >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
        else:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
        return data

    def offer(self, item: object) -> bool:
        """Queue an item without blocking; False when the queue is full."""
        if self._failed.is_set() or self._aborted.is_set():
            raise OSError("blob upload is no longer accepting data")
        try:
            self._queue.put_nowait(item)
        except queue.Full:
            return False
        return True

    def mark_failed(self) -> None:
        self._failed.set()

    def abort(self) -> None:
        self._aborted.set()


class MinioBlobWriteHandle(BlobWriteHandle):
    """Streams bytes into a MinIO multipart upload of unknown length.

    Each handle runs ``put_object`` on a single-thread executor of its own,
    so open handles never hold workers of the loop's default executor.
    """

    _FEED_RETRY_SECONDS = 0.01

    def __init__(
        self,
        storage: "MinioBlobStorage",
        bucket: str,
        path: str,
        content_type: str,
        metadata: dict[str, str] | None,
        part_size: int,
        max_pending: int = 8,
    ) -> None:
        self._storage = storage
        self._bucket = bucket
        self._path = path
        self._reader = _QueueReader(max_pending)
        self._bytes_written = 0
        self._finished = False
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="blob-put"
        )

        def _put() -> None:
            try:
                storage.client.put_object(
                    bucket_name=bucket,
                    object_name=path,
                    data=self._reader,
                    length=-1,
                    content_type=content_type,
                    metadata=metadata,
                    part_size=part_size,
                    num_parallel_uploads=1,
                )
            except BaseException:
                self._reader.mark_failed()
                raise

        loop = asyncio.get_running_loop()
        self._upload = loop.run_in_executor(self._executor, _put)
        self._upload.add_done_callback(
            lambda _: self._executor.shutdown(wait=False)
        )

    @property
    def path(self) -> str:
        return self._path

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    async def _feed(self, item: object) -> None:
        while not self._reader.offer(item):
            if self._upload.done():
                raise OSError("blob upload ended before reading all data")
            await asyncio.sleep(self._FEED_RETRY_SECONDS)

    async def _failure_reason(self, exc: Exception) -> str:
        # A refused offer means put_object is already unwinding
        await asyncio.wait({self._upload})
        if not self._upload.cancelled():
            upload_error = self._upload.exception()
            if upload_error is not None:
                return str(upload_error)
        return str(exc)

    async def write(self, data: bytes) -> None:
        if self._finished:
            raise BlobWriteError(self._bucket, self._path, "handle already closed")
        if not data:
            return
        try:
            await self._feed(bytes(data))
        except OSError as e:
            raise BlobWriteError(
                self._bucket, self._path, await self._failure_reason(e)
            ) from e
        self._bytes_written += len(data)

    async def close(self) -> BlobMetadata:
        if self._finished:
            raise BlobWriteError(self._bucket, self._path, "handle already closed")
        self._finished = True
        try:
            await self._feed(_EOF)
            await self._upload
        except Exception as e:
            raise BlobWriteError(
                self._bucket, self._path, await self._failure_reason(e)
            ) from e
        return await self._storage.get_metadata(self._bucket, self._path)

    async def abort(self) -> None:
        if self._finished and self._upload.done():
            return
        self._finished = True
        self._reader.abort()
        try:
            await self._upload
        except Exception as e:  # the upload was cancelled on purpose
            logger.debug(
                "Aborted blob upload",
                extra={"bucket": self._bucket, "path": self._path, "reason": str(e)},
            )


class MinioBlobStorage(BlobStorageBase):
    """MinIO implementation of blob storage.

    Works with both MinIO (local development) and AWS S3 (production).
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        secure: bool = False,
        region: str | None = None,
        part_size: int = 16 * 1024 * 1024,
    ) -> None:
        """Initialize MinIO client.

        Args:
            endpoint: MinIO/S3 endpoint (e.g., "localhost:9000").
            access_key: Access key ID.
            secret_key: Secret access key.
            secure: Use HTTPS connection.
            region: AWS region (optional, for S3).
            part_size: Multipart part size for streamed writes (>= 5 MiB).
        """
        self._client = Minio(
            endpoint=endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
            region=region,
        )
        self._endpoint = endpoint
        self._secure = secure
        self._part_size = part_size

    @property
    def client(self) -> Minio:
        """Underlying MinIO client."""
        return self._client

    async def open_write_stream(
        self,
        bucket: str,
        path: str,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> BlobWriteHandle:
        """Open a streamed multipart upload."""
        return MinioBlobWriteHandle(
            storage=self,
            bucket=bucket,
            path=path,
            content_type=content_type,
            metadata=metadata,
            part_size=self._part_size,
        )

    async def download_stream(  # type: ignore[override]
        self,
        bucket: str,
        path: str,
        chunk_size: int = 8192,
    ) -> AsyncIterator[bytes]:
        """Stream download a blob in chunks."""
        loop = asyncio.get_running_loop()

        try:
            response = await loop.run_in_executor(
                None, self._client.get_object, bucket, path
            )
        except S3Error as e:
            if e.code in _MISSING_CODES:
                raise BlobNotFoundError(bucket, path) from e
            raise

        try:
            while True:
                chunk: bytes = await loop.run_in_executor(
                    None, response.read, chunk_size
                )
                if not chunk:
                    break
                yield chunk
        finally:
            response.close()
            response.release_conn()

    async def delete(self, bucket: str, path: str) -> bool:
        """Delete a blob from storage."""
        loop = asyncio.get_running_loop()

        if not await self.exists(bucket, path):
            return False

        await loop.run_in_executor(None, self._client.remove_object, bucket, path)
        return True

    async def exists(self, bucket: str, path: str) -> bool:
        """Check if a blob exists."""
        loop = asyncio.get_running_loop()

        def _stat() -> bool:
            try:
                self._client.stat_object(bucket, path)
                return True
            except S3Error as e:
                if e.code in _MISSING_CODES:
                    return False
                raise

        return await loop.run_in_executor(None, _stat)

    async def get_metadata(self, bucket: str, path: str) -> BlobMetadata:
        """Get blob metadata without downloading."""
        loop = asyncio.get_running_loop()

        def _stat() -> BlobMetadata:
            try:
                stat = self._client.stat_object(bucket, path)
            except S3Error as e:
                if e.code in _MISSING_CODES:
                    raise BlobNotFoundError(bucket, path) from e
                raise
            return BlobMetadata(
                path=path,
                size_bytes=stat.size or 0,
                content_type=stat.content_type or "application/octet-stream",
                created_at=stat.last_modified or datetime.now(UTC),
                etag=stat.etag or "",
            )

        return await loop.run_in_executor(None, _stat)

    async def create_bucket(self, bucket: str) -> bool:
        """Create a new bucket."""
        loop = asyncio.get_running_loop()

        def _create() -> bool:
            if self._client.bucket_exists(bucket):
                return False
            self._client.make_bucket(bucket)
            return True

        return await loop.run_in_executor(None, _create)

    async def health_check(self) -> HealthStatus:
        """Check service health."""
        start = time.perf_counter()
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._client.list_buckets)
        except Exception as e:
            latency_ms = (time.perf_counter() - start) * 1000
            return HealthStatus(
                healthy=False,
                latency_ms=latency_ms,
                message=f"MinIO health check failed: {e}",
                details={"endpoint": self._endpoint, "error": str(e)},
            )
        latency_ms = (time.perf_counter() - start) * 1000
        return HealthStatus(
            healthy=True,
            latency_ms=latency_ms,
            message="MinIO is healthy",
            details={"endpoint": self._endpoint},
        )

