"""Unit tests for MinIO blob storage provider."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from src.commons.infrastructure.blob.minio_provider import (
    BlobWriteError,
    MinioBlobStorage,
)

BUCKET = "staging-videos"


def consuming_put(received: list[bytes], read_size: int = 4):
    """put_object stand-in that drains the reader like the SDK does."""

    def put_object(bucket_name, object_name, data, length, **kwargs):
        while True:
            chunk = data.read(read_size)
            if not chunk:
                break
            received.append(chunk)
        return MagicMock()

    return put_object


class TestMinioBlobWriteHandle:
    """Tests for streamed writes through MinioBlobWriteHandle."""

    @pytest.fixture
    def mock_minio(self):
        """Create a mock MinIO client."""
        with patch(
            "src.commons.infrastructure.blob.minio_provider.Minio"
        ) as mock_client_class:
            client = MagicMock()
            client.stat_object.return_value = SimpleNamespace(
                size=0,
                content_type="video/mp4",
                last_modified=None,
                etag="etag-1",
            )
            mock_client_class.return_value = client
            yield client

    @pytest.fixture
    def storage(self, mock_minio):
        return MinioBlobStorage(
            endpoint="localhost:9000",
            access_key="key",
            secret_key="secret",
            part_size=5 * 1024 * 1024,
        )

    async def test_write_then_close_commits_bytes_in_order(self, storage, mock_minio):
        received: list[bytes] = []
        mock_minio.put_object.side_effect = consuming_put(received)
        mock_minio.stat_object.return_value.size = 30

        handle = await storage.open_write_stream(BUCKET, "a.mp4", "video/mp4")
        for i in range(30):
            await handle.write(bytes([i]))
        metadata = await handle.close()

        assert b"".join(received) == bytes(range(30))
        assert handle.bytes_written == 30
        assert metadata.size_bytes == 30
        assert metadata.etag == "etag-1"

        kwargs = mock_minio.put_object.call_args.kwargs
        assert kwargs["bucket_name"] == BUCKET
        assert kwargs["object_name"] == "a.mp4"
        assert kwargs["length"] == -1
        assert kwargs["part_size"] == 5 * 1024 * 1024
        assert kwargs["content_type"] == "video/mp4"

    async def test_empty_write_is_ignored(self, storage, mock_minio):
        received: list[bytes] = []
        mock_minio.put_object.side_effect = consuming_put(received)

        handle = await storage.open_write_stream(BUCKET, "a.mp4")
        await handle.write(b"")
        await handle.close()

        assert received == []
        assert handle.bytes_written == 0

    async def test_abort_ends_the_upload_job(self, storage, mock_minio):
        mock_minio.put_object.side_effect = consuming_put([])

        handle = await storage.open_write_stream(BUCKET, "a.mp4")
        await handle.write(b"partial")
        await asyncio.wait_for(handle.abort(), timeout=5)

        assert handle._upload.done()
        with pytest.raises(BlobWriteError, match="handle already closed"):
            await handle.write(b"more")

    async def test_abort_after_close_is_a_noop(self, storage, mock_minio):
        mock_minio.put_object.side_effect = consuming_put([])

        handle = await storage.open_write_stream(BUCKET, "a.mp4")
        await handle.close()
        await handle.abort()

        assert mock_minio.put_object.call_count == 1

    async def test_failed_upload_surfaces_from_write(self, storage, mock_minio):
        mock_minio.put_object.side_effect = RuntimeError("access denied")

        handle = await storage.open_write_stream(BUCKET, "a.mp4")
        await asyncio.wait({handle._upload})

        with pytest.raises(BlobWriteError, match="access denied") as exc_info:
            await handle.write(b"data")

        assert exc_info.value.path == "a.mp4"
        assert handle.bytes_written == 0

    async def test_failed_upload_surfaces_from_close(self, storage, mock_minio):
        mock_minio.put_object.side_effect = RuntimeError("bucket gone")

        handle = await storage.open_write_stream(BUCKET, "a.mp4")

        with pytest.raises(BlobWriteError, match="bucket gone"):
            await handle.close()

    async def test_close_twice_is_rejected(self, storage, mock_minio):
        mock_minio.put_object.side_effect = consuming_put([])

        handle = await storage.open_write_stream(BUCKET, "a.mp4")
        await handle.close()

        with pytest.raises(BlobWriteError, match="handle already closed"):
            await handle.close()

    async def test_open_handles_do_not_starve_the_default_executor(
        self, storage, mock_minio
    ):
        """More open uploads than default workers still make progress."""
        loop = asyncio.get_running_loop()
        loop.set_default_executor(ThreadPoolExecutor(max_workers=2))
        received: list[bytes] = []
        mock_minio.put_object.side_effect = consuming_put(received)

        handles = [
            await storage.open_write_stream(BUCKET, f"{i}.mp4") for i in range(4)
        ]

        async def write_and_close(handle):
            for _ in range(5):
                await handle.write(b"x" * 10)
            return await handle.close()

        results = await asyncio.wait_for(
            asyncio.gather(*(write_and_close(h) for h in handles)), timeout=5
        )

        assert len(results) == 4
        assert sum(len(chunk) for chunk in received) == 4 * 50
        assert all(h.bytes_written == 50 for h in handles)

    async def test_backpressure_keeps_order_with_slow_reader(
        self, storage, mock_minio
    ):
        """Writes beyond the queue bound wait for the reader instead of failing."""
        received: list[bytes] = []
        mock_minio.put_object.side_effect = consuming_put(received, read_size=1)

        handle = await storage.open_write_stream(BUCKET, "a.mp4")
        payload = [f"{i:03d}".encode() for i in range(40)]
        for part in payload:
            await handle.write(part)
        await handle.close()

        assert b"".join(received) == b"".join(payload)
