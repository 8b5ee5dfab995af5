"""Shared fixtures and in-memory fakes for unit tests."""

import copy
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from src.commons.infrastructure.blob.base import (
    BlobMetadata,
    BlobStorageBase,
    BlobWriteHandle,
    HealthStatus,
)
from src.commons.infrastructure.blob.minio_provider import (
    BlobNotFoundError,
    BlobWriteError,
)
from src.commons.infrastructure.documentdb.base import DocumentDBBase
from src.commons.settings.models import (
    BlobStorageSettings,
    Settings,
    StagingSettings,
)
from src.domain.models import QuotaInfo, SlugReadiness
from src.infrastructure.video_host.base import UploadResult, VideoHostBase


def _matches(doc: dict[str, Any], filters: dict[str, Any]) -> bool:
    for key, expected in filters.items():
        value = doc.get(key)
        if isinstance(expected, dict):
            if "$in" in expected and value not in expected["$in"]:
                return False
            if "$ne" in expected and value == expected["$ne"]:
                return False
        elif value != expected:
            return False
    return True


class InMemoryDocumentDB(DocumentDBBase):
    """Dict-backed document store supporting the filters the services use."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.indexes: list[tuple[str, list[tuple[str, int]]]] = []
        self.fail_inserts_for: set[str] = set()

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self.collections.setdefault(name, {})

    def all(self, collection: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(d) for d in self._collection(collection).values()]

    async def insert(self, collection: str, document: dict[str, Any]) -> str:
        if collection in self.fail_inserts_for:
            raise RuntimeError(f"insert into {collection} failed")
        doc = copy.deepcopy(document)
        self._collection(collection)[doc["id"]] = doc
        return str(doc["id"])

    async def find_by_id(
        self, collection: str, document_id: str
    ) -> dict[str, Any] | None:
        doc = self._collection(collection).get(document_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find(
        self,
        collection: str,
        filters: dict[str, Any],
        skip: int = 0,
        limit: int = 100,
        sort: list[tuple[str, int]] | None = None,
    ) -> list[dict[str, Any]]:
        docs = [
            d for d in self._collection(collection).values() if _matches(d, filters)
        ]
        for field, direction in reversed(sort or []):
            docs.sort(key=lambda d: d.get(field) or "", reverse=direction < 0)
        return [copy.deepcopy(d) for d in docs[skip : skip + limit]]

    async def update(
        self, collection: str, document_id: str, updates: dict[str, Any]
    ) -> bool:
        doc = self._collection(collection).get(document_id)
        if doc is None:
            return False
        doc.update({k: v for k, v in updates.items() if k not in ("id", "_id")})
        return True

    async def update_many(
        self, collection: str, filters: dict[str, Any], updates: dict[str, Any]
    ) -> int:
        count = 0
        for doc in self._collection(collection).values():
            if _matches(doc, filters):
                doc.update(updates)
                count += 1
        return count

    async def upsert(
        self, collection: str, document_id: str, fields: dict[str, Any]
    ) -> None:
        doc = self._collection(collection).setdefault(document_id, {"id": document_id})
        doc.update(copy.deepcopy(fields))

    async def delete(self, collection: str, document_id: str) -> bool:
        return self._collection(collection).pop(document_id, None) is not None

    async def delete_by_ids(self, collection: str, document_ids: list[str]) -> int:
        return sum([await self.delete(collection, i) for i in document_ids])

    async def count(
        self, collection: str, filters: dict[str, Any] | None = None
    ) -> int:
        docs = self._collection(collection).values()
        return len([d for d in docs if _matches(d, filters or {})])

    async def create_index(
        self,
        collection: str,
        fields: list[tuple[str, int]],
        unique: bool = False,
        name: str | None = None,
    ) -> str:
        self.indexes.append((collection, fields))
        return name or "_".join(f"{f}_{d}" for f, d in fields)

    async def health_check(self) -> HealthStatus:
        return HealthStatus(healthy=True, latency_ms=0.1)


class InMemoryWriteHandle(BlobWriteHandle):
    """Write handle committing into an InMemoryBlobStorage on close."""

    def __init__(
        self,
        storage: "InMemoryBlobStorage",
        bucket: str,
        path: str,
        content_type: str,
    ) -> None:
        self._storage = storage
        self._bucket = bucket
        self._path = path
        self._content_type = content_type
        self._buffer = bytearray()
        self.aborted = False
        self.closed = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def bytes_written(self) -> int:
        return len(self._buffer)

    async def write(self, data: bytes) -> None:
        limit = self._storage.fail_after_bytes
        if limit is not None and len(self._buffer) + len(data) > limit:
            raise BlobWriteError(
                self._bucket, self._path, "simulated write failure"
            )
        self._buffer.extend(data)

    async def close(self) -> BlobMetadata:
        self.closed = True
        self._storage.blobs[(self._bucket, self._path)] = bytes(self._buffer)
        return BlobMetadata(
            path=self._path,
            size_bytes=len(self._buffer),
            content_type=self._content_type,
            created_at=datetime.now(UTC),
            etag="etag",
        )

    async def abort(self) -> None:
        self.aborted = True
        self._buffer.clear()


class InMemoryBlobStorage(BlobStorageBase):
    """Dict-backed blob store."""

    def __init__(self) -> None:
        self.blobs: dict[tuple[str, str], bytes] = {}
        self.buckets: set[str] = set()
        self.handles: list[InMemoryWriteHandle] = []
        self.fail_after_bytes: int | None = None

    async def open_write_stream(
        self,
        bucket: str,
        path: str,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> BlobWriteHandle:
        handle = InMemoryWriteHandle(self, bucket, path, content_type)
        self.handles.append(handle)
        return handle

    async def download_stream(
        self,
        bucket: str,
        path: str,
        chunk_size: int = 8192,
    ) -> AsyncIterator[bytes]:
        if (bucket, path) not in self.blobs:
            raise BlobNotFoundError(bucket, path)
        data = self.blobs[(bucket, path)]
        for start in range(0, len(data), chunk_size):
            yield data[start : start + chunk_size]

    async def delete(self, bucket: str, path: str) -> bool:
        return self.blobs.pop((bucket, path), None) is not None

    async def exists(self, bucket: str, path: str) -> bool:
        return (bucket, path) in self.blobs

    async def get_metadata(self, bucket: str, path: str) -> BlobMetadata:
        if (bucket, path) not in self.blobs:
            raise BlobNotFoundError(bucket, path)
        return BlobMetadata(
            path=path,
            size_bytes=len(self.blobs[(bucket, path)]),
            content_type="video/mp4",
            created_at=datetime.now(UTC),
            etag="etag",
        )

    async def create_bucket(self, bucket: str) -> bool:
        created = bucket not in self.buckets
        self.buckets.add(bucket)
        return created

    async def health_check(self) -> HealthStatus:
        return HealthStatus(healthy=True, latency_ms=0.1)


class FakeVideoHost(VideoHostBase):
    """Scriptable video host.

    ``upload_errors`` maps filenames to the error their upload raises.
    """

    def __init__(self) -> None:
        self.quota = QuotaInfo()
        self.account: dict[str, Any] = {"data": {"email": "ops@example.com"}}
        self.slug_status = SlugReadiness.NOT_READY
        self.slug_statuses: dict[str, SlugReadiness] = {}
        self.upload_errors: dict[str, Exception] = {}
        self.uploads: list[dict[str, Any]] = []
        self.quota_calls = 0

    async def get_account_info(self) -> dict[str, Any]:
        return self.account

    async def get_quota(self) -> QuotaInfo:
        self.quota_calls += 1
        return self.quota

    async def upload(
        self,
        path: Path,
        filename: str,
        content_type: str,
        size: int,
    ) -> UploadResult:
        if filename in self.upload_errors:
            raise self.upload_errors[filename]
        data = Path(path).read_bytes()
        slug = f"slug-{len(self.uploads) + 1}"
        self.uploads.append(
            {
                "path": Path(path),
                "filename": filename,
                "content_type": content_type,
                "size": size,
                "data": data,
                "slug": slug,
            }
        )
        return UploadResult(slug=slug, raw={"status": True, "slug": slug})

    async def get_slug_status(self, slug: str) -> SlugReadiness:
        if slug in self.slug_statuses:
            return self.slug_statuses[slug]
        return self.slug_status

    async def health_check(self) -> HealthStatus:
        return HealthStatus(healthy=True, latency_ms=0.1)

    async def close(self) -> None:
        return None


async def stream_bytes(data: bytes, piece: int = 4) -> AsyncIterator[bytes]:
    """Yield ``data`` in small pieces, like a request body."""
    for start in range(0, len(data), piece):
        yield data[start : start + piece]


@pytest.fixture
def make_stream():
    """Factory for async byte streams."""
    return stream_bytes


@pytest.fixture
def settings(tmp_path):
    """Real settings with small limits and a private temp dir."""
    return Settings(
        blob_storage=BlobStorageSettings(stream_chunk_bytes=8192),
        staging=StagingSettings(
            max_size_bytes=1024,
            chunk_max_bytes=64,
            temp_dir=str(tmp_path),
            process_batch_limit=100,
            log_entry_limit=5,
        ),
    )


@pytest.fixture
def document_db():
    return InMemoryDocumentDB()


@pytest.fixture
def blob_storage():
    return InMemoryBlobStorage()


@pytest.fixture
def video_host():
    return FakeVideoHost()


@pytest.fixture
def run_log(document_db, settings):
    from src.application.services.run_log import RunLogService

    return RunLogService(document_db=document_db, settings=settings)


@pytest.fixture
def ledger(blob_storage, document_db, settings, run_log):
    from src.application.services.staging_ledger import StagingLedger

    return StagingLedger(
        blob_storage=blob_storage,
        document_db=document_db,
        settings=settings,
        run_log=run_log,
    )


@pytest.fixture
def run_state():
    from src.application.services.progress import RunStateStore

    return RunStateStore()


@pytest.fixture
def upload_state():
    from src.application.services.progress import UploadStateStore

    return UploadStateStore()


@pytest.fixture
def assembler(ledger, upload_state, settings):
    from src.application.services.chunk_assembler import ChunkAssembler

    return ChunkAssembler(ledger=ledger, upload_state=upload_state, settings=settings)


@pytest.fixture
def published_service(document_db, video_host, settings):
    from src.application.services.published import PublishedRecordService

    return PublishedRecordService(
        document_db=document_db, video_host=video_host, settings=settings
    )


@pytest.fixture
def pipeline(ledger, video_host, published_service, settings):
    from src.application.services.publish_pipeline import PublishPipeline

    return PublishPipeline(
        ledger=ledger,
        video_host=video_host,
        published=published_service,
        settings=settings,
    )


@pytest.fixture
def controller(ledger, pipeline, run_state, run_log, settings):
    from src.application.services.run_controller import RunController

    return RunController(
        ledger=ledger,
        pipeline=pipeline,
        run_state=run_state,
        run_log=run_log,
        settings=settings,
    )
