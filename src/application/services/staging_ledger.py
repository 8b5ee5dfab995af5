"""Staging ledger: staging item records and their blobs."""

from collections.abc import AsyncIterator, Collection, Iterable
from datetime import UTC, datetime
from pathlib import PurePath
from typing import Any
from uuid import uuid4

from pydantic_core import to_jsonable_python

from src.application.dtos.staging import (
    CreateStagingResult,
    StagingListResult,
    StagingReadStream,
)
from src.application.services.progress import ProgressChannel
from src.application.services.run_log import RunLogService
from src.commons.infrastructure.blob.base import BlobStorageBase
from src.commons.infrastructure.blob.minio_provider import BlobNotFoundError
from src.commons.infrastructure.documentdb.base import DocumentDBBase
from src.commons.settings.models import Settings
from src.commons.telemetry import LogContext, get_logger
from src.domain.exceptions import StagingValidationError
from src.domain.models.run_log import RunLogName
from src.domain.models.staging import (
    PROCESSABLE_STATUSES,
    StagingItem,
    StagingStatus,
)

UNKNOWN_SIZE_PROGRESS = 99.0


def normalize_content_type(content_type: str | None) -> str:
    """Lowercase a MIME type and drop parameters such as charset."""
    return (content_type or "").split(";", 1)[0].strip().lower()


class StagingLedger:
    """Owns staging items and the blob each one references.

    Items are written by intake (whole-file or chunked) and consumed by the
    publish pipeline. Items in ``writing`` are never returned by list or
    queue queries.
    """

    def __init__(
        self,
        blob_storage: BlobStorageBase,
        document_db: DocumentDBBase,
        settings: Settings,
        run_log: RunLogService | None = None,
    ) -> None:
        """Initialize the ledger.

        Args:
            blob_storage: Blob storage holding staged files.
            document_db: Document database holding staging items.
            settings: Application settings.
            run_log: Optional operator log for intake lines.
        """
        self._blob = blob_storage
        self._document_db = document_db
        self._settings = settings
        self._run_log = run_log
        self._logger = get_logger(__name__)

        self._collection = settings.document_db.collections.staging_items
        self._bucket = settings.blob_storage.buckets.staging
        self._allowed_types = set(settings.staging.allowed_content_types)
        self._max_size = settings.staging.max_size_bytes

    def validate_content_type(self, content_type: str | None) -> str:
        """Return the normalized type or raise if it is not allowed."""
        normalized = normalize_content_type(content_type)
        if normalized not in self._allowed_types:
            allowed = ", ".join(sorted(self._allowed_types))
            raise StagingValidationError(
                f"Unsupported content type '{content_type}'. Allowed: {allowed}",
                field="content_type",
            )
        return normalized

    def validate_size(self, size: int) -> None:
        """Raise if a size is negative or above the staging ceiling."""
        if size < 0:
            raise StagingValidationError("Size must not be negative", field="size")
        if size > self._max_size:
            raise StagingValidationError(
                f"File size {size} exceeds the maximum of {self._max_size} bytes",
                field="size",
            )

    async def create_from_stream(
        self,
        stream: AsyncIterator[bytes],
        content_type: str,
        filename: str,
        size: int | None = None,
        external_catalog_id: int | None = None,
        title: str = "",
        poster_path: str | None = None,
        progress: ProgressChannel | None = None,
    ) -> CreateStagingResult:
        """Stream a file into the blob store and record a staging item.

        With a known size the item is created ``pending`` once the blob is
        stored and progress is bytes written over size. With an unknown size
        the item is created ``writing`` up front, progress stays at a 99
        sentinel while bytes flow, and the item moves to ``pending`` once the
        final size is measured and accepted.

        Args:
            stream: Async iterator of file bytes.
            content_type: Declared MIME type.
            filename: Original filename.
            size: Declared size in bytes, if known.
            external_catalog_id: Catalog entry the video belongs to.
            title: Display title.
            poster_path: Catalog poster path.
            progress: Optional channel receiving progress and the final event.

        Returns:
            Staging id, blob reference and measured size.

        Raises:
            StagingValidationError: Bad content type, filename or size.
        """
        channel = progress or ProgressChannel()
        try:
            normalized_type = self.validate_content_type(content_type)
            if not filename or not filename.strip():
                raise StagingValidationError("Filename is required", field="filename")
            if size is not None:
                self.validate_size(size)
        except StagingValidationError as e:
            channel.fail(str(e))
            raise

        item = StagingItem(
            blob_ref=f"{uuid4()}{PurePath(filename).suffix.lower()}",
            filename=filename,
            size=size or 0,
            content_type=normalized_type,
            external_catalog_id=external_catalog_id,
            title=title or "",
            poster_path=poster_path,
            status=StagingStatus.PENDING if size is not None else StagingStatus.WRITING,
        )
        lines = [f"{item.id} Intake started: {filename} ({normalized_type})"]

        with LogContext(staging_id=item.id):
            try:
                result = await self._write(item, stream, size, channel)
                lines.append(f"{item.id} Staged {result.size} bytes as pending")
            except Exception as e:
                lines.append(f"{item.id} Intake failed: {e}")
                channel.fail(str(e))
                raise
            finally:
                if self._run_log is not None:
                    await self._run_log.append(RunLogName.STAGING_UPLOAD, lines)

        channel.complete(result.model_dump())
        return result

    async def _write(
        self,
        item: StagingItem,
        stream: AsyncIterator[bytes],
        size: int | None,
        channel: ProgressChannel,
    ) -> CreateStagingResult:
        size_known = size is not None
        if not size_known:
            await self._document_db.insert(
                self._collection, item.model_dump(mode="json")
            )

        self._logger.info(
            "Writing staging blob",
            extra={
                "blob_ref": item.blob_ref,
                "declared_size": size,
                "content_type": item.content_type,
            },
        )

        handle = await self._blob.open_write_stream(
            self._bucket,
            item.blob_ref,
            content_type=item.content_type,
            metadata={"staging-id": item.id},
        )
        blob_committed = False
        try:
            written = 0
            async for chunk in stream:
                if not chunk:
                    continue
                await handle.write(chunk)
                written += len(chunk)
                if written > self._max_size:
                    raise StagingValidationError(
                        f"File exceeds the maximum of {self._max_size} bytes",
                        field="size",
                    )
                if size_known and size:
                    channel.emit(min(written / size * 100, 100.0))
                else:
                    channel.emit(UNKNOWN_SIZE_PROGRESS)

            await handle.close()
            blob_committed = True

            if size_known:
                final = item.model_copy(update={"size": written})
                await self._document_db.insert(
                    self._collection, final.model_dump(mode="json")
                )
            else:
                await self.update(
                    item.id, {"size": written, "status": StagingStatus.PENDING}
                )
                channel.emit(100.0)
        except Exception as e:
            self._logger.warning(
                "Staging write failed",
                extra={"blob_ref": item.blob_ref, "error": str(e)},
            )
            if blob_committed:
                await self._delete_blob(item.blob_ref)
            else:
                await handle.abort()
            if not size_known:
                await self.update(
                    item.id,
                    {"status": StagingStatus.ERROR, "error_message": str(e)},
                )
            raise

        self._logger.info(
            "Staging item created",
            extra={"blob_ref": item.blob_ref, "size_bytes": written},
        )
        return CreateStagingResult(
            staging_id=item.id, blob_ref=item.blob_ref, size=written
        )

    def _clamp_page(self, limit: int | None, skip: int) -> tuple[int, int]:
        max_limit = self._settings.staging.list_max_limit
        if limit is None:
            limit = self._settings.staging.list_default_limit
        return max(1, min(limit, max_limit)), max(0, skip)

    async def list_items(
        self,
        status: StagingStatus | None = None,
        statuses: Iterable[StagingStatus] | None = None,
        limit: int | None = None,
        skip: int = 0,
    ) -> StagingListResult:
        """List staging items newest-first with the total count.

        ``status`` and ``statuses`` combine into one set; ``writing`` is
        always excluded.
        """
        limit, skip = self._clamp_page(limit, skip)

        wanted: set[StagingStatus] = set(statuses or [])
        if status is not None:
            wanted.add(status)

        filters: dict[str, Any]
        if wanted:
            visible = sorted(s.value for s in wanted if s != StagingStatus.WRITING)
            if not visible:
                return StagingListResult(items=[], total=0, limit=limit, skip=skip)
            filters = {"status": {"$in": visible}}
        else:
            filters = {"status": {"$ne": StagingStatus.WRITING.value}}

        docs = await self._document_db.find(
            self._collection,
            filters,
            skip=skip,
            limit=limit,
            sort=[("created_at", -1)],
        )
        total = await self._document_db.count(self._collection, filters)
        return StagingListResult(
            items=[StagingItem.model_validate(doc) for doc in docs],
            total=total,
            limit=limit,
            skip=skip,
        )

    async def list_processable(self, limit: int) -> list[StagingItem]:
        """Return items a drain run may pick up, oldest first."""
        docs = await self._document_db.find(
            self._collection,
            {"status": {"$in": sorted(s.value for s in PROCESSABLE_STATUSES)}},
            limit=limit,
            sort=[("created_at", 1)],
        )
        return [StagingItem.model_validate(doc) for doc in docs]

    async def get(self, staging_id: str) -> StagingItem | None:
        """Get a staging item by id."""
        doc = await self._document_db.find_by_id(self._collection, staging_id)
        return StagingItem.model_validate(doc) if doc else None

    async def update(self, staging_id: str, fields: dict[str, Any]) -> bool:
        """Set fields on an item and bump ``updated_at``.

        Returns:
            False if the item does not exist.
        """
        updates = {k: v for k, v in fields.items() if k not in ("id", "created_at")}
        updates["updated_at"] = datetime.now(UTC)
        return await self._document_db.update(
            self._collection, staging_id, to_jsonable_python(updates)
        )

    async def save_status(self, item: StagingItem) -> bool:
        """Persist the status and error message of an item snapshot."""
        return await self.update(
            item.id, {"status": item.status, "error_message": item.error_message}
        )

    async def _delete_blob(self, blob_ref: str) -> None:
        try:
            await self._blob.delete(self._bucket, blob_ref)
        except BlobNotFoundError:
            self._logger.debug("Blob already gone", extra={"blob_ref": blob_ref})

    async def delete(self, staging_id: str) -> bool:
        """Delete an item and its blob.

        A missing blob is not an error. Deleting an unknown id is a no-op.

        Returns:
            True if the item existed.
        """
        item = await self.get(staging_id)
        if item is None:
            return False

        await self._delete_blob(item.blob_ref)
        deleted = await self._document_db.delete(self._collection, staging_id)
        self._logger.info(
            "Staging item deleted",
            extra={"staging_id": staging_id, "blob_ref": item.blob_ref},
        )
        return deleted

    async def open_read_stream(self, staging_id: str) -> StagingReadStream | None:
        """Open the item's blob for reading.

        Returns:
            The stream with content type and filename, or None if the item
            or its blob is missing.
        """
        item = await self.get(staging_id)
        if item is None:
            return None
        if not await self._blob.exists(self._bucket, item.blob_ref):
            self._logger.warning(
                "Staging blob missing",
                extra={"staging_id": staging_id, "blob_ref": item.blob_ref},
            )
            return None

        return StagingReadStream(
            stream=self._blob.download_stream(
                self._bucket,
                item.blob_ref,
                chunk_size=self._settings.blob_storage.stream_chunk_bytes,
            ),
            content_type=item.content_type,
            filename=item.filename,
            size=item.size,
        )

    async def delete_all(self, keep_ids: Collection[str] = ()) -> int:
        """Delete every item, including ones still ``writing``.

        Args:
            keep_ids: Items to leave in place.

        Returns:
            Count of deleted items.
        """
        keep = set(keep_ids)
        deleted = 0
        while True:
            # A page larger than the kept set always holds a deletable item
            docs = await self._document_db.find(
                self._collection, {}, limit=100 + len(keep)
            )
            targets = [doc["id"] for doc in docs if doc["id"] not in keep]
            if not targets:
                return deleted
            for staging_id in targets:
                if await self.delete(staging_id):
                    deleted += 1

    async def reset_stale_uploading(
        self,
        target: StagingStatus = StagingStatus.PENDING,
    ) -> int:
        """Move every ``uploading`` item to ``target``.

        Returns:
            Number of items reset.
        """
        if target not in (StagingStatus.PENDING, StagingStatus.ERROR):
            raise StagingValidationError(
                "Stale uploads can only be reset to pending or error",
                field="target",
            )
        message = None
        if target == StagingStatus.ERROR:
            message = "Reset after an interrupted upload"
        return await self._document_db.update_many(
            self._collection,
            {"status": StagingStatus.UPLOADING.value},
            to_jsonable_python(
                {
                    "status": target,
                    "error_message": message,
                    "updated_at": datetime.now(UTC),
                }
            ),
        )
