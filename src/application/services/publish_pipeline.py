"""Publishing of one staging item to the video host."""

import contextlib
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path, PurePath
from uuid import uuid4

import aiofiles
import aiofiles.os

from src.application.dtos.staging import PublishOutcome, PublishOutcomeKind
from src.application.services.published import PublishedRecordService
from src.application.services.staging_ledger import StagingLedger
from src.commons.settings.models import Settings
from src.commons.telemetry import LogContext, get_logger
from src.domain.models.published import PublishedRecord
from src.domain.models.staging import StagingItem, StagingStatus
from src.infrastructure.video_host.base import VideoHostBase

PUBLISH_ARTIFACT_PREFIX = "staging-publish-"
STREAM_UNAVAILABLE_MESSAGE = "Could not open staging stream"
NO_LONGER_STAGED_MESSAGE = "Item is no longer staged"


class PublishPipeline:
    """Moves exactly one staging item to the video host.

    Steps: quota check, mark uploading, copy the blob to a private temp
    file (the host needs a known length), upload, fetch slug readiness,
    create the published record, delete the staging item. Every failure
    is turned into an item status and an outcome; nothing is raised to the
    caller. The temp file is always removed.
    """

    def __init__(
        self,
        ledger: StagingLedger,
        video_host: VideoHostBase,
        published: PublishedRecordService,
        settings: Settings,
    ) -> None:
        """Initialize the pipeline.

        Args:
            ledger: Staging ledger owning the items.
            video_host: Client for the external video host.
            published: Service storing published records.
            settings: Application settings.
        """
        self._ledger = ledger
        self._host = video_host
        self._published = published
        self._temp_dir = Path(settings.staging.temp_dir or tempfile.gettempdir())
        self._logger = get_logger(__name__)

    def _temp_path(self, item: StagingItem) -> Path:
        suffix = PurePath(item.filename).suffix.lower() or ".mp4"
        name = f"{PUBLISH_ARTIFACT_PREFIX}{item.id}-{uuid4().hex}{suffix}"
        return self._temp_dir / name

    async def _materialize(self, stream: AsyncIterator[bytes], path: Path) -> int:
        """Copy a stream into a local file and return its size."""
        size = 0
        try:
            async with aiofiles.open(path, "wb") as out:
                async for chunk in stream:
                    await out.write(chunk)
                    size += len(chunk)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return size

    async def _remove_temp(self, path: Path) -> None:
        with contextlib.suppress(FileNotFoundError):
            await aiofiles.os.remove(path)

    async def _mark_failed(self, item: StagingItem, message: str) -> None:
        try:
            await self._ledger.save_status(item.mark_failed(message))
        except Exception as e:
            self._logger.error(
                "Could not record item failure",
                extra={"error": str(e), "original_error": message},
            )

    async def publish(
        self,
        item: StagingItem,
        log_lines: list[str] | None = None,
    ) -> PublishOutcome:
        """Publish one item.

        Args:
            item: Item to publish, as loaded by the run controller.
            log_lines: Optional run log receiving one line per step.

        Returns:
            PUBLISHED, FAILED, SKIPPED when the item was removed or changed
            since the run loaded it, or QUOTA_STOPPED when the host quota is
            spent and the whole run should stop.
        """
        lines = log_lines if log_lines is not None else []
        sid = item.id

        with LogContext(staging_id=sid):
            current = item
            try:
                # Purge or delete may have removed it since the run loaded it
                stored = await self._ledger.get(sid)
                if stored is None or not stored.is_processable:
                    lines.append(f"{sid} {NO_LONGER_STAGED_MESSAGE}, skipped")
                    self._logger.info("Item skipped, no longer staged")
                    return PublishOutcome(
                        kind=PublishOutcomeKind.SKIPPED,
                        staging_id=sid,
                        status=stored.status if stored else None,
                        message=NO_LONGER_STAGED_MESSAGE,
                    )
                current = stored

                lines.append(f"{sid} Checking host quota")
                quota = await self._host.get_quota()
                exhausted = quota.exhaustion_for(current.size)
                if exhausted is not None:
                    message = f"Quota check failed: {exhausted.value}"
                    lines.append(f"{sid} {message}")
                    self._logger.warning(
                        "Host quota exhausted",
                        extra={
                            "quota_status": exhausted.value,
                            "size_bytes": current.size,
                        },
                    )
                    await self._ledger.save_status(
                        current.mark_failed(message, exhausted)
                    )
                    return PublishOutcome(
                        kind=PublishOutcomeKind.QUOTA_STOPPED,
                        staging_id=sid,
                        status=exhausted,
                        message=message,
                    )

                lines.append(f"{sid} Opening staging stream")
                await self._ledger.save_status(
                    current.transition_to(StagingStatus.UPLOADING)
                )
                source = await self._ledger.open_read_stream(sid)
                if source is None:
                    lines.append(f"{sid} {STREAM_UNAVAILABLE_MESSAGE}")
                    await self._mark_failed(current, STREAM_UNAVAILABLE_MESSAGE)
                    return PublishOutcome(
                        kind=PublishOutcomeKind.FAILED,
                        staging_id=sid,
                        status=StagingStatus.ERROR,
                        message=STREAM_UNAVAILABLE_MESSAGE,
                    )

                temp_path = self._temp_path(current)
                lines.append(f"{sid} Writing to temp file, then uploading")
                try:
                    size = await self._materialize(source.stream, temp_path)
                    upload = await self._host.upload(
                        temp_path,
                        filename=source.filename,
                        content_type=source.content_type,
                        size=size,
                    )
                finally:
                    await self._remove_temp(temp_path)
                slug = upload.slug
                lines.append(f"{sid} Upload OK, slug: {slug}")

                lines.append(f"{sid} Fetching slug status")
                readiness = await self._host.get_slug_status(slug)
                await self._published.create(
                    PublishedRecord(
                        external_catalog_id=current.external_catalog_id,
                        title=current.title,
                        poster_path=current.poster_path,
                        external_slug=slug,
                        slug_readiness=readiness,
                        filename=current.filename,
                        size=size,
                    )
                )
                lines.append(f"{sid} Published record created, slug: {slug}")

                await self._ledger.update(
                    sid,
                    {"status": StagingStatus(readiness.value), "external_slug": slug},
                )
                await self._ledger.delete(sid)
                lines.append(f"{sid} Staging item deleted")
            except Exception as e:
                message = str(e) or type(e).__name__
                lines.append(f"{sid} Error: {message}")
                self._logger.error(
                    "Publish failed", extra={"error": message}, exc_info=True
                )
                await self._mark_failed(current, message)
                return PublishOutcome(
                    kind=PublishOutcomeKind.FAILED,
                    staging_id=sid,
                    status=StagingStatus.ERROR,
                    message=message,
                )

        self._logger.info("Item published", extra={"slug": slug, "size_bytes": size})
        return PublishOutcome(
            kind=PublishOutcomeKind.PUBLISHED,
            staging_id=sid,
            status=StagingStatus(readiness.value),
            slug=slug,
        )
