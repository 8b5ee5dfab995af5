"""Published record storage and readiness sync."""

from datetime import UTC, datetime
from typing import Any

from pydantic_core import to_jsonable_python

from src.application.dtos.published import PublishedListResult, ReadinessSyncSummary
from src.commons.infrastructure.documentdb.base import DocumentDBBase
from src.commons.settings.models import Settings
from src.commons.telemetry import get_logger, log_exceptions
from src.domain.exceptions import PublishedRecordNotFoundError, StagingValidationError
from src.domain.models.published import PublishedRecord, SlugReadiness
from src.infrastructure.video_host.base import VideoHostBase

_MAPPING_FIELDS = ("external_catalog_id", "title", "poster_path")


class PublishedRecordService:
    """Stores published records and refreshes their slug readiness."""

    def __init__(
        self,
        document_db: DocumentDBBase,
        video_host: VideoHostBase,
        settings: Settings,
    ) -> None:
        self._document_db = document_db
        self._host = video_host
        self._settings = settings
        self._collection = settings.document_db.collections.published_records
        self._logger = get_logger(__name__)

    async def create(self, record: PublishedRecord) -> PublishedRecord:
        """Persist a new record."""
        await self._document_db.insert(self._collection, record.model_dump(mode="json"))
        self._logger.info(
            "Published record created",
            extra={
                "record_id": record.id,
                "slug": record.external_slug,
                "slug_readiness": record.slug_readiness.value,
            },
        )
        return record

    async def get(self, record_id: str) -> PublishedRecord | None:
        doc = await self._document_db.find_by_id(self._collection, record_id)
        return PublishedRecord.model_validate(doc) if doc else None

    async def list_records(
        self,
        slug_readiness: SlugReadiness | None = None,
        limit: int | None = None,
        skip: int = 0,
    ) -> PublishedListResult:
        """List records newest-first with the total count."""
        staging = self._settings.staging
        limit = max(1, min(limit or staging.list_default_limit, staging.list_max_limit))
        skip = max(0, skip)

        filters: dict[str, Any] = {}
        if slug_readiness is not None:
            filters["slug_readiness"] = slug_readiness.value

        docs = await self._document_db.find(
            self._collection,
            filters,
            skip=skip,
            limit=limit,
            sort=[("created_at", -1)],
        )
        total = await self._document_db.count(self._collection, filters)
        return PublishedListResult(
            items=[PublishedRecord.model_validate(doc) for doc in docs],
            total=total,
            limit=limit,
            skip=skip,
        )

    async def update_mapping(
        self,
        record_id: str,
        fields: dict[str, Any],
    ) -> PublishedRecord:
        """Change the catalog mapping of a record.

        Args:
            record_id: Record to change.
            fields: Any of external_catalog_id, title, poster_path.

        Returns:
            The updated record.

        Raises:
            StagingValidationError: No mapping field given or a bad catalog id.
            PublishedRecordNotFoundError: Unknown record id.
        """
        updates = {k: v for k, v in fields.items() if k in _MAPPING_FIELDS}
        if not updates:
            raise StagingValidationError(
                "At least one of external_catalog_id, title, poster_path is required"
            )
        catalog_id = updates.get("external_catalog_id")
        if catalog_id is not None and catalog_id <= 0:
            raise StagingValidationError(
                "external_catalog_id must be a positive integer or null",
                field="external_catalog_id",
            )
        if "title" in updates and updates["title"] is None:
            updates["title"] = ""

        updates["updated_at"] = datetime.now(UTC)
        found = await self._document_db.update(
            self._collection, record_id, to_jsonable_python(updates)
        )
        if not found:
            raise PublishedRecordNotFoundError(record_id)

        record = await self.get(record_id)
        if record is None:
            raise PublishedRecordNotFoundError(record_id)
        return record

    @log_exceptions(message="Readiness sync aborted")
    async def sync_readiness(self) -> ReadinessSyncSummary:
        """Ask the host about every not-ready record and flip ready ones.

        A failure for one record is logged and does not stop the pass.
        """
        summary = ReadinessSyncSummary()
        skip = 0
        while True:
            docs = await self._document_db.find(
                self._collection,
                {"slug_readiness": SlugReadiness.NOT_READY.value},
                skip=skip,
                limit=100,
                sort=[("created_at", 1)],
            )
            if not docs:
                break
            for doc in docs:
                record = PublishedRecord.model_validate(doc)
                summary.checked += 1
                try:
                    readiness = await self._host.get_slug_status(record.external_slug)
                    if readiness != SlugReadiness.READY:
                        skip += 1
                        continue
                    ready = record.mark_ready()
                    await self._document_db.update(
                        self._collection,
                        record.id,
                        to_jsonable_python(
                            {
                                "slug_readiness": ready.slug_readiness,
                                "updated_at": ready.updated_at,
                            }
                        ),
                    )
                    summary.became_ready += 1
                except Exception as e:
                    skip += 1
                    summary.failed += 1
                    self._logger.warning(
                        "Readiness check failed",
                        extra={"record_id": record.id, "error": str(e)},
                    )

        self._logger.info(
            "Readiness sync finished",
            extra={
                "checked": summary.checked,
                "became_ready": summary.became_ready,
                "failed": summary.failed,
            },
        )
        return summary
