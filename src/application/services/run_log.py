"""Capped operator log persisted in the document store."""

from src.commons.infrastructure.documentdb.base import DocumentDBBase
from src.commons.settings.models import Settings
from src.commons.telemetry import get_logger
from src.domain.models.run_log import RunLogEntry, RunLogName


class RunLogService:
    """Appends operator-facing log entries and keeps only the newest ones.

    Writing a log entry never fails the operation being logged: store
    errors are reported through the application logger instead.
    """

    def __init__(self, document_db: DocumentDBBase, settings: Settings) -> None:
        self._document_db = document_db
        self._collection = settings.document_db.collections.process_logs
        self._limit = settings.staging.log_entry_limit
        self._logger = get_logger(__name__)

    async def append(
        self,
        log_name: RunLogName,
        lines: list[str],
    ) -> RunLogEntry | None:
        """Persist one entry and trim the collection to the configured size.

        Returns:
            The stored entry, or None when there was nothing to store or the
            store rejected it.
        """
        if not lines:
            return None

        entry = RunLogEntry(log_name=log_name, lines=list(lines))
        try:
            await self._document_db.insert(
                self._collection, entry.model_dump(mode="json")
            )
            await self._trim()
        except Exception as e:
            self._logger.warning(
                "Failed to persist run log entry",
                extra={"log_name": log_name.value, "error": str(e)},
            )
            return None
        return entry

    async def _trim(self) -> None:
        total = await self._document_db.count(self._collection, {})
        excess = total - self._limit
        if excess <= 0:
            return
        oldest = await self._document_db.find(
            self._collection,
            {},
            limit=excess,
            sort=[("logged_at", 1)],
        )
        await self._document_db.delete_by_ids(
            self._collection, [doc["id"] for doc in oldest]
        )

    async def recent(
        self,
        log_name: RunLogName | None = None,
        limit: int = 20,
    ) -> list[RunLogEntry]:
        """Return entries newest-first."""
        filters = {"log_name": log_name.value} if log_name else {}
        docs = await self._document_db.find(
            self._collection,
            filters,
            limit=max(1, min(limit, self._limit)),
            sort=[("logged_at", -1)],
        )
        return [RunLogEntry.model_validate(doc) for doc in docs]
