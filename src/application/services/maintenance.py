"""Operator maintenance actions: purge and stale-upload reconciliation."""

import contextlib
import tempfile
from pathlib import Path

import aiofiles.os

from src.application.dtos.staging import PurgeSummary, ReconcileSummary
from src.application.services.chunk_assembler import (
    CHUNK_ARTIFACT_PREFIX,
    PART_ARTIFACT_PREFIX,
    ChunkAssembler,
)
from src.application.services.progress import RunStateStore, UploadStateStore
from src.application.services.publish_pipeline import PUBLISH_ARTIFACT_PREFIX
from src.application.services.staging_ledger import StagingLedger
from src.application.services.upload_spool import UPLOAD_ARTIFACT_PREFIX
from src.commons.settings.models import Settings
from src.commons.telemetry import get_logger
from src.domain.exceptions import RunAlreadyActiveError
from src.domain.models.staging import StagingStatus

TEMP_ARTIFACT_PREFIXES = (
    CHUNK_ARTIFACT_PREFIX,
    PART_ARTIFACT_PREFIX,
    PUBLISH_ARTIFACT_PREFIX,
    UPLOAD_ARTIFACT_PREFIX,
)


class StagingMaintenanceService:
    """Emergency reset and recovery actions for the staging area.

    Purge always runs; during a drain it spares only the item being
    published and that item's temp copy. Reconcile refuses to run while a
    drain run is active.
    """

    def __init__(
        self,
        ledger: StagingLedger,
        assembler: ChunkAssembler,
        run_state: RunStateStore,
        upload_state: UploadStateStore,
        settings: Settings,
    ) -> None:
        self._ledger = ledger
        self._assembler = assembler
        self._run_state = run_state
        self._upload_state = upload_state
        self._temp_dir = Path(settings.staging.temp_dir or tempfile.gettempdir())
        self._logger = get_logger(__name__)

    def _ensure_idle(self, action: str) -> None:
        if self._run_state.is_running:
            raise RunAlreadyActiveError(self._run_state.get_state(), action=action)

    async def list_temp_artifacts(self) -> list[Path]:
        """Return files in the temp dir that staging created."""
        try:
            names = await aiofiles.os.listdir(self._temp_dir)
        except FileNotFoundError:
            return []
        return sorted(
            self._temp_dir / name
            for name in names
            if name.startswith(TEMP_ARTIFACT_PREFIXES)
        )

    def _in_flight_item_id(self) -> str | None:
        if not self._run_state.is_running:
            return None
        return self._run_state.get_state().current_item_id

    async def purge(self) -> PurgeSummary:
        """Discard chunk sessions, every staging item and leftover temp files.

        Runs even while a drain is active, so a stalled run cannot block the
        reset. The item that run is publishing is kept, with its temp copy.
        """
        kept_id = self._in_flight_item_id()
        kept_prefix = f"{PUBLISH_ARTIFACT_PREFIX}{kept_id}-" if kept_id else None

        sessions = await self._assembler.purge()
        self._upload_state.clear()
        items = await self._ledger.delete_all(keep_ids=[kept_id] if kept_id else [])

        temp_files = 0
        for path in await self.list_temp_artifacts():
            if kept_prefix and path.name.startswith(kept_prefix):
                continue
            with contextlib.suppress(FileNotFoundError):
                await aiofiles.os.remove(path)
                temp_files += 1

        self._logger.warning(
            "Staging purged",
            extra={
                "sessions_discarded": sessions,
                "items_deleted": items,
                "temp_files_deleted": temp_files,
                "kept_item_id": kept_id,
            },
        )
        return PurgeSummary(
            sessions_discarded=sessions,
            items_deleted=items,
            temp_files_deleted=temp_files,
            kept_item_id=kept_id,
        )

    async def reconcile(
        self,
        target: StagingStatus = StagingStatus.PENDING,
    ) -> ReconcileSummary:
        """Reset items left in ``uploading`` by an interrupted run.

        Raises:
            RunAlreadyActiveError: A drain run is active.
            StagingValidationError: ``target`` is not pending or error.
        """
        self._ensure_idle("reconcile staging")
        count = await self._ledger.reset_stale_uploading(target)
        self._logger.info(
            "Stale uploads reset",
            extra={"reset_count": count, "target_status": target.value},
        )
        return ReconcileSummary(reset_count=count, target_status=target)
