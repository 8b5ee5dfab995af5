"""In-memory progress state and progress event channels.

The stores are created once per process by the infrastructure factory and
injected wherever they are needed; tests build their own. Nothing here is
persisted, so a restart resets both stores to empty.
"""

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from src.application.dtos.staging import ProgressEvent, ProgressEventKind
from src.commons.telemetry import get_logger
from src.domain.models.progress import (
    RunItemSnapshot,
    RunState,
    UploadPhase,
    UploadState,
)
from src.domain.models.staging import StagingItem

logger = get_logger(__name__)

ProgressObserver = Callable[[ProgressEvent], None]


class ProgressChannel:
    """Observer channel for the progress of one long operation.

    Emits zero or more progress events with non-decreasing percentages,
    then exactly one terminal event. Anything emitted after the terminal
    event is dropped.
    """

    def __init__(self) -> None:
        self._observers: list[ProgressObserver] = []
        self._percent = 0.0
        self._terminal: ProgressEvent | None = None

    @property
    def percent(self) -> float:
        return self._percent

    @property
    def is_finished(self) -> bool:
        return self._terminal is not None

    @property
    def terminal_event(self) -> ProgressEvent | None:
        return self._terminal

    def subscribe(self, observer: ProgressObserver) -> None:
        """Register an observer for subsequent events."""
        self._observers.append(observer)

    def _publish(self, event: ProgressEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("Progress observer failed")

    def emit(self, percent: float) -> None:
        """Emit a progress event, clamped to 0..100 and never moving back."""
        if self._terminal is not None:
            return
        clamped = min(max(float(percent), 0.0), 100.0)
        if clamped < self._percent:
            return
        self._percent = clamped
        self._publish(ProgressEvent(kind=ProgressEventKind.PROGRESS, percent=clamped))

    def complete(self, result: dict[str, Any] | None = None) -> None:
        """Emit the terminal success event."""
        if self._terminal is not None:
            return
        self._percent = 100.0
        self._terminal = ProgressEvent(
            kind=ProgressEventKind.DONE, percent=100.0, result=result
        )
        self._publish(self._terminal)

    def fail(self, message: str) -> None:
        """Emit the terminal error event."""
        if self._terminal is not None:
            return
        self._terminal = ProgressEvent(
            kind=ProgressEventKind.ERROR, percent=self._percent, message=message
        )
        self._publish(self._terminal)


class RunStateStore:
    """Owner of the single drain-run slot.

    ``try_start_run`` is synchronous: the check and the set happen without
    a suspension point in between, which is what makes it a mutual
    exclusion gate on a single event loop.
    """

    def __init__(self) -> None:
        self._state = RunState()

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    def try_start_run(self, candidates: Sequence[StagingItem]) -> bool:
        """Claim the run slot for the given candidates.

        Returns:
            False if a run already holds the slot, True otherwise.
        """
        if self._state.is_running:
            return False
        self._state = RunState(
            is_running=True,
            started_at=datetime.now(UTC),
            total_items=len(candidates),
            processed_count=0,
            failed_count=0,
            current_item_id=None,
            snapshot_items=[
                RunItemSnapshot(id=item.id, title=item.title, filename=item.filename)
                for item in candidates
            ],
        )
        return True

    def update_progress(
        self,
        processed: int,
        failed: int,
        current_item_id: str | None = None,
    ) -> None:
        """Record counters and the item being worked on."""
        self._state = self._state.model_copy(
            update={
                "processed_count": processed,
                "failed_count": failed,
                "current_item_id": current_item_id,
            }
        )

    def end_run(self) -> None:
        """Release the slot, keeping the last run's counters and snapshot."""
        self._state = self._state.model_copy(
            update={"is_running": False, "current_item_id": None}
        )

    def get_state(self) -> RunState:
        """Return a snapshot that later updates do not touch."""
        return self._state.model_copy(deep=True)


class UploadStateStore:
    """Tracks the most recent chunked upload in a single slot."""

    def __init__(self) -> None:
        self._state = UploadState()

    def _update(self, **fields: Any) -> None:
        self._state = self._state.model_copy(update=fields)

    def record_chunk(
        self,
        upload_id: str,
        chunks_received: int,
        total_chunks: int,
    ) -> None:
        """Record a received chunk; a new upload id takes over the slot."""
        percent = min(chunks_received / total_chunks * 100, 100.0)
        if self._state.upload_id != upload_id:
            self._state = UploadState(upload_id=upload_id)
        self._update(
            phase=UploadPhase.UPLOADING,
            total_chunks=total_chunks,
            chunks_received=chunks_received,
            send_progress_percent=round(percent, 2),
            error_message=None,
        )

    def start_writing(self, upload_id: str) -> None:
        """Mark the assembled file as streaming into the ledger."""
        if self._state.upload_id != upload_id:
            self._state = UploadState(upload_id=upload_id)
        self._update(
            phase=UploadPhase.WRITING,
            send_progress_percent=100.0,
            db_write_progress_percent=0.0,
        )

    def set_write_progress(self, upload_id: str, percent: float) -> None:
        """Update the ledger write percentage for the current upload."""
        if self._state.upload_id != upload_id:
            return
        clamped = min(max(percent, 0.0), 100.0)
        if clamped >= self._state.db_write_progress_percent:
            self._update(db_write_progress_percent=clamped)

    def finish(self, upload_id: str, staging_id: str) -> None:
        """Mark the upload done with the created staging id."""
        if self._state.upload_id != upload_id:
            self._state = UploadState(upload_id=upload_id)
        self._update(
            phase=UploadPhase.DONE,
            db_write_progress_percent=100.0,
            result_staging_id=staging_id,
            error_message=None,
        )

    def fail(self, upload_id: str, message: str) -> None:
        """Mark the upload failed."""
        if self._state.upload_id != upload_id:
            self._state = UploadState(upload_id=upload_id)
        self._update(phase=UploadPhase.ERROR, error_message=message)

    def clear(self) -> None:
        """Reset the slot to empty."""
        self._state = UploadState()

    def get_state(self) -> UploadState:
        """Return a snapshot of the current upload."""
        return self._state.model_copy(deep=True)
