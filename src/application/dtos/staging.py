"""DTOs for staging intake and publishing operations."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.domain.models.progress import RunState
from src.domain.models.staging import StagingItem, StagingStatus


class ProgressEventKind(str, Enum):
    """Kind of event emitted on a progress channel."""

    PROGRESS = "progress"
    DONE = "done"
    ERROR = "error"


class ProgressEvent(BaseModel):
    """One event on a progress channel."""

    kind: ProgressEventKind
    percent: float = Field(ge=0.0, le=100.0)
    result: dict[str, Any] | None = None
    message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind != ProgressEventKind.PROGRESS


class IntakeMetadata(BaseModel):
    """Descriptive data supplied with an uploaded video."""

    filename: str = Field(min_length=1)
    content_type: str = Field(min_length=1)
    external_catalog_id: int | None = None
    title: str = ""
    poster_path: str | None = None


class CreateStagingResult(BaseModel):
    """Result of writing a new staging item."""

    staging_id: str
    blob_ref: str
    size: int = Field(ge=0)


@dataclass
class StagingReadStream:
    """Open read stream over a staged blob."""

    stream: AsyncIterator[bytes]
    content_type: str
    filename: str
    size: int


class StagingListResult(BaseModel):
    """Page of staging items plus the unpaginated total."""

    items: list[StagingItem]
    total: int = Field(ge=0)
    limit: int = Field(ge=1)
    skip: int = Field(ge=0)


class ChunkReceipt(BaseModel):
    """Acknowledgement for one received chunk."""

    upload_id: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    duplicate: bool = Field(
        default=False,
        description="The chunk had already been received",
    )
    complete: bool = False
    staging_id: str | None = None
    size: int | None = None


class PublishOutcomeKind(str, Enum):
    """How one publish attempt ended."""

    PUBLISHED = "published"
    FAILED = "failed"
    QUOTA_STOPPED = "quota_stopped"
    SKIPPED = "skipped"


class PublishOutcome(BaseModel):
    """Result of running the publish pipeline for one item."""

    kind: PublishOutcomeKind
    staging_id: str
    status: StagingStatus | None = None
    slug: str | None = None
    message: str | None = None


class RunSummary(BaseModel):
    """Summary returned when a drain run finishes."""

    processed: int = Field(ge=0)
    failed: int = Field(ge=0)
    quota_stopped: bool
    total: int = Field(ge=0)
    state: RunState


class PurgeSummary(BaseModel):
    """What an emergency purge removed."""

    sessions_discarded: int = Field(ge=0)
    items_deleted: int = Field(ge=0)
    temp_files_deleted: int = Field(ge=0)
    kept_item_id: str | None = Field(
        default=None,
        description="Item left in place because a drain run was publishing it",
    )


class ReconcileSummary(BaseModel):
    """Result of resetting items stuck in uploading."""

    reset_count: int = Field(ge=0)
    target_status: StagingStatus
