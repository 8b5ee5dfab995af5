"""In-memory run and upload progress state."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class RunItemSnapshot(BaseModel):
    """Display data for one item taken when a run starts."""

    id: str
    title: str = ""
    filename: str = ""


class RunState(BaseModel):
    """State of the drain run slot.

    Counters and snapshot survive ``end_run`` so the last run stays visible
    until the next one starts.
    """

    is_running: bool = False
    started_at: datetime | None = None
    total_items: int = Field(default=0, ge=0)
    processed_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    current_item_id: str | None = None
    snapshot_items: list[RunItemSnapshot] = Field(default_factory=list)


class UploadPhase(str, Enum):
    """Phase of a chunked upload into staging."""

    UPLOADING = "uploading"  # Chunks arriving from the client
    WRITING = "writing"  # Assembled file streaming into the blob store
    DONE = "done"
    ERROR = "error"


class UploadState(BaseModel):
    """Progress of the most recent chunked upload."""

    upload_id: str | None = None
    phase: UploadPhase | None = None
    total_chunks: int = Field(default=0, ge=0)
    chunks_received: int = Field(default=0, ge=0)
    send_progress_percent: float = Field(default=0.0, ge=0.0, le=100.0)
    db_write_progress_percent: float = Field(default=0.0, ge=0.0, le=100.0)
    result_staging_id: str | None = None
    error_message: str | None = None
