"""Staging item domain model."""

from datetime import UTC, datetime
from enum import Enum
from typing import Self
from uuid import uuid4

from pydantic import BaseModel, Field


class StagingStatus(str, Enum):
    """Lifecycle status of a staged video."""

    WRITING = "writing"  # Bytes still flowing into the blob store
    PENDING = "pending"  # Ready to be published
    UPLOADING = "uploading"  # Picked up by a drain run
    STORAGE_FAIL = "storage_fail"  # Host storage capacity exhausted
    DAILY_FAIL = "daily_fail"  # Host daily upload allowance exhausted
    MAX_UPLOAD_FAIL = "max_upload_fail"  # Host upload count ceiling reached
    NOT_READY = "not_ready"  # Published, host still encoding
    READY = "ready"  # Published and playable
    ERROR = "error"  # Any other failure


PROCESSABLE_STATUSES: frozenset[StagingStatus] = frozenset(
    {
        StagingStatus.PENDING,
        StagingStatus.STORAGE_FAIL,
        StagingStatus.DAILY_FAIL,
        StagingStatus.MAX_UPLOAD_FAIL,
        StagingStatus.ERROR,
    }
)

class StagingItem(BaseModel):
    """A video held in the staging bucket until it is published.

    The item owns exactly one blob; ``blob_ref`` is generated from a fresh
    uuid and never shared, so deleting the item deletes its blob.
    """

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Internal UUID for this staging record",
    )
    blob_ref: str = Field(description="Object path in the staging bucket")
    filename: str = Field(description="Original filename supplied at intake")
    size: int = Field(default=0, ge=0, description="Size in bytes once known")
    content_type: str = Field(description="Video MIME type")
    external_catalog_id: int | None = Field(
        default=None,
        description="Catalog entry this video belongs to",
    )
    title: str = Field(default="", description="Display title")
    poster_path: str | None = Field(default=None, description="Catalog poster path")
    status: StagingStatus = Field(default=StagingStatus.PENDING)
    error_message: str | None = Field(
        default=None,
        description="Failure details for error and quota statuses",
    )
    external_slug: str | None = Field(
        default=None,
        description="Identifier assigned by the video host after upload",
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_processable(self) -> bool:
        """Check if a drain run may pick this item up."""
        return self.status in PROCESSABLE_STATUSES

    def transition_to(self, new_status: StagingStatus) -> Self:
        """Create a new instance with updated status and no error message."""
        return self.model_copy(
            update={
                "status": new_status,
                "updated_at": datetime.now(UTC),
                "error_message": None,
            }
        )

    def mark_failed(
        self,
        error_message: str,
        status: StagingStatus = StagingStatus.ERROR,
    ) -> Self:
        """Create a new instance in a failure status with a message.

        Args:
            error_message: Description of what went wrong.
            status: ERROR or one of the quota failure statuses.

        Returns:
            A new StagingItem instance.
        """
        return self.model_copy(
            update={
                "status": status,
                "updated_at": datetime.now(UTC),
                "error_message": error_message,
            }
        )
