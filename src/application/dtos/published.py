"""DTOs for published record operations."""

from pydantic import BaseModel, Field

from src.domain.models.published import PublishedRecord


class PublishedListResult(BaseModel):
    """Page of published records plus the unpaginated total."""

    items: list[PublishedRecord]
    total: int = Field(ge=0)
    limit: int = Field(ge=1)
    skip: int = Field(ge=0)


class ReadinessSyncSummary(BaseModel):
    """Outcome of one readiness sync pass."""

    checked: int = Field(default=0, ge=0)
    became_ready: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
