"""Published record domain model."""

from datetime import UTC, datetime
from enum import Enum
from typing import Self
from uuid import uuid4

from pydantic import BaseModel, Field


class SlugReadiness(str, Enum):
    """Playback readiness of a slug on the video host."""

    NOT_READY = "not_ready"
    READY = "ready"


class PublishedRecord(BaseModel):
    """A video that has been handed to the video host.

    Outlives the staging item it was created from; readiness is refreshed
    out of band until the host reports the slug as ready.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    external_catalog_id: int | None = Field(default=None)
    title: str = Field(default="")
    poster_path: str | None = Field(default=None)
    external_slug: str = Field(description="Identifier assigned by the video host")
    slug_readiness: SlugReadiness = Field(default=SlugReadiness.NOT_READY)
    filename: str = Field(description="Original filename supplied at intake")
    size: int = Field(ge=0, description="Size in bytes")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_ready(self) -> bool:
        """Check if the host reports the slug as playable."""
        return self.slug_readiness == SlugReadiness.READY

    def mark_ready(self) -> Self:
        """Create a new instance flagged as ready."""
        return self.model_copy(
            update={
                "slug_readiness": SlugReadiness.READY,
                "updated_at": datetime.now(UTC),
            }
        )
