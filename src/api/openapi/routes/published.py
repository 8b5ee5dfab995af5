"""Published record endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.api.dependencies import PublishedServiceDep, require_operator
from src.application.dtos.published import PublishedListResult, ReadinessSyncSummary
from src.domain.models import PublishedRecord, SlugReadiness

router = APIRouter(dependencies=[Depends(require_operator)])


class UpdatePublishedRequest(BaseModel):
    """Catalog mapping change for a published record.

    Only the fields present in the request body are changed.
    """

    external_catalog_id: int | None = Field(
        default=None,
        description="Catalog entry id, or null to unlink",
    )
    title: str | None = Field(default=None, description="Display title")
    poster_path: str | None = Field(default=None, description="Poster path")


@router.get(
    "/published",
    response_model=PublishedListResult,
    summary="List published records",
    description="List videos already on the host, newest first.",
)
async def list_published(
    service: PublishedServiceDep,
    slug_readiness: Annotated[SlugReadiness | None, Query()] = None,
    limit: Annotated[int | None, Query(description="Page size")] = None,
    skip: Annotated[int, Query(description="Offset")] = 0,
) -> PublishedListResult:
    """List published records."""
    return await service.list_records(
        slug_readiness=slug_readiness, limit=limit, skip=skip
    )


@router.patch(
    "/published/{record_id}",
    response_model=PublishedRecord,
    summary="Update catalog mapping",
)
async def update_published(
    record_id: str,
    request: UpdatePublishedRequest,
    service: PublishedServiceDep,
) -> PublishedRecord:
    """Change the catalog id, title or poster of a published record."""
    return await service.update_mapping(
        record_id, request.model_dump(exclude_unset=True)
    )


@router.post(
    "/published/sync",
    response_model=ReadinessSyncSummary,
    summary="Sync slug readiness",
    description="Ask the host whether not-ready slugs have finished processing.",
)
async def sync_published(service: PublishedServiceDep) -> ReadinessSyncSummary:
    """Refresh readiness of every not-ready record."""
    return await service.sync_readiness()
