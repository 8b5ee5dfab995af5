"""Staging intake, listing and run control endpoints."""

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from src.api.dependencies import (
    AssemblerDep,
    LedgerDep,
    MaintenanceDep,
    RunControllerDep,
    RunLogDep,
    RunStateDep,
    SettingsDep,
    UploadSpoolDep,
    UploadStateDep,
    require_operator,
)
from src.api.middleware.error_handler import APIError
from src.application.dtos.staging import (
    ChunkReceipt,
    CreateStagingResult,
    IntakeMetadata,
    ProgressEvent,
    ProgressEventKind,
    PurgeSummary,
    ReconcileSummary,
    RunSummary,
)
from src.application.services.progress import ProgressChannel
from src.application.services.staging_ledger import StagingLedger
from src.application.services.upload_spool import SpooledUpload, UploadSpool
from src.commons.telemetry import get_logger
from src.domain.exceptions import StagingItemNotFoundError, StagingValidationError
from src.domain.models import (
    RunLogEntry,
    RunLogName,
    RunState,
    StagingItem,
    StagingStatus,
    UploadState,
)

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_operator)])

NDJSON_MEDIA_TYPE = "application/x-ndjson"

# Strong references to staging writes that outlive their response stream
_background_writes: set[asyncio.Task[None]] = set()


class StagingListResponse(BaseModel):
    """Page of staging items with the current drain run state."""

    items: list[StagingItem] = Field(description="Staging items, newest first")
    total: int = Field(ge=0, description="Items matching the filter")
    limit: int = Field(ge=1, description="Applied page size")
    skip: int = Field(ge=0, description="Applied offset")
    run_state: RunState = Field(description="Current drain run state")


class DeleteStagingResponse(BaseModel):
    """Response for staging item deletion."""

    success: bool = Field(description="Whether deletion was successful")
    staging_id: str = Field(description="ID of deleted item")


def _parse_statuses(raw: str | None) -> list[StagingStatus] | None:
    if not raw:
        return None
    try:
        return [StagingStatus(part.strip()) for part in raw.split(",") if part.strip()]
    except ValueError as e:
        raise APIError(
            code="INVALID_STATUS",
            message=str(e),
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"allowed": [s.value for s in StagingStatus]},
        ) from e


def _ndjson_line(event: ProgressEvent) -> str:
    if event.kind == ProgressEventKind.PROGRESS:
        payload = {"stage": "writing", "progress": round(event.percent, 2)}
    elif event.kind == ProgressEventKind.DONE:
        payload = {"stage": "done", "progress": 100, **(event.result or {})}
    else:
        payload = {"stage": "error", "message": event.message}
    return json.dumps(payload) + "\n"


async def _read_upload(file: UploadFile, chunk_size: int) -> AsyncIterator[bytes]:
    while chunk := await file.read(chunk_size):
        yield chunk


async def _write_spooled(
    ledger: StagingLedger,
    spool: UploadSpool,
    spooled: SpooledUpload,
    metadata: IntakeMetadata,
    channel: ProgressChannel,
) -> None:
    """Stage a spooled file, reporting through ``channel``."""
    try:
        await ledger.create_from_stream(
            spool.read(spooled),
            content_type=metadata.content_type,
            filename=metadata.filename,
            size=spooled.size,
            external_catalog_id=metadata.external_catalog_id,
            title=metadata.title,
            poster_path=metadata.poster_path,
            progress=channel,
        )
    except Exception as e:
        # Already reported to the client as the terminal error event
        logger.warning(
            "Staged upload failed",
            extra={"filename": metadata.filename, "error": str(e)},
        )
    finally:
        await spool.release(spooled)
        if not channel.is_finished:
            channel.fail("Upload was interrupted")


async def wait_for_background_writes() -> None:
    """Let staging writes started by upload responses finish."""
    if _background_writes:
        logger.info(
            "Waiting for staging writes", extra={"pending": len(_background_writes)}
        )
        await asyncio.gather(*_background_writes, return_exceptions=True)


async def _progress_stream(
    ledger: StagingLedger,
    spool: UploadSpool,
    spooled: SpooledUpload,
    metadata: IntakeMetadata,
) -> AsyncIterator[str]:
    """Yield one NDJSON line per progress event until the terminal event.

    The write continues if the client disconnects.
    """
    events: asyncio.Queue[ProgressEvent] = asyncio.Queue()
    channel = ProgressChannel()
    channel.subscribe(events.put_nowait)

    task = asyncio.create_task(
        _write_spooled(ledger, spool, spooled, metadata, channel)
    )
    _background_writes.add(task)
    task.add_done_callback(_background_writes.discard)

    while True:
        event = await events.get()
        yield _ndjson_line(event)
        if event.is_terminal:
            return


@router.post(
    "/staging/upload",
    response_class=StreamingResponse,
    summary="Upload a video file",
    description=(
        "Upload a whole video file. The response is an NDJSON stream of "
        "write progress ending in a done or error line."
    ),
)
async def upload_staging_file(
    ledger: LedgerDep,
    spool: UploadSpoolDep,
    settings: SettingsDep,
    file: Annotated[UploadFile, File(description="Video file")],
    external_catalog_id: Annotated[int | None, Form()] = None,
    title: Annotated[str, Form()] = "",
    poster_path: Annotated[str | None, Form()] = None,
) -> StreamingResponse:
    """Spool the file, then stream progress while it is staged."""
    content_type = ledger.validate_content_type(file.content_type)
    if not file.filename:
        raise StagingValidationError("Filename is required", field="filename")
    if file.size is not None:
        ledger.validate_size(file.size)

    spooled = await spool.spool(
        _read_upload(file, settings.blob_storage.stream_chunk_bytes),
        file.filename,
    )
    metadata = IntakeMetadata(
        filename=file.filename,
        content_type=content_type,
        external_catalog_id=external_catalog_id,
        title=title,
        poster_path=poster_path,
    )
    return StreamingResponse(
        _progress_stream(ledger, spool, spooled, metadata),
        media_type=NDJSON_MEDIA_TYPE,
    )


@router.put(
    "/staging/stream",
    response_model=CreateStagingResult,
    status_code=status.HTTP_201_CREATED,
    summary="Stream a video file",
    description=(
        "Stage a raw request body of unknown length. Metadata is passed in "
        "the query string; the content type defaults to the request header."
    ),
)
async def stream_staging_file(
    request: Request,
    ledger: LedgerDep,
    filename: Annotated[str, Query(min_length=1)],
    content_type: Annotated[str | None, Query()] = None,
    external_catalog_id: Annotated[int | None, Query()] = None,
    title: Annotated[str, Query()] = "",
    poster_path: Annotated[str | None, Query()] = None,
) -> CreateStagingResult:
    """Write the request body straight into the staging store."""
    return await ledger.create_from_stream(
        request.stream(),
        content_type=content_type or request.headers.get("content-type", ""),
        filename=filename,
        size=None,
        external_catalog_id=external_catalog_id,
        title=title,
        poster_path=poster_path,
    )


@router.post(
    "/staging/chunks",
    response_model=ChunkReceipt,
    summary="Upload one chunk",
    description=(
        "Send a file as numbered chunks sharing an upload id. Chunk 0 must "
        "carry the filename and content type. The receipt of the chunk that "
        "completes the file carries the new staging id."
    ),
)
async def upload_chunk(
    assembler: AssemblerDep,
    settings: SettingsDep,
    upload_id: Annotated[str, Form(min_length=1)],
    chunk_index: Annotated[int, Form(ge=0)],
    total_chunks: Annotated[int, Form(ge=1)],
    chunk: Annotated[UploadFile, File(description="Chunk bytes")],
    filename: Annotated[str | None, Form()] = None,
    content_type: Annotated[str | None, Form()] = None,
    external_catalog_id: Annotated[int | None, Form()] = None,
    title: Annotated[str, Form()] = "",
    poster_path: Annotated[str | None, Form()] = None,
) -> ChunkReceipt:
    """Hand one chunk to the assembler."""
    max_bytes = settings.staging.chunk_max_bytes
    if chunk.size is not None and chunk.size > max_bytes:
        raise StagingValidationError(
            f"Chunk of {chunk.size} bytes exceeds the maximum of {max_bytes} bytes",
            field="chunk",
        )

    metadata: IntakeMetadata | None = None
    name = filename or chunk.filename
    mime = content_type or chunk.content_type
    if chunk_index == 0 and name and mime:
        metadata = IntakeMetadata(
            filename=name,
            content_type=mime,
            external_catalog_id=external_catalog_id,
            title=title,
            poster_path=poster_path,
        )

    data = await chunk.read()
    return await assembler.receive_chunk(
        upload_id=upload_id,
        chunk_index=chunk_index,
        total_chunks=total_chunks,
        data=data,
        metadata=metadata,
    )


@router.get(
    "/staging",
    response_model=StagingListResponse,
    summary="List staging items",
    description=(
        "List staging items newest first. Items still being written are "
        "never listed."
    ),
)
async def list_staging_items(
    ledger: LedgerDep,
    run_state: RunStateDep,
    status_filter: Annotated[
        StagingStatus | None,
        Query(alias="status", description="Single status filter"),
    ] = None,
    statuses: Annotated[
        str | None,
        Query(description="Comma-separated status filter"),
    ] = None,
    limit: Annotated[int | None, Query(description="Page size")] = None,
    skip: Annotated[int, Query(description="Offset")] = 0,
) -> StagingListResponse:
    """List staging items with the current run state."""
    result = await ledger.list_items(
        status=status_filter,
        statuses=_parse_statuses(statuses),
        limit=limit,
        skip=skip,
    )
    return StagingListResponse(
        items=result.items,
        total=result.total,
        limit=result.limit,
        skip=result.skip,
        run_state=run_state.get_state(),
    )


@router.post(
    "/staging/process",
    response_model=RunSummary,
    summary="Run the publish queue",
    description=(
        "Publish processable staging items one by one. Returns 409 with the "
        "current run state when a run is already active."
    ),
)
async def process_staging(controller: RunControllerDep) -> RunSummary:
    """Drain the staging queue and wait for the run to finish."""
    return await controller.drain()


@router.get(
    "/staging/process-status",
    response_model=RunState,
    summary="Drain run progress",
)
async def get_process_status(run_state: RunStateDep) -> RunState:
    """Return the current or last drain run state."""
    return run_state.get_state()


@router.get(
    "/staging/upload-status",
    response_model=UploadState,
    summary="Chunked upload progress",
)
async def get_upload_status(upload_state: UploadStateDep) -> UploadState:
    """Return the state of the most recent chunked upload."""
    return upload_state.get_state()


@router.get(
    "/staging/logs",
    response_model=list[RunLogEntry],
    summary="Operator run log",
    description="Recent intake and drain run logs, newest first.",
)
async def get_run_logs(
    run_log: RunLogDep,
    log_name: Annotated[RunLogName | None, Query()] = None,
    limit: Annotated[int, Query(ge=1)] = 20,
) -> list[RunLogEntry]:
    """List recent run log entries."""
    return await run_log.recent(log_name=log_name, limit=limit)


@router.post(
    "/staging/purge",
    response_model=PurgeSummary,
    summary="Purge staging",
    description=(
        "Discard every chunk session, staging item and temp artifact. "
        "During a drain run the item being published is kept."
    ),
)
async def purge_staging(maintenance: MaintenanceDep) -> PurgeSummary:
    """Emergency reset of the staging area."""
    return await maintenance.purge()


@router.post(
    "/staging/reconcile",
    response_model=ReconcileSummary,
    summary="Reset stale uploads",
    description=(
        "Move items left in uploading by an interrupted run back to pending, "
        "or to error. Refused while a drain run is active."
    ),
)
async def reconcile_staging(
    maintenance: MaintenanceDep,
    target: Annotated[StagingStatus, Query()] = StagingStatus.PENDING,
) -> ReconcileSummary:
    """Reset items stuck in uploading."""
    return await maintenance.reconcile(target)


@router.delete(
    "/staging/{staging_id}",
    response_model=DeleteStagingResponse,
    summary="Delete staging item",
    description="Delete a staging item and its stored file.",
)
async def delete_staging_item(
    staging_id: str,
    ledger: LedgerDep,
) -> DeleteStagingResponse:
    """Delete one staging item."""
    if not await ledger.delete(staging_id):
        raise StagingItemNotFoundError(staging_id)
    return DeleteStagingResponse(success=True, staging_id=staging_id)
