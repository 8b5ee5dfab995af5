"""Data Transfer Objects for application layer."""

from src.application.dtos.published import PublishedListResult, ReadinessSyncSummary
from src.application.dtos.staging import (
    ChunkReceipt,
    CreateStagingResult,
    IntakeMetadata,
    ProgressEvent,
    ProgressEventKind,
    PublishOutcome,
    PublishOutcomeKind,
    PurgeSummary,
    ReconcileSummary,
    RunSummary,
    StagingListResult,
    StagingReadStream,
)

__all__ = [
    # Staging DTOs
    "ChunkReceipt",
    "CreateStagingResult",
    "IntakeMetadata",
    "ProgressEvent",
    "ProgressEventKind",
    "PublishOutcome",
    "PublishOutcomeKind",
    "PurgeSummary",
    "ReconcileSummary",
    "RunSummary",
    "StagingListResult",
    "StagingReadStream",
    # Published DTOs
    "PublishedListResult",
    "ReadinessSyncSummary",
]
