"""Application layer - use cases and orchestration.

This layer contains:
- Services: staging intake, publishing and maintenance workflows
- DTOs: Data transfer objects for API boundaries
"""

from src.application.dtos import (
    ChunkReceipt,
    CreateStagingResult,
    IntakeMetadata,
    ProgressEvent,
    PublishOutcome,
    RunSummary,
)
from src.application.services import (
    ChunkAssembler,
    ProgressChannel,
    PublishPipeline,
    RunController,
    StagingLedger,
)

__all__ = [
    # DTOs
    "ChunkReceipt",
    "CreateStagingResult",
    "IntakeMetadata",
    "ProgressEvent",
    "PublishOutcome",
    "RunSummary",
    # Services
    "ChunkAssembler",
    "ProgressChannel",
    "PublishPipeline",
    "RunController",
    "StagingLedger",
]
