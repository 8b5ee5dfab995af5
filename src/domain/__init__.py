"""Domain layer - business models and logic."""

from src.domain.exceptions import (
    ChunkAssemblyError,
    ChunkSequenceError,
    DomainException,
    OperatorRequiredError,
    PublishedRecordNotFoundError,
    RunAlreadyActiveError,
    StagingItemNotFoundError,
    StagingValidationError,
    VideoHostError,
)
from src.domain.models import (
    PROCESSABLE_STATUSES,
    PublishedRecord,
    QuotaInfo,
    RunItemSnapshot,
    RunLogEntry,
    RunLogName,
    RunState,
    SlugReadiness,
    StagingItem,
    StagingStatus,
    UploadPhase,
    UploadState,
)

__all__ = [
    # Exceptions
    "DomainException",
    "StagingValidationError",
    "StagingItemNotFoundError",
    "PublishedRecordNotFoundError",
    "ChunkSequenceError",
    "ChunkAssemblyError",
    "RunAlreadyActiveError",
    "VideoHostError",
    "OperatorRequiredError",
    # Staging
    "StagingItem",
    "StagingStatus",
    "PROCESSABLE_STATUSES",
    # Published
    "PublishedRecord",
    "SlugReadiness",
    # Progress
    "RunItemSnapshot",
    "RunState",
    "UploadPhase",
    "UploadState",
    # Quota
    "QuotaInfo",
    # Run log
    "RunLogEntry",
    "RunLogName",
]
