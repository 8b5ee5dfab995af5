"""Domain models."""

from src.domain.models.progress import (
    RunItemSnapshot,
    RunState,
    UploadPhase,
    UploadState,
)
from src.domain.models.published import PublishedRecord, SlugReadiness
from src.domain.models.quota import QuotaInfo
from src.domain.models.run_log import RunLogEntry, RunLogName
from src.domain.models.staging import (
    PROCESSABLE_STATUSES,
    StagingItem,
    StagingStatus,
)

__all__ = [
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
