"""Application services for staging intake and publishing."""

from src.application.services.chunk_assembler import (
    ChunkAssembler,
    ChunkAssemblySession,
)
from src.application.services.maintenance import StagingMaintenanceService
from src.application.services.progress import (
    ProgressChannel,
    RunStateStore,
    UploadStateStore,
)
from src.application.services.publish_pipeline import PublishPipeline
from src.application.services.published import PublishedRecordService
from src.application.services.run_controller import RunController
from src.application.services.run_log import RunLogService
from src.application.services.staging_ledger import StagingLedger
from src.application.services.upload_spool import SpooledUpload, UploadSpool

__all__ = [
    "ChunkAssembler",
    "ChunkAssemblySession",
    "ProgressChannel",
    "PublishPipeline",
    "PublishedRecordService",
    "RunController",
    "RunLogService",
    "RunStateStore",
    "StagingLedger",
    "StagingMaintenanceService",
    "SpooledUpload",
    "UploadStateStore",
    "UploadSpool",
]
