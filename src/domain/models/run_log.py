"""Persisted operator log entries."""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


class RunLogName(str, Enum):
    """Which operation wrote a log entry."""

    STAGING_UPLOAD = "STAGING_UPLOAD_LOG"
    PUBLISH_RUN = "PUBLISH_RUN_LOG"


class RunLogEntry(BaseModel):
    """Lines written by one intake or one drain run."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    log_name: RunLogName
    logged_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    lines: list[str] = Field(default_factory=list)
