"""Domain exceptions for the media staging system."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.domain.models.progress import RunState


class DomainException(Exception):
    """Base exception for domain errors."""


class StagingValidationError(DomainException):
    """Raised when intake input is rejected before reaching the ledger."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        self.reason = message
        super().__init__(message)


class StagingItemNotFoundError(DomainException):
    """Raised when a requested staging item does not exist."""

    def __init__(self, staging_id: str) -> None:
        self.staging_id = staging_id
        super().__init__(f"Staging item not found: {staging_id}")


class PublishedRecordNotFoundError(DomainException):
    """Raised when a requested published record does not exist."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Published record not found: {record_id}")


class ChunkSequenceError(DomainException):
    """Raised when chunks for an upload cannot be assembled in order yet.

    ``missing_indexes`` lists the chunk indexes the client still has to send.
    """

    def __init__(
        self,
        upload_id: str,
        missing_indexes: list[int],
        reason: str = "Chunks are missing",
    ) -> None:
        self.upload_id = upload_id
        self.missing_indexes = sorted(missing_indexes)
        self.reason = reason
        super().__init__(
            f"{reason} for upload {upload_id}: missing {self.missing_indexes}"
        )


class ChunkAssemblyError(DomainException):
    """Raised when a chunked upload fails and its session is discarded."""

    def __init__(self, upload_id: str, reason: str) -> None:
        self.upload_id = upload_id
        self.reason = reason
        super().__init__(f"Chunk assembly failed for upload {upload_id}: {reason}")


class RunAlreadyActiveError(DomainException):
    """Raised when an operation needs the drain run slot while a run holds it."""

    def __init__(self, state: RunState, action: str = "start a run") -> None:
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action}: a staging run is already active")


class VideoHostError(DomainException):
    """Raised when the external video host rejects or fails a request."""

    def __init__(self, operation: str, reason: str, status_code: int | None = None):
        self.operation = operation
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Video host {operation} failed: {reason}")


class OperatorRequiredError(DomainException):
    """Raised when a caller is not an authenticated operator."""

    def __init__(self, user: str | None, required_role: str) -> None:
        self.user = user
        self.required_role = required_role
        if user is None:
            message = "Authentication required"
        else:
            message = f"User '{user}' lacks the '{required_role}' role"
        super().__init__(message)

    @property
    def is_authenticated(self) -> bool:
        """Whether an identity was present at all."""
        return self.user is not None
