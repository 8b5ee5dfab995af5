"""Blob storage abstractions and implementations."""

from src.commons.infrastructure.blob.base import (
    BlobMetadata,
    BlobStorageBase,
    BlobWriteHandle,
    HealthStatus,
)
from src.commons.infrastructure.blob.minio_provider import (
    BlobNotFoundError,
    BlobWriteError,
    MinioBlobStorage,
    MinioBlobWriteHandle,
)

__all__ = [
    # Base classes
    "BlobMetadata",
    "BlobStorageBase",
    "BlobWriteHandle",
    "HealthStatus",
    # Implementations
    "MinioBlobStorage",
    "MinioBlobWriteHandle",
    # Exceptions
    "BlobNotFoundError",
    "BlobWriteError",
]
