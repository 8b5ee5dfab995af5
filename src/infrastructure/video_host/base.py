"""Abstract base class for the external video host."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from src.commons.infrastructure.blob.base import HealthStatus
from src.domain.models.published import SlugReadiness
from src.domain.models.quota import QuotaInfo


@dataclass
class UploadResult:
    """Result from uploading a file to the video host."""

    slug: str
    raw: dict[str, Any] | None = None


class VideoHostBase(ABC):
    """Abstract base class for video host clients.

    Implementations own authentication with the host; callers never see
    tokens. Failures surface as ``VideoHostError``.
    """

    @abstractmethod
    async def get_account_info(self) -> dict[str, Any]:
        """Fetch the raw account payload, as returned by the host."""

    @abstractmethod
    async def get_quota(self) -> QuotaInfo:
        """Fetch account info and normalize it into a QuotaInfo."""

    @abstractmethod
    async def upload(
        self,
        path: Path,
        filename: str,
        content_type: str,
        size: int,
    ) -> UploadResult:
        """Upload a local file of known size.

        Args:
            path: Local file to send.
            filename: Filename reported to the host.
            content_type: MIME type of the file.
            size: Size in bytes.

        Returns:
            UploadResult carrying the host slug.

        Raises:
            VideoHostError: If the host rejects the upload.
        """

    @abstractmethod
    async def get_slug_status(self, slug: str) -> SlugReadiness:
        """Return whether the host can already play the slug."""

    @abstractmethod
    async def health_check(self) -> HealthStatus:
        """Check the host is reachable."""

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
