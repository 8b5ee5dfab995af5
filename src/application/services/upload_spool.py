"""Private on-disk copies of whole-file uploads."""

import contextlib
import tempfile
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path, PurePath
from uuid import uuid4

import aiofiles
import aiofiles.os

from src.commons.settings.models import Settings
from src.commons.telemetry import get_logger
from src.domain.exceptions import StagingValidationError

UPLOAD_ARTIFACT_PREFIX = "staging-upload-"


@dataclass
class SpooledUpload:
    """A received file waiting to be written to the staging store."""

    path: Path
    filename: str
    size: int


class UploadSpool:
    """Copies an incoming file to a temp artifact before staging it.

    Whole-file uploads report write progress while the response is already
    streaming, after the request body has been consumed; the spool keeps
    the bytes available for that phase.
    """

    def __init__(self, settings: Settings) -> None:
        self._temp_dir = Path(settings.staging.temp_dir or tempfile.gettempdir())
        self._max_size = settings.staging.max_size_bytes
        self._read_size = settings.blob_storage.stream_chunk_bytes
        self._logger = get_logger(__name__)

    def _artifact_path(self, filename: str) -> Path:
        suffix = PurePath(filename).suffix.lower()
        return self._temp_dir / f"{UPLOAD_ARTIFACT_PREFIX}{uuid4().hex}{suffix}"

    async def spool(
        self,
        stream: AsyncIterator[bytes],
        filename: str,
    ) -> SpooledUpload:
        """Write a stream to a new temp artifact.

        Raises:
            StagingValidationError: The stream exceeds the maximum size.
        """
        path = self._artifact_path(filename)
        size = 0
        try:
            async with aiofiles.open(path, "wb") as out:
                async for chunk in stream:
                    size += len(chunk)
                    if size > self._max_size:
                        raise StagingValidationError(
                            f"File exceeds the maximum of {self._max_size} bytes",
                            field="size",
                        )
                    await out.write(chunk)
        except BaseException:
            await self._remove(path)
            raise

        self._logger.debug(
            "Upload spooled", extra={"path": str(path), "size_bytes": size}
        )
        return SpooledUpload(path=path, filename=filename, size=size)

    async def read(self, upload: SpooledUpload) -> AsyncIterator[bytes]:
        """Yield the spooled bytes in stream-sized pieces."""
        async with aiofiles.open(upload.path, "rb") as fh:
            while piece := await fh.read(self._read_size):
                yield piece

    async def _remove(self, path: Path) -> None:
        with contextlib.suppress(FileNotFoundError):
            await aiofiles.os.remove(path)

    async def release(self, upload: SpooledUpload) -> None:
        """Delete the temp artifact; a missing file is fine."""
        await self._remove(upload.path)
