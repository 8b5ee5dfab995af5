"""Reassembly of files sent as a sequence of bounded chunks."""

import asyncio
import contextlib
import re
import tempfile
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import uuid4

import aiofiles
import aiofiles.os

from src.application.dtos.staging import (
    ChunkReceipt,
    IntakeMetadata,
    ProgressEvent,
    ProgressEventKind,
)
from src.application.services.progress import ProgressChannel, UploadStateStore
from src.application.services.staging_ledger import StagingLedger
from src.commons.settings.models import Settings
from src.commons.telemetry import LogContext, get_logger
from src.domain.exceptions import (
    ChunkAssemblyError,
    ChunkSequenceError,
    StagingValidationError,
)

CHUNK_ARTIFACT_PREFIX = "staging-chunk-"
PART_ARTIFACT_PREFIX = "staging-part-"

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]")


@dataclass
class ChunkAssemblySession:
    """In-memory state of one chunked upload.

    The artifact only ever receives chunks in index order; chunks that
    arrive early wait in their own part files until the gap before them
    fills.
    """

    upload_id: str
    total_chunks: int
    metadata: IntakeMetadata
    artifact_path: Path
    handle: Any = None
    received: set[int] = field(default_factory=set)
    next_append_index: int = 0
    spilled: dict[int, Path] = field(default_factory=dict)
    bytes_received: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def missing_indexes(self) -> list[int]:
        return [i for i in range(self.total_chunks) if i not in self.received]

    @property
    def is_complete(self) -> bool:
        return len(self.received) == self.total_chunks


class ChunkAssembler:
    """Turns N chunk requests into one staged file.

    Sessions are keyed by a caller-chosen upload id and live only in this
    process. Chunks for one upload id are expected from a single client;
    retries of an already received chunk are acknowledged without effect.
    """

    def __init__(
        self,
        ledger: StagingLedger,
        upload_state: UploadStateStore,
        settings: Settings,
    ) -> None:
        """Initialize the assembler.

        Args:
            ledger: Ledger receiving completed files.
            upload_state: Store reporting upload progress to pollers.
            settings: Application settings.
        """
        self._ledger = ledger
        self._upload_state = upload_state
        self._settings = settings
        self._chunk_max_bytes = settings.staging.chunk_max_bytes
        self._max_size = settings.staging.max_size_bytes
        self._read_size = settings.blob_storage.stream_chunk_bytes
        self._temp_dir = Path(settings.staging.temp_dir or tempfile.gettempdir())
        self._sessions: dict[str, ChunkAssemblySession] = {}
        self._logger = get_logger(__name__)

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def has_session(self, upload_id: str) -> bool:
        return upload_id in self._sessions

    def _validate(
        self,
        upload_id: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
    ) -> None:
        if not upload_id or not upload_id.strip():
            raise StagingValidationError("upload_id is required", field="upload_id")
        if total_chunks < 1:
            raise StagingValidationError(
                "total_chunks must be at least 1", field="total_chunks"
            )
        if not 0 <= chunk_index < total_chunks:
            raise StagingValidationError(
                f"chunk_index must be between 0 and {total_chunks - 1}",
                field="chunk_index",
            )
        if len(data) > self._chunk_max_bytes:
            raise StagingValidationError(
                f"Chunk of {len(data)} bytes exceeds the maximum of "
                f"{self._chunk_max_bytes} bytes",
                field="chunk",
            )

    def _open_session(
        self,
        upload_id: str,
        total_chunks: int,
        metadata: IntakeMetadata | None,
    ) -> ChunkAssemblySession:
        if metadata is None:
            raise StagingValidationError(
                "filename and content type are required with chunk 0",
                field="metadata",
            )
        content_type = self._ledger.validate_content_type(metadata.content_type)
        safe_id = _UNSAFE_ID_CHARS.sub("_", upload_id)[:64]
        session = ChunkAssemblySession(
            upload_id=upload_id,
            total_chunks=total_chunks,
            metadata=metadata.model_copy(update={"content_type": content_type}),
            artifact_path=self._temp_dir
            / f"{CHUNK_ARTIFACT_PREFIX}{safe_id}-{uuid4().hex}.part",
        )
        # Registered before the first await so a concurrent chunk 0 finds it
        self._sessions[upload_id] = session
        return session

    async def receive_chunk(
        self,
        upload_id: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
        metadata: IntakeMetadata | None = None,
    ) -> ChunkReceipt:
        """Accept one chunk of an upload.

        Args:
            upload_id: Caller-chosen id shared by all chunks of one file.
            chunk_index: 0-based index of this chunk.
            total_chunks: Number of chunks in the file.
            data: Chunk bytes.
            metadata: Intake metadata, required with chunk 0.

        Returns:
            Receipt echoing the index and total; ``complete`` and
            ``staging_id`` are set once the last missing chunk arrives.

        Raises:
            StagingValidationError: Invalid indexes, sizes or metadata.
            ChunkSequenceError: No session for a non-zero chunk, or the last
                chunk arrived while earlier ones are still missing.
            ChunkAssemblyError: The session failed and was discarded.
        """
        self._validate(upload_id, chunk_index, total_chunks, data)
        receipt = ChunkReceipt(
            upload_id=upload_id,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
        )

        session = self._sessions.get(upload_id)
        if session is None:
            if chunk_index != 0:
                raise ChunkSequenceError(
                    upload_id, [0], reason="No upload session, resend chunk 0"
                )
            session = self._open_session(upload_id, total_chunks, metadata)
        elif session.total_chunks != total_chunks:
            raise StagingValidationError(
                f"total_chunks changed from {session.total_chunks} to {total_chunks}",
                field="total_chunks",
            )

        with LogContext(upload_id=upload_id):
            async with session.lock:
                if self._sessions.get(upload_id) is not session:
                    raise ChunkAssemblyError(upload_id, "upload session was discarded")
                if chunk_index in session.received:
                    self._logger.debug(
                        "Duplicate chunk ignored", extra={"chunk_index": chunk_index}
                    )
                    return receipt.model_copy(update={"duplicate": True})

                await self._store_chunk(session, chunk_index, data)
                self._upload_state.record_chunk(
                    upload_id, len(session.received), total_chunks
                )

                if session.is_complete:
                    return await self._finish(session, receipt)

                if chunk_index == total_chunks - 1:
                    raise ChunkSequenceError(
                        upload_id,
                        session.missing_indexes,
                        reason="Last chunk received before earlier chunks",
                    )
                return receipt

    async def _store_chunk(
        self,
        session: ChunkAssemblySession,
        chunk_index: int,
        data: bytes,
    ) -> None:
        if session.bytes_received + len(data) > self._max_size:
            await self._discard(session)
            message = f"Upload exceeds the maximum of {self._max_size} bytes"
            self._upload_state.fail(session.upload_id, message)
            raise StagingValidationError(message, field="chunk")

        try:
            if session.handle is None:
                session.handle = await aiofiles.open(session.artifact_path, "wb")

            if chunk_index == session.next_append_index:
                await session.handle.write(data)
                session.next_append_index += 1
                await self._append_spilled(session)
            else:
                part_path = self._temp_dir / (
                    f"{PART_ARTIFACT_PREFIX}{session.artifact_path.stem}"
                    f"-{chunk_index}.part"
                )
                async with aiofiles.open(part_path, "wb") as part:
                    await part.write(data)
                session.spilled[chunk_index] = part_path
        except (OSError, ValueError) as e:
            await self._fail(session, f"could not store chunk {chunk_index}: {e}", e)

        session.received.add(chunk_index)
        session.bytes_received += len(data)

    async def _append_spilled(self, session: ChunkAssemblySession) -> None:
        while session.next_append_index in session.spilled:
            part_path = session.spilled.pop(session.next_append_index)
            async with aiofiles.open(part_path, "rb") as part:
                while piece := await part.read(self._read_size):
                    await session.handle.write(piece)
            await aiofiles.os.remove(part_path)
            session.next_append_index += 1

    async def _read_artifact(self, path: Path) -> AsyncIterator[bytes]:
        async with aiofiles.open(path, "rb") as fh:
            while piece := await fh.read(self._read_size):
                yield piece

    async def _finish(
        self,
        session: ChunkAssemblySession,
        receipt: ChunkReceipt,
    ) -> ChunkReceipt:
        upload_id = session.upload_id
        try:
            await session.handle.close()
            session.handle = None
            size = (await aiofiles.os.stat(session.artifact_path)).st_size
        except (OSError, ValueError) as e:
            await self._fail(session, f"could not finalize upload: {e}", e)

        self._logger.info(
            "All chunks received",
            extra={"total_chunks": session.total_chunks, "size_bytes": size},
        )
        self._upload_state.start_writing(upload_id)

        def _on_progress(event: ProgressEvent) -> None:
            if event.kind == ProgressEventKind.PROGRESS:
                self._upload_state.set_write_progress(upload_id, event.percent)

        channel = ProgressChannel()
        channel.subscribe(_on_progress)
        metadata = session.metadata
        try:
            result = await self._ledger.create_from_stream(
                self._read_artifact(session.artifact_path),
                content_type=metadata.content_type,
                filename=metadata.filename,
                size=size,
                external_catalog_id=metadata.external_catalog_id,
                title=metadata.title,
                poster_path=metadata.poster_path,
                progress=channel,
            )
        except StagingValidationError as e:
            self._upload_state.fail(upload_id, str(e))
            raise
        except Exception as e:
            self._upload_state.fail(upload_id, str(e))
            raise ChunkAssemblyError(upload_id, str(e)) from e
        finally:
            await self._discard(session)

        self._upload_state.finish(upload_id, result.staging_id)
        return receipt.model_copy(
            update={
                "complete": True,
                "staging_id": result.staging_id,
                "size": result.size,
            }
        )

    async def _fail(
        self,
        session: ChunkAssemblySession,
        reason: str,
        cause: Exception,
    ) -> None:
        self._logger.error(
            "Chunked upload failed",
            extra={"upload_id": session.upload_id, "reason": reason},
        )
        await self._discard(session)
        self._upload_state.fail(session.upload_id, reason)
        raise ChunkAssemblyError(session.upload_id, reason) from cause

    async def _remove_file(self, path: Path) -> bool:
        with contextlib.suppress(FileNotFoundError):
            await aiofiles.os.remove(path)
            return True
        return False

    async def _discard(self, session: ChunkAssemblySession) -> int:
        """Forget a session and delete every file it created."""
        if self._sessions.get(session.upload_id) is session:
            del self._sessions[session.upload_id]

        if session.handle is not None:
            handle, session.handle = session.handle, None
            try:
                await handle.close()
            except (OSError, ValueError) as e:
                self._logger.debug(
                    "Closing chunk artifact failed", extra={"error": str(e)}
                )

        removed = 0
        for path in [session.artifact_path, *session.spilled.values()]:
            if await self._remove_file(path):
                removed += 1
        session.spilled.clear()
        return removed

    async def abort(self, upload_id: str) -> bool:
        """Discard one session and its files."""
        session = self._sessions.get(upload_id)
        if session is None:
            return False
        await self._discard(session)
        return True

    async def purge(self) -> int:
        """Discard every session and its files unconditionally.

        Returns:
            Number of sessions discarded.
        """
        sessions = list(self._sessions.values())
        for session in sessions:
            await self._discard(session)
        if sessions:
            self._logger.warning(
                "Chunk sessions purged", extra={"sessions": len(sessions)}
            )
        return len(sessions)
