"""Infrastructure factory for creating service instances from configuration."""

from typing import Any, cast

from src.application.services.chunk_assembler import ChunkAssembler
from src.application.services.progress import RunStateStore, UploadStateStore
from src.application.services.run_log import RunLogService
from src.application.services.staging_ledger import StagingLedger
from src.application.services.upload_spool import UploadSpool
from src.commons.infrastructure.blob import BlobStorageBase, MinioBlobStorage
from src.commons.infrastructure.documentdb import DocumentDBBase, MongoDBDocumentDB
from src.commons.settings.models import Settings
from src.commons.telemetry import get_logger
from src.infrastructure.video_host import HttpVideoHostClient, VideoHostBase

logger = get_logger(__name__)


class InfrastructureFactory:
    """Factory for creating infrastructure service instances.

    Creates concrete implementations based on configuration settings and
    holds the process-wide state: the run and upload state stores and the
    chunk assembler with its open sessions.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize factory with settings.

        Args:
            settings: Application settings.
        """
        self._settings = settings
        self._instances: dict[str, Any] = {}

    def get_blob_storage(self) -> BlobStorageBase:
        """Get blob storage instance.

        Returns:
            Configured blob storage provider.
        """
        if "blob_storage" not in self._instances:
            blob_settings = self._settings.blob_storage
            self._instances["blob_storage"] = MinioBlobStorage(
                endpoint=blob_settings.endpoint,
                access_key=blob_settings.access_key,
                secret_key=blob_settings.secret_key,
                secure=blob_settings.use_ssl,
                region=blob_settings.region,
                part_size=blob_settings.part_size_bytes,
            )
        return cast("BlobStorageBase", self._instances["blob_storage"])

    def get_document_db(self) -> DocumentDBBase:
        """Get document database instance.

        Returns:
            Configured document database provider.
        """
        if "document_db" not in self._instances:
            doc_settings = self._settings.document_db
            if doc_settings.username and doc_settings.password:
                connection_string = (
                    f"mongodb://{doc_settings.username}:{doc_settings.password}"
                    f"@{doc_settings.host}:{doc_settings.port}"
                    f"/?authSource={doc_settings.auth_source}"
                )
            else:
                connection_string = f"mongodb://{doc_settings.host}:{doc_settings.port}"
            self._instances["document_db"] = MongoDBDocumentDB(
                connection_string=connection_string,
                database_name=doc_settings.database,
            )
        return cast("DocumentDBBase", self._instances["document_db"])

    def get_video_host(self) -> VideoHostBase:
        """Get video host client instance.

        Returns:
            Configured video host client.
        """
        if "video_host" not in self._instances:
            host_settings = self._settings.video_host
            self._instances["video_host"] = HttpVideoHostClient(
                api_url=host_settings.api_url,
                upload_url=host_settings.upload_url,
                api_key=host_settings.api_key,
                email=host_settings.email,
                password=host_settings.password,
                document_db=self.get_document_db(),
                system_collection=self._settings.document_db.collections.system,
                quota_fields=host_settings.quota_fields,
                timeout=host_settings.timeout_seconds,
                upload_timeout=host_settings.upload_timeout_seconds,
                token_ttl_seconds=host_settings.token_ttl_seconds,
            )
        return cast("VideoHostBase", self._instances["video_host"])

    def get_run_state_store(self) -> RunStateStore:
        """Get the process-wide drain run state."""
        if "run_state" not in self._instances:
            self._instances["run_state"] = RunStateStore()
        return cast("RunStateStore", self._instances["run_state"])

    def get_upload_state_store(self) -> UploadStateStore:
        """Get the process-wide chunked upload state."""
        if "upload_state" not in self._instances:
            self._instances["upload_state"] = UploadStateStore()
        return cast("UploadStateStore", self._instances["upload_state"])

    def get_run_log(self) -> RunLogService:
        """Get the capped operator log."""
        if "run_log" not in self._instances:
            self._instances["run_log"] = RunLogService(
                document_db=self.get_document_db(),
                settings=self._settings,
            )
        return cast("RunLogService", self._instances["run_log"])

    def get_staging_ledger(self) -> StagingLedger:
        """Get the staging ledger."""
        if "staging_ledger" not in self._instances:
            self._instances["staging_ledger"] = StagingLedger(
                blob_storage=self.get_blob_storage(),
                document_db=self.get_document_db(),
                settings=self._settings,
                run_log=self.get_run_log(),
            )
        return cast("StagingLedger", self._instances["staging_ledger"])

    def get_upload_spool(self) -> UploadSpool:
        """Get the temp spool for whole-file uploads."""
        if "upload_spool" not in self._instances:
            self._instances["upload_spool"] = UploadSpool(self._settings)
        return cast("UploadSpool", self._instances["upload_spool"])

    def get_chunk_assembler(self) -> ChunkAssembler:
        """Get the chunk assembler that owns all open chunk sessions."""
        if "chunk_assembler" not in self._instances:
            self._instances["chunk_assembler"] = ChunkAssembler(
                ledger=self.get_staging_ledger(),
                upload_state=self.get_upload_state_store(),
                settings=self._settings,
            )
        return cast("ChunkAssembler", self._instances["chunk_assembler"])

    async def close_all(self) -> None:
        """Close all service connections."""
        assembler = self._instances.get("chunk_assembler")
        if isinstance(assembler, ChunkAssembler):
            await assembler.purge()

        for name, instance in self._instances.items():
            close = getattr(instance, "close", None)
            if close is None:
                continue
            try:
                close_result = close()
                if hasattr(close_result, "__await__"):
                    await close_result
            except Exception as e:
                logger.warning(
                    "Failed to close service", extra={"service": name, "error": str(e)}
                )

        self._instances.clear()


class _FactoryHolder:
    """Holder for the factory singleton to avoid global statements."""

    instance: InfrastructureFactory | None = None


def get_factory(settings: Settings | None = None) -> InfrastructureFactory:
    """Get or create the infrastructure factory singleton.

    Args:
        settings: Settings to use. Required on first call.

    Returns:
        Infrastructure factory instance.

    Raises:
        ValueError: If settings not provided on first call.
    """
    if _FactoryHolder.instance is None:
        if settings is None:
            raise ValueError("Settings required to initialize factory")
        _FactoryHolder.instance = InfrastructureFactory(settings)

    return _FactoryHolder.instance


def reset_factory() -> None:
    """Reset the factory singleton (for testing)."""
    _FactoryHolder.instance = None
