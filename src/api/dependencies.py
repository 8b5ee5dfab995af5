"""FastAPI dependency injection for services and settings."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from src.application.services.chunk_assembler import ChunkAssembler
from src.application.services.maintenance import StagingMaintenanceService
from src.application.services.progress import RunStateStore, UploadStateStore
from src.application.services.publish_pipeline import PublishPipeline
from src.application.services.published import PublishedRecordService
from src.application.services.run_controller import RunController
from src.application.services.run_log import RunLogService
from src.application.services.staging_ledger import StagingLedger
from src.application.services.upload_spool import UploadSpool
from src.commons.settings.loader import get_settings as _load_settings
from src.commons.settings.models import Settings
from src.commons.telemetry import set_log_context
from src.domain.exceptions import OperatorRequiredError
from src.infrastructure.factory import (
    InfrastructureFactory,
    get_factory,
    reset_factory,
)
from src.infrastructure.video_host import VideoHostBase


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Application settings loaded from config files and environment.
    """
    return _load_settings()


def get_infrastructure_factory(
    settings: Annotated[Settings, Depends(get_settings)],
) -> InfrastructureFactory:
    """Get infrastructure factory with all providers.

    Args:
        settings: Application settings.

    Returns:
        Configured infrastructure factory.
    """
    return get_factory(settings)


async def require_operator(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    """Return the operator name set by the upstream gateway.

    Authentication happens before requests reach this service; the gateway
    forwards the user and role as headers.

    Raises:
        OperatorRequiredError: No user header, or a role other than the
            configured operator role.
    """
    server = settings.server
    user = request.headers.get(server.operator_user_header)
    role = request.headers.get(server.operator_role_header)
    if not user:
        raise OperatorRequiredError(None, server.operator_role)
    if (role or "").strip().lower() != server.operator_role.lower():
        raise OperatorRequiredError(user, server.operator_role)
    set_log_context(operator=user)
    return user


def get_video_host(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
) -> VideoHostBase:
    """Get the video host client."""
    return factory.get_video_host()


def get_staging_ledger(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
) -> StagingLedger:
    """Get the staging ledger."""
    return factory.get_staging_ledger()


def get_chunk_assembler(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
) -> ChunkAssembler:
    """Get the process-wide chunk assembler."""
    return factory.get_chunk_assembler()


def get_upload_spool(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
) -> UploadSpool:
    """Get the temp spool for whole-file uploads."""
    return factory.get_upload_spool()


def get_run_state_store(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
) -> RunStateStore:
    """Get the drain run state store."""
    return factory.get_run_state_store()


def get_upload_state_store(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
) -> UploadStateStore:
    """Get the chunked upload state store."""
    return factory.get_upload_state_store()


def get_run_log(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
) -> RunLogService:
    """Get the operator run log."""
    return factory.get_run_log()


def get_published_service(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> PublishedRecordService:
    """Get published record service with its dependencies.

    Args:
        factory: Infrastructure factory.
        settings: Application settings.

    Returns:
        Configured published record service.
    """
    return PublishedRecordService(
        document_db=factory.get_document_db(),
        video_host=factory.get_video_host(),
        settings=settings,
    )


def get_run_controller(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
    published: Annotated[PublishedRecordService, Depends(get_published_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> RunController:
    """Get run controller wired to the publish pipeline.

    Args:
        factory: Infrastructure factory.
        published: Published record service.
        settings: Application settings.

    Returns:
        Configured run controller.
    """
    ledger = factory.get_staging_ledger()
    pipeline = PublishPipeline(
        ledger=ledger,
        video_host=factory.get_video_host(),
        published=published,
        settings=settings,
    )
    return RunController(
        ledger=ledger,
        pipeline=pipeline,
        run_state=factory.get_run_state_store(),
        run_log=factory.get_run_log(),
        settings=settings,
    )


def get_maintenance_service(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> StagingMaintenanceService:
    """Get the purge and reconcile service."""
    return StagingMaintenanceService(
        ledger=factory.get_staging_ledger(),
        assembler=factory.get_chunk_assembler(),
        run_state=factory.get_run_state_store(),
        upload_state=factory.get_upload_state_store(),
        settings=settings,
    )


# Type aliases for cleaner route signatures
SettingsDep = Annotated[Settings, Depends(get_settings)]
FactoryDep = Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)]
OperatorDep = Annotated[str, Depends(require_operator)]
VideoHostDep = Annotated[VideoHostBase, Depends(get_video_host)]
LedgerDep = Annotated[StagingLedger, Depends(get_staging_ledger)]
AssemblerDep = Annotated[ChunkAssembler, Depends(get_chunk_assembler)]
UploadSpoolDep = Annotated[UploadSpool, Depends(get_upload_spool)]
RunStateDep = Annotated[RunStateStore, Depends(get_run_state_store)]
UploadStateDep = Annotated[UploadStateStore, Depends(get_upload_state_store)]
RunLogDep = Annotated[RunLogService, Depends(get_run_log)]
PublishedServiceDep = Annotated[PublishedRecordService, Depends(get_published_service)]
RunControllerDep = Annotated[RunController, Depends(get_run_controller)]
MaintenanceDep = Annotated[StagingMaintenanceService, Depends(get_maintenance_service)]


async def init_services(settings: Settings) -> None:
    """Initialize all infrastructure services on startup.

    Args:
        settings: Application settings.
    """
    factory = get_factory(settings)

    # Pre-initialize critical services to fail fast
    factory.get_blob_storage()
    factory.get_document_db()
    factory.get_video_host()
    factory.get_chunk_assembler()

    await factory.get_blob_storage().create_bucket(
        settings.blob_storage.buckets.staging
    )
    document_db = factory.get_document_db()
    collections = settings.document_db.collections
    await document_db.create_index(
        collections.staging_items, [("status", 1), ("created_at", 1)]
    )
    await document_db.create_index(
        collections.published_records, [("slug_readiness", 1), ("created_at", -1)]
    )
    await document_db.create_index(collections.process_logs, [("logged_at", -1)])


async def shutdown_services() -> None:
    """Shutdown all infrastructure services."""
    try:
        factory = get_factory()
        await factory.close_all()
    except ValueError:
        pass  # Factory not initialized
    finally:
        reset_factory()
        get_settings.cache_clear()
