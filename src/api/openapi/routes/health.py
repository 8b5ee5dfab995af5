"""Health check endpoints."""

from enum import Enum

from fastapi import APIRouter
from pydantic import BaseModel, Field

from src.api.dependencies import FactoryDep, SettingsDep
from src.infrastructure.factory import InfrastructureFactory

router = APIRouter()


class HealthStatus(str, Enum):
    """Health check status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status of a single component."""

    name: str = Field(description="Component name")
    status: HealthStatus = Field(description="Component health status")
    latency_ms: float | None = Field(default=None, description="Check latency")
    message: str | None = Field(default=None, description="Additional details")


class HealthResponse(BaseModel):
    """Health check response."""

    status: HealthStatus = Field(description="Overall health status")
    version: str = Field(description="Application version")
    environment: str = Field(description="Deployment environment")
    components: list[ComponentHealth] = Field(
        default_factory=list,
        description="Individual component health",
    )


class LivenessResponse(BaseModel):
    """Simple liveness response."""

    status: str = Field(default="ok")


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool = Field(description="Whether the service is ready to accept requests")
    checks: dict[str, bool] = Field(
        default_factory=dict,
        description="Individual readiness checks",
    )


async def _check_components(factory: InfrastructureFactory) -> list[ComponentHealth]:
    """Run each provider's health check, turning failures into UNHEALTHY."""
    checks = {
        "blob_storage": factory.get_blob_storage,
        "document_db": factory.get_document_db,
        "video_host": factory.get_video_host,
    }
    components: list[ComponentHealth] = []
    for name, get_provider in checks.items():
        try:
            result = await get_provider().health_check()
        except Exception as e:
            components.append(
                ComponentHealth(
                    name=name, status=HealthStatus.UNHEALTHY, message=str(e)
                )
            )
            continue
        components.append(
            ComponentHealth(
                name=name,
                status=HealthStatus.HEALTHY
                if result.healthy
                else HealthStatus.UNHEALTHY,
                latency_ms=result.latency_ms,
                message=result.message,
            )
        )
    return components


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Get overall health status of the service and its components.",
)
async def health_check(
    settings: SettingsDep,
    factory: FactoryDep,
) -> HealthResponse:
    """Check health of all service components."""
    components = await _check_components(factory)

    # Storage outages make the service unusable; a host outage only
    # blocks drain runs
    unhealthy = {c.name for c in components if c.status == HealthStatus.UNHEALTHY}
    if unhealthy & {"blob_storage", "document_db"}:
        overall_status = HealthStatus.UNHEALTHY
    elif unhealthy:
        overall_status = HealthStatus.DEGRADED
    else:
        overall_status = HealthStatus.HEALTHY

    return HealthResponse(
        status=overall_status,
        version=settings.app.version,
        environment=settings.app.environment,
        components=components,
    )


@router.get(
    "/health/live",
    response_model=LivenessResponse,
    summary="Liveness check",
    description="Simple liveness check for Kubernetes.",
)
async def liveness() -> LivenessResponse:
    """Simple liveness check - just verifies the app is running."""
    return LivenessResponse(status="ok")


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Readiness check for Kubernetes.",
)
async def readiness(
    factory: FactoryDep,
) -> ReadinessResponse:
    """Check if the staging stores are reachable.

    The video host is not required for readiness; intake works without it.
    """
    components = await _check_components(factory)
    checks = {
        c.name: c.status == HealthStatus.HEALTHY
        for c in components
        if c.name != "video_host"
    }
    return ReadinessResponse(ready=all(checks.values()), checks=checks)
