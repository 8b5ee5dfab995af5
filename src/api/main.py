"""FastAPI application for the media staging server."""

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.dependencies import get_settings, init_services, shutdown_services
from src.api.middleware.error_handler import error_handler_middleware
from src.api.middleware.logging import LoggingMiddleware
from src.api.openapi.routes import health, host, published, staging
from src.commons.settings.models import Settings
from src.commons.telemetry import configure_logging
from src.commons.telemetry.logger import JsonFormatter, TextFormatter

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _log_level(settings: Settings) -> int:
    name = settings.telemetry.log_level or settings.app.log_level
    return getattr(logging, name.upper())


def _setup_logging(settings: Settings) -> None:
    """Route the `src` logger tree through our formatter.

    Runs at import so records emitted while uvicorn boots are formatted too.
    """
    configure_logging(
        level=logging.getLevelName(_log_level(settings)),
        format_type=settings.telemetry.log_format,
        logger_name="src",
    )
    logging.getLogger().setLevel(_log_level(settings))


def _adopt_uvicorn_loggers(settings: Settings) -> None:
    """Give uvicorn's access and error logs the same format as ours."""
    level = _log_level(settings)
    formatter: logging.Formatter = (
        JsonFormatter()
        if settings.telemetry.log_format == "json"
        else TextFormatter()
    )

    for name in UVICORN_LOGGERS:
        uv_logger = logging.getLogger(name)
        uv_logger.setLevel(level)
        if not uv_logger.handlers:
            uv_logger.addHandler(logging.StreamHandler(sys.stdout))
            uv_logger.propagate = False
        for handler in uv_logger.handlers:
            handler.setFormatter(formatter)
            handler.setLevel(level)


_setup_logging(get_settings())


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Open storage and host connections, then drain writes before closing.

    Stale 'uploading' items are not reset here; the operator runs
    reconcile explicitly.
    """
    settings = get_settings()
    _adopt_uvicorn_loggers(settings)
    await init_services(settings)

    yield

    # Streaming uploads can outlive their response
    await staging.wait_for_background_writes()
    await shutdown_services()


def create_app() -> FastAPI:
    """Build the staging server application.

    Returns:
        FastAPI app with middleware and every router mounted.
    """
    settings = get_settings()
    docs = settings.server.docs_enabled

    app = FastAPI(
        title=settings.app.name,
        version=settings.app.version,
        description=(
            "Media staging server - stage large video uploads and publish them "
            "to the external video host"
        ),
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url="/openapi.json" if docs else None,
        lifespan=lifespan,
    )

    # Starlette runs the last added middleware first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.middleware("http")(error_handler_middleware)

    # Health checks stay unprefixed and open
    app.include_router(health.router, tags=["Health"])
    for router, tag in (
        (staging.router, "Staging"),
        (published.router, "Published"),
        (host.router, "Video Host"),
    ):
        app.include_router(router, prefix=settings.server.api_prefix, tags=[tag])

    return app


app = create_app()
