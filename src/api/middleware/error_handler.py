"""Error envelope middleware.

Every failure leaves the API as::

    {"error": {"code": ..., "message": ..., "details": {...}, "request_id": ...}}

Domain exceptions are mapped to a status code and error code by
``ERROR_RULES``; anything unmapped becomes a 500 with a generic message.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import RequestResponseEndpoint
from starlette.responses import Response

from src.commons.telemetry.logger import get_logger
from src.domain.exceptions import (
    ChunkAssemblyError,
    ChunkSequenceError,
    DomainException,
    OperatorRequiredError,
    PublishedRecordNotFoundError,
    RunAlreadyActiveError,
    StagingItemNotFoundError,
    StagingValidationError,
    VideoHostError,
)

logger = get_logger(__name__)


class APIError(Exception):
    """Error raised by route code that already knows its wire shape."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


@dataclass(frozen=True)
class ErrorRule:
    """How one exception type is rendered."""

    code: str
    status_code: int
    details: Callable[[Any], dict[str, Any]] | None = None
    level: int = logging.WARNING


def _operator_code(exc: OperatorRequiredError) -> tuple[str, int]:
    if exc.is_authenticated:
        return "FORBIDDEN", status.HTTP_403_FORBIDDEN
    return "UNAUTHENTICATED", status.HTTP_401_UNAUTHORIZED


# Checked in order; subclasses must come before DomainException
ERROR_RULES: list[tuple[type[DomainException], ErrorRule]] = [
    (
        StagingValidationError,
        ErrorRule(
            "VALIDATION_ERROR",
            status.HTTP_400_BAD_REQUEST,
            lambda e: {"field": e.field} if e.field else {},
        ),
    ),
    (
        StagingItemNotFoundError,
        ErrorRule(
            "STAGING_ITEM_NOT_FOUND",
            status.HTTP_404_NOT_FOUND,
            lambda e: {"staging_id": e.staging_id},
        ),
    ),
    (
        PublishedRecordNotFoundError,
        ErrorRule(
            "PUBLISHED_RECORD_NOT_FOUND",
            status.HTTP_404_NOT_FOUND,
            lambda e: {"record_id": e.record_id},
        ),
    ),
    (
        ChunkSequenceError,
        ErrorRule(
            "CHUNKS_MISSING",
            status.HTTP_409_CONFLICT,
            lambda e: {"upload_id": e.upload_id, "missing_indexes": e.missing_indexes},
        ),
    ),
    (
        RunAlreadyActiveError,
        ErrorRule(
            "RUN_ALREADY_ACTIVE",
            status.HTTP_409_CONFLICT,
            lambda e: {"state": e.state.model_dump(mode="json")},
        ),
    ),
    (
        ChunkAssemblyError,
        ErrorRule(
            "CHUNK_ASSEMBLY_FAILED",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            lambda e: {"upload_id": e.upload_id},
            logging.ERROR,
        ),
    ),
    (
        VideoHostError,
        ErrorRule(
            "VIDEO_HOST_ERROR",
            status.HTTP_502_BAD_GATEWAY,
            lambda e: {"operation": e.operation, "upstream_status": e.status_code},
            logging.ERROR,
        ),
    ),
    (DomainException, ErrorRule("DOMAIN_ERROR", status.HTTP_400_BAD_REQUEST)),
]


def error_response(
    request: Request,
    code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Render the error envelope, tagged with the request id."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
                "request_id": getattr(request.state, "request_id", "unknown"),
            }
        },
    )


def render_exception(request: Request, exc: Exception) -> JSONResponse:
    """Map an exception raised below the middleware to an error response."""
    if isinstance(exc, APIError):
        logger.warning(
            f"API error: {exc.code}",
            extra={"error_code": exc.code, "details": exc.details},
        )
        return error_response(
            request, exc.code, exc.message, exc.status_code, exc.details
        )

    if isinstance(exc, OperatorRequiredError):
        code, status_code = _operator_code(exc)
        logger.warning(f"Operator check failed: {exc}", extra={"error_code": code})
        details = {"required_role": exc.required_role} if exc.is_authenticated else {}
        return error_response(request, code, str(exc), status_code, details)

    for exc_type, rule in ERROR_RULES:
        if isinstance(exc, exc_type):
            logger.log(rule.level, str(exc), extra={"error_code": rule.code})
            details = rule.details(exc) if rule.details else {}
            return error_response(
                request, rule.code, str(exc), rule.status_code, details
            )

    logger.exception(f"Unexpected error: {exc}")
    return error_response(
        request,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def error_handler_middleware(
    request: Request,
    call_next: RequestResponseEndpoint,
) -> Response:
    """Turn any exception escaping a route into the error envelope."""
    try:
        return await call_next(request)
    except Exception as exc:
        return render_exception(request, exc)
