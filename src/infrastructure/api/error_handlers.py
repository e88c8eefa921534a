from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.domain.errors import (
    ArtifactDownloadFailed,
    ClassifierUnavailable,
    ContainerUnavailable,
    DomainError,
    FeatureNotImplemented,
    InvalidRevertIndex,
    NothingToUndo,
    OriginalImageAlreadySet,
    PipelineStageFailed,
    ProjectNotFound,
    StageError,
    StageTimeout,
    StorageError,
    UpstreamQuotaExceeded,
)

logger = logging.getLogger(__name__)

# Most specific class wins: lookup walks the exception's MRO
STATUS_BY_FAULT: dict[type[Exception], int] = {
    ProjectNotFound: status.HTTP_404_NOT_FOUND,
    NothingToUndo: status.HTTP_400_BAD_REQUEST,
    InvalidRevertIndex: status.HTTP_400_BAD_REQUEST,
    OriginalImageAlreadySet: status.HTTP_409_CONFLICT,
    ContainerUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    StageTimeout: status.HTTP_504_GATEWAY_TIMEOUT,
    StageError: status.HTTP_502_BAD_GATEWAY,
    ArtifactDownloadFailed: status.HTTP_502_BAD_GATEWAY,
    StorageError: status.HTTP_502_BAD_GATEWAY,
    UpstreamQuotaExceeded: status.HTTP_429_TOO_MANY_REQUESTS,
    ClassifierUnavailable: status.HTTP_502_BAD_GATEWAY,
    FeatureNotImplemented: status.HTTP_501_NOT_IMPLEMENTED,
}


def status_for(exc: Exception) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_FAULT:
            return STATUS_BY_FAULT[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def pipeline_stage_failed_handler(request: Request, exc: PipelineStageFailed) -> JSONResponse:
    code = status_for(exc.cause)
    if code == status.HTTP_500_INTERNAL_SERVER_ERROR:
        code = status.HTTP_502_BAD_GATEWAY
    return JSONResponse(
        status_code=code,
        content={
            "detail": str(exc),
            "error": type(exc).__name__,
            "pipeline": exc.pipeline,
            "stage": exc.stage,
            "cause": type(exc.cause).__name__,
        },
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    headers = {"Retry-After": "60"} if isinstance(exc, UpstreamQuotaExceeded) else None
    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "error": type(exc).__name__},
        headers=headers,
    )


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "error": "ValueError"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineStageFailed, pipeline_stage_failed_handler)
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
