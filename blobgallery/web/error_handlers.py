"""
FastAPI Exception Handlers

Maps store and upload exceptions to JSON error responses.
"""

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..storage.exceptions import (
    BlobNotFoundError,
    ContainerNotFoundError,
    InvalidBlockIdError,
    InvalidContainerNameError,
    StoreError,
    StoreUnavailableError,
)
from ..upload.exceptions import EmptyUploadError, NoFilesError, StreamReadError, UploadError

logger = logging.getLogger(__name__)


# Exception to HTTP status code mapping
EXCEPTION_STATUS_CODES = {
    BlobNotFoundError: status.HTTP_404_NOT_FOUND,
    ContainerNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidContainerNameError: status.HTTP_400_BAD_REQUEST,
    InvalidBlockIdError: status.HTTP_400_BAD_REQUEST,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    EmptyUploadError: status.HTTP_400_BAD_REQUEST,
    NoFilesError: status.HTTP_400_BAD_REQUEST,
    StreamReadError: status.HTTP_400_BAD_REQUEST,
    UploadError: status.HTTP_502_BAD_GATEWAY,
    StoreError: status.HTTP_502_BAD_GATEWAY,
}


def get_status_code_for_exception(exc: Exception) -> int:
    """
    Get HTTP status code for exception type.

    Exact type first, then the first matching base class in table order.
    """
    exc_type = type(exc)
    if exc_type in EXCEPTION_STATUS_CODES:
        return EXCEPTION_STATUS_CODES[exc_type]

    for exception_type, status_code in EXCEPTION_STATUS_CODES.items():
        if isinstance(exc, exception_type):
            return status_code

    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_body(request: Request, code: str, message: str, details: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
        },
        "request_id": getattr(request.state, "request_id", None),
    }


async def store_exception_handler(request: Request, exc: StoreError) -> JSONResponse:
    status_code = get_status_code_for_exception(exc)
    logger.warning(f"{request.method} {request.url.path} failed: {exc.error_code}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content=_error_body(request, exc.error_code, exc.message, exc.details),
    )


async def upload_exception_handler(request: Request, exc: UploadError) -> JSONResponse:
    status_code = get_status_code_for_exception(exc)
    logger.warning(f"{request.method} {request.url.path} failed: {exc.error_code}: {exc.message}")
    details = dict(exc.details, content_stored=exc.content_stored)
    return JSONResponse(
        status_code=status_code,
        content=_error_body(request, exc.error_code, exc.message, details),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: report the message and request ID, log the traceback."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "InternalError", str(exc), {"error_type": type(exc).__name__}),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all handlers on the application."""
    app.add_exception_handler(StoreError, store_exception_handler)
    app.add_exception_handler(UploadError, upload_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
