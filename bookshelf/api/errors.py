"""Translate book service errors into JSON error responses."""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookshelf.api.schemas.books import ErrorResponse
from bookshelf.core.errors import (
    AttachmentNotFound,
    BookNotFound,
    BookServiceError,
    InvalidInput,
    StorageFailure,
)

logger = structlog.get_logger(__name__)

# A missing file is reported as a bad request, like a missing file type
STATUS_CODES: dict[type[BookServiceError], int] = {
    InvalidInput: status.HTTP_400_BAD_REQUEST,
    AttachmentNotFound: status.HTTP_400_BAD_REQUEST,
    BookNotFound: status.HTTP_404_NOT_FOUND,
    StorageFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_code_for(exc: BookServiceError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
        headers=headers,
    )


async def book_service_error_handler(request: Request, exc: BookServiceError) -> JSONResponse:
    """Handle expected book service failures."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("Storage failure", path=request.url.path, error=exc.message)
        return error_response(status_code, StorageFailure.default_message)
    return error_response(status_code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies, blank titles and bad path ids are all invalid data."""
    logger.debug("Request validation failed", path=request.url.path, errors=exc.errors())
    return error_response(status.HTTP_400_BAD_REQUEST, InvalidInput.default_message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes and wrong methods use the same error body."""
    return error_response(exc.status_code, str(exc.detail), headers=exc.headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(BookServiceError, book_service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
