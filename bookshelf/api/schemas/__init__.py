"""API schemas."""

from bookshelf.api.schemas.books import (
    Book,
    CreateBookRequest,
    ErrorResponse,
    PatchBookRequest,
    UploadResponse,
)

__all__ = ["Book", "CreateBookRequest", "ErrorResponse", "PatchBookRequest", "UploadResponse"]
