"""Book and book file API endpoints."""

import os
from typing import Annotated, BinaryIO, Iterator, Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from fastapi.responses import StreamingResponse

from bookshelf.api.schemas.books import (
    Book,
    CreateBookRequest,
    ErrorResponse,
    PatchBookRequest,
    UploadResponse,
)
from bookshelf.core.books.filetype import media_type_for
from bookshelf.core.books.service import BookService, get_book_service
from bookshelf.core.errors import StorageFailure

router = APIRouter(prefix="/api/books", tags=["Books"])

DOWNLOAD_CHUNK_SIZE = 64 * 1024

NOT_FOUND = {status.HTTP_404_NOT_FOUND: {"model": ErrorResponse, "description": "Book not found"}}
BAD_REQUEST = {status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Invalid request"}}

Service = Annotated[BookService, Depends(get_book_service)]


def _iter_file(stream: BinaryIO) -> Iterator[bytes]:
    try:
        while chunk := stream.read(DOWNLOAD_CHUNK_SIZE):
            yield chunk
    finally:
        stream.close()


# --- Book Management ---


@router.get("", response_model=list[Book])
def list_books(service: Service) -> list[Book]:
    """List all books in creation order."""
    return service.list()


@router.get("/{book_id}", response_model=Book, responses=NOT_FOUND)
def get_book(book_id: int, service: Service) -> Book:
    """Get a book by ID."""
    return service.get(book_id)


@router.post("", response_model=Book, status_code=status.HTTP_201_CREATED, responses=BAD_REQUEST)
def create_book(request: CreateBookRequest, service: Service) -> Book:
    """
    Create a book.

    The publication timestamp is always set by the server.
    """
    return service.create(request.title)


@router.patch("/{book_id}", response_model=Book, responses={**NOT_FOUND, **BAD_REQUEST})
def patch_book(
    book_id: int,
    service: Service,
    request: Optional[PatchBookRequest] = None,
) -> Book:
    """Update a book's title. Omitting the title leaves the book unchanged."""
    return service.patch(book_id, request.title if request else None)


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT, responses=NOT_FOUND)
def delete_book(book_id: int, service: Service) -> Response:
    """Delete a book together with its uploaded files."""
    service.delete(book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Files ---


@router.post(
    "/upload/{book_id}",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**NOT_FOUND, **BAD_REQUEST},
)
def upload_book_file(
    book_id: int,
    service: Service,
    file: Optional[UploadFile] = File(default=None, description="Book file (pdf, epub, mobi, ...)"),
) -> UploadResponse:
    """
    Upload a book file.

    The stored extension is inferred from the file itself. Uploading another
    file that resolves to the same extension replaces the previous one.
    """
    if file is None:
        stored = service.upload(book_id, None)
    else:
        stored = service.upload(book_id, file.file, filename=file.filename, content_type=file.content_type)
    return UploadResponse(file_path=stored.public_path)


@router.get(
    "/download/{book_id}",
    response_class=StreamingResponse,
    responses={
        status.HTTP_200_OK: {"content": {"application/octet-stream": {}}, "description": "Book file"},
        **NOT_FOUND,
        **BAD_REQUEST,
    },
)
def download_book_file(
    book_id: int,
    service: Service,
    file_type: Optional[str] = Query(
        default=None,
        alias="fileType",
        description="Stored file type, e.g. pdf, epub, mobi",
    ),
) -> StreamingResponse:
    """Download the file stored for a book under the given type."""
    stream = service.download(book_id, file_type)
    try:
        size = os.fstat(stream.fileno()).st_size
    except OSError as e:
        stream.close()
        raise StorageFailure(f"Could not stat {book_id}.{file_type}: {e}") from e
    headers = {
        "Content-Disposition": f'attachment; filename="{book_id}.{file_type}"',
        "Content-Length": str(size),
    }
    return StreamingResponse(_iter_file(stream), media_type=media_type_for(file_type), headers=headers)
