"""Book service: records plus their attached files."""

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import BinaryIO, Iterator, Optional

import structlog

from bookshelf.api.schemas.books import TITLE_MAX_LENGTH, Book
from bookshelf.core.books.attachments import AttachmentStore, StoredAttachment, get_attachment_store
from bookshelf.core.books.filetype import PROBE_SIZE, infer_extension
from bookshelf.core.books.records import RecordStore, get_record_store
from bookshelf.core.errors import AttachmentNotFound, BookNotFound, InvalidInput

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _validate_title(title: Optional[str]) -> str:
    if not isinstance(title, str) or not title.strip() or len(title) > TITLE_MAX_LENGTH:
        raise InvalidInput("Invalid data")
    return title


class _IdLock:
    """A per-id lock and the number of callers holding or waiting on it."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class BookService:
    """
    Orchestrates the record store and the attachment store.

    The book record is always looked up before the attachment store is
    touched, so an unknown id reports "book not found" even when stale files
    exist on disk. Operations on the same id are serialized in-process.
    """

    def __init__(self, records: RecordStore, attachments: AttachmentStore) -> None:
        self._records = records
        self._attachments = attachments
        self._locks: dict[int, _IdLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def records(self) -> RecordStore:
        return self._records

    @property
    def attachments(self) -> AttachmentStore:
        return self._attachments

    @contextmanager
    def _book_lock(self, book_id: int) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.get(book_id)
            if entry is None:
                entry = self._locks[book_id] = _IdLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[book_id]

    def _require(self, book_id: int) -> Book:
        book = self._records.get(book_id)
        if book is None:
            raise BookNotFound()
        return book

    # --- Records ---

    def list(self) -> list[Book]:
        """All books in insertion order."""
        return self._records.list()

    def get(self, book_id: int) -> Book:
        return self._require(book_id)

    def create(self, title: Optional[str]) -> Book:
        """Create a book stamped with the current time."""
        book = self._records.create(_validate_title(title), _utcnow())
        logger.info("Book created", book_id=book.id)
        return book

    def patch(self, book_id: int, title: Optional[str] = None) -> Book:
        """Update the title if one is given; otherwise return the record as is."""
        with self._book_lock(book_id):
            book = self._require(book_id)
            if title is None:
                return book
            updated = self._records.update(book.model_copy(update={"title": _validate_title(title)}))
            logger.info("Book updated", book_id=book_id)
            return updated

    def delete(self, book_id: int) -> None:
        """Delete a book and every file attached to it."""
        with self._book_lock(book_id):
            self._require(book_id)
            file_types = self._attachments.list_types(book_id)
            self._records.delete(book_id)
            removed = self._attachments.remove_all(book_id)
            logger.info("Book deleted", book_id=book_id, attachments_removed=removed, file_types=file_types)

    # --- Attachments ---

    def upload(
        self,
        book_id: int,
        stream: Optional[BinaryIO],
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> StoredAttachment:
        """
        Store a file for a book under its inferred extension.

        Args:
            book_id: Book to attach the file to
            stream: Uploaded bytes, or None when no file was sent
            filename: Client-side file name, used as an extension hint
            content_type: Client-side media type, used as an extension hint

        Returns:
            The stored attachment
        """
        with self._book_lock(book_id):
            self._require(book_id)
            if stream is None:
                raise InvalidInput("File not provided")

            head = stream.read(PROBE_SIZE)
            if not head:
                raise InvalidInput("File not provided")

            file_type = infer_extension(head, filename=filename, content_type=content_type)
            return self._attachments.save(book_id, file_type, stream, head=head)

    def download(self, book_id: int, file_type: Optional[str]) -> BinaryIO:
        """
        Open the file stored for a book under exactly this file type.

        The stream is opened while the book is locked, so it stays readable
        even if the book is deleted before the caller finishes reading.
        """
        with self._book_lock(book_id):
            self._require(book_id)
            if not file_type:
                raise InvalidInput("File type not provided")
            try:
                return self._attachments.open(book_id, file_type)
            except AttachmentNotFound:
                logger.info("Attachment missing", book_id=book_id, file_type=file_type)
                raise


# Singleton instance
_service: BookService | None = None


def get_book_service() -> BookService:
    """Get or create the book service singleton."""
    global _service
    if _service is None:
        _service = BookService(get_record_store(), get_attachment_store())
    return _service


def reset_book_service() -> None:
    """Drop the singleton so the next call rebuilds it."""
    global _service
    _service = None
