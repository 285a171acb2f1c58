"""Filesystem storage for book attachments."""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

import structlog

from bookshelf.config import get_settings
from bookshelf.core.books.filetype import is_valid_file_type, media_type_for
from bookshelf.core.errors import AttachmentNotFound, StorageFailure

logger = structlog.get_logger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


@dataclass
class StoredAttachment:
    """A file stored for a (book id, file type) pair."""

    book_id: int
    file_type: str
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def media_type(self) -> str:
        return media_type_for(self.file_type)

    @property
    def public_path(self) -> str:
        """Location reported to clients, relative to the public web root."""
        return f"/uploads/books/{self.book_id}/{self.filename}"

    def open(self) -> BinaryIO:
        """Open the stored bytes for reading."""
        try:
            return self.path.open("rb")
        except FileNotFoundError as e:
            raise AttachmentNotFound() from e
        except OSError as e:
            raise StorageFailure(f"Could not open {self.path}: {e}") from e


class AttachmentStore:
    """
    Stores at most one file per (book id, file type).

    Layout: ``{root}/{book_id}/{book_id}.{file_type}``. Saving the same type
    again overwrites the previous file. Writes are not atomic: a failure
    mid-copy leaves a truncated file behind.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def directory_for(self, book_id: int) -> Path:
        return self._root / str(book_id)

    def path_for(self, book_id: int, file_type: str) -> Path:
        if not is_valid_file_type(file_type):
            raise AttachmentNotFound()
        return self.directory_for(book_id) / f"{book_id}.{file_type}"

    def save(self, book_id: int, file_type: str, stream: BinaryIO, head: bytes = b"") -> StoredAttachment:
        """
        Write an attachment, replacing any previous file of the same type.

        Args:
            book_id: Owning book id
            file_type: Extension to store the file under
            stream: Remaining bytes to copy
            head: Bytes already consumed from the stream, written first

        Returns:
            The stored attachment
        """
        path = self.path_for(book_id, file_type)
        written = len(head)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as out:
                out.write(head)
                while True:
                    chunk = stream.read(COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    out.write(chunk)
                    written += len(chunk)
        except OSError as e:
            logger.error("Attachment write failed", book_id=book_id, file_type=file_type, error=str(e))
            raise StorageFailure(f"Could not write {path}: {e}") from e

        logger.info("Attachment stored", book_id=book_id, file_type=file_type, size_bytes=written)
        return StoredAttachment(book_id=book_id, file_type=file_type, path=path)

    def exists(self, book_id: int, file_type: str) -> bool:
        if not is_valid_file_type(file_type):
            return False
        return self.path_for(book_id, file_type).is_file()

    def get(self, book_id: int, file_type: str) -> StoredAttachment:
        """Locate a stored attachment or raise AttachmentNotFound."""
        if not self.exists(book_id, file_type):
            raise AttachmentNotFound()
        return StoredAttachment(book_id=book_id, file_type=file_type, path=self.path_for(book_id, file_type))

    def open(self, book_id: int, file_type: str) -> BinaryIO:
        """Open the stored bytes for a (book id, file type) pair."""
        return self.get(book_id, file_type).open()

    def list_types(self, book_id: int) -> list[str]:
        """File types currently stored for a book, sorted."""
        directory = self.directory_for(book_id)
        if not directory.is_dir():
            return []
        prefix = f"{book_id}."
        return sorted(
            p.name[len(prefix) :]
            for p in directory.iterdir()
            if p.is_file() and p.name.startswith(prefix)
        )

    def remove_all(self, book_id: int) -> bool:
        """Remove every attachment of a book. Returns False if there were none."""
        directory = self.directory_for(book_id)
        if not directory.exists():
            return False
        try:
            shutil.rmtree(directory)
        except OSError as e:
            logger.error("Attachment cleanup failed", book_id=book_id, error=str(e))
            raise StorageFailure(f"Could not remove {directory}: {e}") from e
        return True


# Singleton instance
_store: AttachmentStore | None = None


def get_attachment_store() -> AttachmentStore:
    """Get or create the attachment store singleton."""
    global _store
    if _store is None:
        _store = AttachmentStore(get_settings().uploads_dir)
    return _store


def reset_attachment_store() -> None:
    """Drop the singleton so the next call rebuilds it from settings."""
    global _store
    _store = None
