"""Book record storage."""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from bookshelf.api.schemas.books import Book
from bookshelf.config import Settings, get_settings
from bookshelf.core.errors import BookNotFound


class RecordStore(ABC):
    """Persists book records and assigns their ids."""

    @abstractmethod
    def create(self, title: str, published_at: datetime) -> Book:
        """Store a new record and return it with its assigned id."""
        pass

    @abstractmethod
    def get(self, book_id: int) -> Optional[Book]:
        """Get a record by id, or None if it does not exist."""
        pass

    @abstractmethod
    def list(self) -> list[Book]:
        """List all records in insertion order."""
        pass

    @abstractmethod
    def update(self, book: Book) -> Book:
        """Replace the stored record with the same id."""
        pass

    @abstractmethod
    def delete(self, book_id: int) -> bool:
        """Delete a record. Returns False if it did not exist."""
        pass

    def describe(self) -> str:
        """Short backend description for health reporting."""
        return type(self).__name__


class InMemoryRecordStore(RecordStore):
    """Simple in-memory store for book records."""

    def __init__(self) -> None:
        self._books: dict[int, Book] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def create(self, title: str, published_at: datetime) -> Book:
        with self._lock:
            book = Book(id=self._next_id, title=title, published_at=published_at)
            self._next_id += 1
            self._books[book.id] = book
            return book.model_copy()

    def get(self, book_id: int) -> Optional[Book]:
        with self._lock:
            book = self._books.get(book_id)
            return book.model_copy() if book else None

    def list(self) -> list[Book]:
        with self._lock:
            return [b.model_copy() for b in self._books.values()]

    def update(self, book: Book) -> Book:
        with self._lock:
            if book.id not in self._books:
                raise BookNotFound()
            self._books[book.id] = book.model_copy()
            return book

    def delete(self, book_id: int) -> bool:
        with self._lock:
            return self._books.pop(book_id, None) is not None

    def describe(self) -> str:
        return "memory"


def build_record_store(settings: Settings) -> RecordStore:
    """Create the record store backend selected in settings."""
    if settings.record_store == "sql":
        from bookshelf.core.books.sql import SqlRecordStore

        return SqlRecordStore(settings.database_url)
    return InMemoryRecordStore()


# Singleton instance
_store: RecordStore | None = None


def get_record_store() -> RecordStore:
    """Get or create the record store singleton."""
    global _store
    if _store is None:
        _store = build_record_store(get_settings())
    return _store


def reset_record_store() -> None:
    """Drop the singleton so the next call rebuilds it from settings."""
    global _store
    _store = None
