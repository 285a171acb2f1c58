"""Book management module."""

from bookshelf.core.books.attachments import AttachmentStore, StoredAttachment, get_attachment_store
from bookshelf.core.books.records import InMemoryRecordStore, RecordStore, get_record_store
from bookshelf.core.books.service import BookService, get_book_service

__all__ = [
    "AttachmentStore",
    "StoredAttachment",
    "get_attachment_store",
    "InMemoryRecordStore",
    "RecordStore",
    "get_record_store",
    "BookService",
    "get_book_service",
]
