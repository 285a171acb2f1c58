"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from bookshelf.core.books.attachments import AttachmentStore
from bookshelf.core.books.records import InMemoryRecordStore
from bookshelf.core.books.service import BookService, get_book_service
from bookshelf.main import app


@pytest.fixture
def uploads_dir(tmp_path):
    """Root directory for uploaded book files."""
    return tmp_path / "uploads" / "books"


@pytest.fixture
def service(uploads_dir):
    """Book service backed by fresh stores."""
    return BookService(InMemoryRecordStore(), AttachmentStore(uploads_dir))


@pytest.fixture
def client(service):
    """Create a test client for the FastAPI app."""
    app.dependency_overrides[get_book_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def book(service):
    """A book that already exists."""
    return service.create("Тестовая книга")


@pytest.fixture
def sample_text():
    """Plain text payload for uploads."""
    return "Тестовое содержание файла".encode("utf-8")


@pytest.fixture
def sample_pdf():
    """Minimal bytes recognised as a PDF."""
    return b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n%%EOF\n"
