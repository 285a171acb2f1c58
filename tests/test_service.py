"""Tests for the book service."""

import io
import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from bookshelf.config import get_settings
from bookshelf.core.books.attachments import AttachmentStore, reset_attachment_store
from bookshelf.core.books.records import InMemoryRecordStore, reset_record_store
from bookshelf.core.books.service import BookService, get_book_service, reset_book_service
from bookshelf.core.errors import AttachmentNotFound, BookNotFound, InvalidInput


@pytest.fixture
def spy_attachments():
    return MagicMock(spec=AttachmentStore)


@pytest.fixture
def spied_service(spy_attachments):
    return BookService(InMemoryRecordStore(), spy_attachments)


def test_create_stamps_current_time(service):
    before = datetime.now(timezone.utc)
    book = service.create("Новая книга")
    after = datetime.now(timezone.utc)

    assert book.id == 1
    assert book.title == "Новая книга"
    assert before.replace(microsecond=0) <= book.published_at <= after
    assert book.published_at.microsecond == 0
    assert service.get(book.id) == book


@pytest.mark.parametrize("title", [None, "", "   ", "x" * 256, 42])
def test_create_rejects_invalid_title(service, title):
    with pytest.raises(InvalidInput):
        service.create(title)
    assert service.list() == []


def test_list_in_insertion_order(service):
    titles = ["Первая", "Вторая", "Третья"]
    for title in titles:
        service.create(title)

    assert [b.title for b in service.list()] == titles


def test_get_unknown_book(service):
    with pytest.raises(BookNotFound):
        service.get(1)


def test_patch_changes_only_title(service, book):
    updated = service.patch(book.id, "Обновленная книга")

    assert updated.title == "Обновленная книга"
    assert updated.id == book.id
    assert updated.published_at == book.published_at
    assert service.get(book.id).title == "Обновленная книга"


def test_patch_without_title_leaves_book_unchanged(service, book):
    assert service.patch(book.id) == book
    assert service.get(book.id) == book


def test_patch_blank_title(service, book):
    with pytest.raises(InvalidInput):
        service.patch(book.id, " ")
    assert service.get(book.id).title == book.title


def test_delete_removes_record_and_files(service, book, uploads_dir, sample_pdf):
    service.upload(book.id, io.BytesIO(sample_pdf), filename="book.pdf")

    service.delete(book.id)

    with pytest.raises(BookNotFound):
        service.get(book.id)
    assert not (uploads_dir / str(book.id)).exists()


def test_delete_without_files(service, book):
    service.delete(book.id)
    assert service.list() == []


def test_ids_are_not_reused_after_delete(service):
    first = service.create("Одна")
    second = service.create("Две")
    service.delete(second.id)

    third = service.create("Три")

    assert third.id not in (first.id, second.id)


def test_upload_and_download_round_trip(service, book, sample_pdf):
    stored = service.upload(book.id, io.BytesIO(sample_pdf), filename="book.pdf", content_type="application/pdf")

    assert stored.file_type == "pdf"
    assert stored.public_path == f"/uploads/books/{book.id}/{book.id}.pdf"
    with service.download(book.id, "pdf") as stream:
        assert stream.read() == sample_pdf


def test_upload_large_file_keeps_every_byte(service, book):
    payload = b"%PDF-1.7\n" + bytes(range(256)) * 4096

    service.upload(book.id, io.BytesIO(payload))

    with service.download(book.id, "pdf") as stream:
        assert stream.read() == payload


def test_upload_same_type_overwrites(service, book):
    service.upload(book.id, io.BytesIO(b"first payload"), filename="a.txt")
    service.upload(book.id, io.BytesIO(b"second"), filename="b.txt")

    with service.download(book.id, "txt") as stream:
        assert stream.read() == b"second"


def test_upload_different_types_coexist(service, book, sample_pdf, sample_text):
    service.upload(book.id, io.BytesIO(sample_pdf))
    service.upload(book.id, io.BytesIO(sample_text))

    assert service.attachments.list_types(book.id) == ["pdf", "txt"]


def test_upload_without_file(service, book):
    with pytest.raises(InvalidInput, match="File not provided"):
        service.upload(book.id, None)


def test_upload_empty_file(service, book):
    with pytest.raises(InvalidInput, match="File not provided"):
        service.upload(book.id, io.BytesIO(b""))


def test_download_without_file_type(service, book):
    for file_type in [None, ""]:
        with pytest.raises(InvalidInput, match="File type not provided"):
            service.download(book.id, file_type)


def test_download_missing_file_is_distinct_from_missing_book(service, book):
    with pytest.raises(AttachmentNotFound) as excinfo:
        service.download(book.id, "epub")
    assert not isinstance(excinfo.value, BookNotFound)


def test_download_is_case_sensitive(service, book, sample_pdf):
    service.upload(book.id, io.BytesIO(sample_pdf))

    with pytest.raises(AttachmentNotFound):
        service.download(book.id, "PDF")


def test_download_rejects_unsafe_file_type(service, book):
    with pytest.raises(AttachmentNotFound):
        service.download(book.id, "../../etc/passwd")


def test_unknown_book_never_touches_attachments(spied_service, spy_attachments):
    with pytest.raises(BookNotFound):
        spied_service.upload(7, io.BytesIO(b"data"), filename="a.txt")
    with pytest.raises(BookNotFound):
        spied_service.download(7, "txt")
    with pytest.raises(BookNotFound):
        spied_service.delete(7)
    with pytest.raises(BookNotFound):
        spied_service.patch(7, "Название")

    assert spy_attachments.mock_calls == []


def test_book_checked_before_file_arguments(service):
    with pytest.raises(BookNotFound):
        service.upload(1, None)
    with pytest.raises(BookNotFound):
        service.download(1, None)


def test_upload_after_delete_is_rejected(service, book, uploads_dir):
    service.delete(book.id)

    with pytest.raises(BookNotFound):
        service.upload(book.id, io.BytesIO(b"late"), filename="late.txt")
    assert not (uploads_dir / str(book.id)).exists()


class GatedAttachmentStore(AttachmentStore):
    """Attachment store whose save and remove_all wait until released."""

    def __init__(self, root):
        super().__init__(root)
        self.entered = threading.Event()
        self.release = threading.Event()

    def _wait(self):
        self.entered.set()
        self.release.wait(timeout=5)

    def save(self, *args, **kwargs):
        self._wait()
        return super().save(*args, **kwargs)

    def remove_all(self, book_id):
        self._wait()
        return super().remove_all(book_id)


def _run(target, *args, **kwargs):
    outcome = {}

    def work():
        try:
            outcome["result"] = target(*args, **kwargs)
        except Exception as e:
            outcome["error"] = e

    thread = threading.Thread(target=work, daemon=True)
    thread.start()
    return thread, outcome


@pytest.fixture
def gated_service(uploads_dir):
    return BookService(InMemoryRecordStore(), GatedAttachmentStore(uploads_dir))


def test_delete_waits_for_upload_in_progress(gated_service, uploads_dir, sample_pdf):
    book = gated_service.create("Книга")
    gate = gated_service.attachments

    upload, upload_outcome = _run(gated_service.upload, book.id, io.BytesIO(sample_pdf))
    assert gate.entered.wait(timeout=5)
    gate.entered.clear()

    delete, delete_outcome = _run(gated_service.delete, book.id)
    delete.join(timeout=0.2)
    assert delete.is_alive()
    assert gated_service.records.get(book.id) is not None

    gate.release.set()
    upload.join(timeout=5)
    delete.join(timeout=5)

    assert "error" not in upload_outcome
    assert "error" not in delete_outcome
    assert gated_service.records.get(book.id) is None
    assert not (uploads_dir / str(book.id)).exists()


def test_upload_waiting_on_delete_is_rejected(gated_service, uploads_dir, sample_pdf):
    book = gated_service.create("Книга")
    gate = gated_service.attachments

    delete, delete_outcome = _run(gated_service.delete, book.id)
    assert gate.entered.wait(timeout=5)
    gate.entered.clear()

    upload, upload_outcome = _run(gated_service.upload, book.id, io.BytesIO(sample_pdf))
    upload.join(timeout=0.2)
    assert upload.is_alive()

    gate.release.set()
    delete.join(timeout=5)
    upload.join(timeout=5)

    assert "error" not in delete_outcome
    assert isinstance(upload_outcome["error"], BookNotFound)
    assert not (uploads_dir / str(book.id)).exists()
    assert gated_service._locks == {}


def test_locks_released_for_unknown_ids(service):
    for book_id in range(1, 501):
        with pytest.raises(BookNotFound):
            service.download(book_id, "pdf")
        with pytest.raises(BookNotFound):
            service.upload(book_id, io.BytesIO(b"data"))
        with pytest.raises(BookNotFound):
            service.patch(book_id, "Название")

    assert service._locks == {}


def test_locks_released_after_operations(service, book, sample_pdf):
    service.upload(book.id, io.BytesIO(sample_pdf))
    service.download(book.id, "pdf").close()
    service.patch(book.id, "Другое название")
    with pytest.raises(AttachmentNotFound):
        service.download(book.id, "epub")

    assert service._locks == {}


@pytest.fixture
def fresh_singletons():
    def reset():
        get_settings.cache_clear()
        reset_record_store()
        reset_attachment_store()
        reset_book_service()

    reset()
    yield
    reset()


def test_default_service_is_built_from_settings(monkeypatch, tmp_path, fresh_singletons):
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "files"))
    monkeypatch.setenv("RECORD_STORE", "memory")

    service = get_book_service()

    assert service is get_book_service()
    assert service.attachments.root == tmp_path / "files"
    assert isinstance(service.records, InMemoryRecordStore)
