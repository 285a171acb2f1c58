"""SQL-backed book record storage using SQLModel."""

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import Column, DateTime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from bookshelf.api.schemas.books import Book
from bookshelf.core.books.records import RecordStore
from bookshelf.core.errors import BookNotFound, StorageFailure

logger = structlog.get_logger(__name__)


class BookTable(SQLModel, table=True):
    """Database persistence model for books.

    AUTOINCREMENT keeps SQLite from handing out the id of a deleted row again.
    """

    __tablename__ = "book"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=255)
    published_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_book(row: BookTable) -> Book:
    return Book(id=row.id, title=row.title, published_at=_as_utc(row.published_at))


class SqlRecordStore(RecordStore):
    """Record store that owns its engine and opens one session per operation."""

    def __init__(self, database_url: str) -> None:
        engine_kwargs: dict = {}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # each pooled connection would otherwise open its own empty database
                engine_kwargs["poolclass"] = StaticPool

        self._engine = create_engine(database_url, **engine_kwargs)
        SQLModel.metadata.create_all(self._engine, tables=[BookTable.__table__])
        logger.info("SQL record store ready", url=self._engine.url.render_as_string(hide_password=True))

    def create(self, title: str, published_at: datetime) -> Book:
        try:
            with Session(self._engine) as session:
                row = BookTable(title=title, published_at=published_at)
                session.add(row)
                session.commit()
                session.refresh(row)
                return _to_book(row)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Could not create book: {e}") from e

    def get(self, book_id: int) -> Optional[Book]:
        try:
            with Session(self._engine) as session:
                row = session.get(BookTable, book_id)
                return _to_book(row) if row else None
        except SQLAlchemyError as e:
            raise StorageFailure(f"Could not load book {book_id}: {e}") from e

    def list(self) -> list[Book]:
        try:
            with Session(self._engine) as session:
                rows = session.exec(select(BookTable).order_by(BookTable.id)).all()
                return [_to_book(r) for r in rows]
        except SQLAlchemyError as e:
            raise StorageFailure(f"Could not list books: {e}") from e

    def update(self, book: Book) -> Book:
        try:
            with Session(self._engine) as session:
                row = session.get(BookTable, book.id)
                if row is None:
                    raise BookNotFound()
                row.title = book.title
                row.published_at = book.published_at
                session.add(row)
                session.commit()
                session.refresh(row)
                return _to_book(row)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Could not update book {book.id}: {e}") from e

    def delete(self, book_id: int) -> bool:
        try:
            with Session(self._engine) as session:
                row = session.get(BookTable, book_id)
                if row is None:
                    return False
                session.delete(row)
                session.commit()
                return True
        except SQLAlchemyError as e:
            raise StorageFailure(f"Could not delete book {book_id}: {e}") from e

    def describe(self) -> str:
        return f"sql ({self._engine.url.get_backend_name()})"

    def close(self) -> None:
        """Dispose of pooled connections."""
        self._engine.dispose()
