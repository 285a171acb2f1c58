"""Book and attachment schemas."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

TITLE_MAX_LENGTH = 255


class Book(BaseModel):
    """A book record."""

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(description="Book identifier assigned by the record store")
    title: str = Field(description="Book title")
    published_at: datetime = Field(
        alias="publishedAt",
        description="Creation instant, stamped by the server",
    )

    @field_serializer("published_at")
    def serialize_published_at(self, value: datetime) -> str:
        """Second precision with an explicit UTC offset, e.g. 2024-05-01T12:00:00+00:00."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def _reject_blank(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        raise ValueError("title must not be blank")
    return value


class CreateBookRequest(BaseModel):
    """Request to create a book. Any client-supplied publishedAt is ignored."""

    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH, examples=["Новая книга"])

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value):
        return _reject_blank(value)


class PatchBookRequest(BaseModel):
    """Partial update. An absent title leaves the record unchanged."""

    title: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=TITLE_MAX_LENGTH,
        examples=["Частично обновленная книга"],
    )

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value):
        return _reject_blank(value)


class UploadResponse(BaseModel):
    """Confirmation returned after a file upload."""

    message: str = Field(default="File uploaded successfully")
    file_path: str = Field(description="Public path of the stored file", examples=["/uploads/books/1/1.pdf"])


class ErrorResponse(BaseModel):
    """Error body shared by every failing endpoint."""

    error: str = Field(examples=["Book not found"])
