"""Errors raised by the book service and its stores."""


class BookServiceError(Exception):
    """Base class for expected book service failures."""

    default_message = "Book service error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(BookServiceError):
    """A required field is missing or malformed."""

    default_message = "Invalid data"


class NotFound(BookServiceError):
    """A referenced record or attachment does not exist."""

    default_message = "Not found"


class BookNotFound(NotFound):
    """No book record exists for the requested id."""

    default_message = "Book not found"


class AttachmentNotFound(NotFound):
    """The book exists but has no file of the requested type."""

    default_message = "File not found"


class StorageFailure(BookServiceError):
    """The record store or the attachment store failed with an I/O error."""

    default_message = "Storage failure"
