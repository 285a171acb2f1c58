"""API routes."""

from bookshelf.api.routes.health import router as health_router
from bookshelf.api.routes.books import router as books_router

__all__ = ["health_router", "books_router"]
