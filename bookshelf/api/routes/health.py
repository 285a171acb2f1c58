"""Health check endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from bookshelf.config import get_settings
from bookshelf.core.books.service import BookService, get_book_service

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict:
    """Basic health check endpoint."""
    return {"status": "healthy"}


@router.get("/health/ready")
def readiness_check(service: Annotated[BookService, Depends(get_book_service)]) -> dict:
    """Readiness check - verifies both stores are reachable."""
    settings = get_settings()
    service.records.get(0)
    return {
        "status": "ready",
        "record_store": service.records.describe(),
        "uploads_dir": str(service.attachments.root),
        "app": settings.app_name,
    }


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness check - verifies service is running."""
    return {"status": "alive"}
