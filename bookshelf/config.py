"""Application configuration using Pydantic settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Bookshelf Service"
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Record store
    record_store: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite:///./bookshelf.db"

    # Attachments
    uploads_dir: Path = Path("public/uploads/books")

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
