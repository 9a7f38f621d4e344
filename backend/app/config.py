"""
Doll Pin API: Application Configuration
=========================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or a .env file),
       validates types and ranges, and exposes a singleton `settings` object.
Who:   Imported by the application factory, the database layer and the
       image pipeline.
When:  Loaded once at module import time.

DATABASE_URL has no default. Constructing `Settings()` without it raises a
pydantic ValidationError, so the process refuses to start without a
storage connection string.
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Only the connection string and the listen port are expected to be set
    per deployment; everything else has a working default.
    """

    # ── Database ──────────────────────────────────────────────────────────
    # Async SQLAlchemy URL, e.g. postgresql+asyncpg://user:pw@host:5432/dolls
    # or sqlite+aiosqlite:///./dolls.db
    database_url: str = Field(
        ...,
        min_length=1,
        description="Async SQLAlchemy connection URL for the doll store",
    )

    # Pool sizing is ignored for SQLite URLs (see Database.connect)
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=5, ge=0, le=50)
    db_pool_pre_ping: bool = Field(default=True)

    # Run Base.metadata.create_all on startup. Turn off when Alembic owns the schema.
    db_create_schema: bool = Field(default=True)

    # ── Uploads ───────────────────────────────────────────────────────────
    # Staging area for originals and home of the served derivatives
    upload_dir: str = Field(default="./uploads")

    # 5 MiB per file
    max_upload_size: int = Field(default=5 * 1024 * 1024, ge=1024, le=52_428_800)

    max_batch_files: int = Field(default=5, ge=1, le=20)

    # ── Image Derivatives ─────────────────────────────────────────────────
    image_max_width: int = Field(default=800, ge=16, le=8000)
    image_max_height: int = Field(default=800, ge=16, le=8000)
    image_quality: int = Field(default=85, ge=1, le=100)

    # Empty string disables watermarking
    watermark_text: str = Field(default="")

    # ── CORS ──────────────────────────────────────────────────────────────
    # Comma-separated origins; "*" allows any origin
    cors_origins: str = Field(default="*")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=5000, ge=1, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    # "development" adds stack traces to 500 responses
    app_env: str = Field(default="production")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        valid_envs = {"production", "development"}
        lower = v.lower()
        if lower not in valid_envs:
            raise ValueError(f"Invalid app_env '{v}'. Must be one of: {valid_envs}")
        return lower

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,  # DATABASE_URL and database_url both work
        "extra": "ignore",
    }


# Singleton instance, imported throughout the application
settings = Settings()
