"""Application settings using Pydantic."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MEGABYTE = 1024 * 1024


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # File policy
    max_file_size_bytes: int = 20 * MEGABYTE
    max_batch_size_bytes: int = 50 * MEGABYTE
    allowed_media_types: list[str] = Field(
        default_factory=lambda: ["image/*", "video/*", "audio/*", "application/pdf"]
    )
    min_batch_files: int = 2

    # Phase 1 request shape: one batched request or one request per file
    extraction_mode: Literal["batched", "per_file"] = "batched"

    # Text rendering attached to PDF payloads
    pdf_text_max_chars: int = 20000

    # Source-type keyword -> credibility. Checked in order; first match wins.
    credibility_ranking: dict[str, str] = Field(
        default_factory=lambda: {
            "access_log": "very_high",
            "log": "very_high",
            "statement": "very_high",
            "record": "very_high",
            "email": "high",
            "transcript": "high",
            "minutes": "high",
            "metadata": "high",
            "photo": "medium",
            "report": "medium",
            "interview": "low",
            "testimony": "low",
            "script": "low",
        }
    )
    default_credibility: str = "low"

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
