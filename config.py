"""
Configuration settings for the review scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PATH = Path.home() / ".review_scheduler" / "state.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="REVIEW_SCHEDULER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_DB_PATH}",
        description="SQLAlchemy connection string for review progress",
    )

    # ========================================
    # Session Selection
    # ========================================
    session_target_count: int = Field(
        default=20,
        ge=1,
        description="Default number of cards offered per study session",
    )
    low_mastery_threshold: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Cards below this mastery are always eligible for review",
    )
    min_practice_count: int = Field(
        default=3,
        ge=0,
        description="Cards studied fewer times than this are always eligible",
    )
    mastered_threshold: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Mastery level at which a card counts as mastered",
    )

    # ========================================
    # Grading
    # ========================================
    failure_delay_hours: int = Field(
        default=4,
        ge=0,
        description="Delay before re-showing an isolated failure on a card with failure history",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    def get_scheduler_config(self) -> dict[str, int]:
        """Get the scheduling thresholds as a dictionary."""
        return {
            "low_mastery_threshold": self.low_mastery_threshold,
            "min_practice_count": self.min_practice_count,
            "mastered_threshold": self.mastered_threshold,
            "failure_delay_hours": self.failure_delay_hours,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
