"""
Configuration settings for ethos-sim.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Ethos API
    # ========================================
    ethos_base_url: str = Field(
        default="https://api.ethossystems.com",
        description="Ethos API root URL",
    )
    ethos_api_key: str = Field(
        default="",
        description="Bearer access token for the Ethos API",
    )
    ethos_context_token: str = Field(
        default="",
        description="Organization context token (X-Context-Token header)",
    )
    ethos_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        description="Default per-request timeout",
    )

    # ========================================
    # Enrollment Discovery
    # ========================================
    enrollment_timeout_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Wall-clock budget for waiting on enrollment records",
    )
    enrollment_poll_seconds: float = Field(
        default=2.0,
        gt=0.0,
        description="Delay between enrollment discovery polls",
    )
    hydration_concurrency: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum in-flight detail fetches",
    )
    per_item_cap: int = Field(
        default=20,
        ge=1,
        description="Maximum learning items queried one by one",
    )
    default_course_id: str | None = Field(
        default=None,
        description="Course used when the published snapshot carries none",
    )

    # ========================================
    # Quiz / Lesson Simulation
    # ========================================
    card_poll_attempts: int = Field(default=10, ge=1)
    card_poll_seconds: float = Field(default=0.5, ge=0.0)
    score_poll_attempts: int = Field(default=10, ge=0)
    score_poll_seconds: float = Field(default=0.5, ge=0.0)

    lesson_completion_rate: float = Field(default=0.8, ge=0.0, le=1.0)
    quiz_participation_rate: float = Field(default=0.7, ge=0.0, le=1.0)
    quiz_score_mean: float = Field(default=0.78, ge=0.0, le=1.0)
    quiz_score_std: float = Field(default=0.12, ge=0.0, le=1.0)

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    @property
    def has_credentials(self) -> bool:
        """Check if API credentials are configured."""
        return bool(self.ethos_api_key and self.ethos_context_token)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
