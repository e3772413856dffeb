"""Configuration management for the subtitle translation service."""

from pathlib import Path
from typing import Annotated, List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# This file is in src/common/, so go up 2 levels to project root
_PROJECT_ROOT = Path(__file__).parent.parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        case_sensitive=False,
        extra="ignore",
    )

    # Redis Configuration (translation history)
    redis_url: str = Field(default="redis://localhost:6379")
    history_redis_key: str = Field(default="translation:history")
    history_max_records: int = Field(default=20)

    # API Configuration
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    cors_allowed_origins: Optional[str] = Field(
        default=None,
        description="Comma-separated list of allowed CORS origins",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_file_enabled: bool = Field(default=False)  # Also write ./logs/<service>_<date>.log

    # Finished runs kept in memory for polling and downloads
    max_tracked_runs: int = Field(default=50)

    # Translation Service (OpenAI)
    openai_api_key: Optional[str] = Field(default=None)
    openai_model: str = Field(default="gpt-4o-mini")
    openai_max_tokens: int = Field(default=8192)
    openai_temperature: float = Field(
        default=0.3
    )  # Lower for consistent translations
    openai_request_timeout: float = Field(default=120.0)

    # OpenAI Retry Configuration
    openai_max_retries: int = Field(
        default=3
    )  # Maximum number of retry attempts after initial try
    openai_retry_initial_delay: float = Field(default=2.0)
    openai_retry_max_delay: float = Field(default=60.0)  # Backoff cap in seconds
    openai_retry_exponential_base: int = Field(default=2)

    # Batch pipeline
    translation_batch_size: int = Field(
        default=100
    )  # Maximum entries per translation request
    translation_concurrent_limit: int = Field(
        default=5
    )  # Batches dispatched together in one window

    # Subtitle extensions accepted by the upload API
    subtitle_extensions: Annotated[List[str], NoDecode] = Field(
        default=[".srt", ".vtt", ".ass", ".ssa"]
    )

    @field_validator("subtitle_extensions", mode="before")
    @classmethod
    def parse_subtitle_extensions(cls, v: Union[str, List[str]]) -> List[str]:
        """
        Parse comma-separated string or return list as-is.

        Args:
            v: String with comma-separated extensions or list of extensions

        Returns:
            List of lowercase extension strings
        """
        if isinstance(v, str):
            return [ext.strip().lower() for ext in v.split(",") if ext.strip()]
        return v

    @field_validator("translation_batch_size", "translation_concurrent_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Batch size and concurrency limit must allow at least one request."""
        if v < 1:
            raise ValueError("must be at least 1")
        return v


# Global settings instance
settings = Settings()
