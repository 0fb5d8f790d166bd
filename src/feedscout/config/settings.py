"""Configuration management using Pydantic Settings."""

from pathlib import Path
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM provider
    gemini_api_key: Optional[str] = Field(None, description="Google Generative AI API key")
    gemini_model: str = Field("gemini-2.5-flash", description="Model used for grounded search")
    gemini_base_url: str = Field("https://generativelanguage.googleapis.com/v1beta")
    gemini_timeout: float = Field(60.0, gt=0)

    # In-process LLM queue (requests per window)
    llm_max_requests_per_minute: int = Field(60, ge=1)
    llm_request_window: float = Field(60.0, gt=0)
    llm_safety_buffer: float = Field(0.1, ge=0)
    llm_backoff_base: float = Field(1.0, gt=0)
    llm_backoff_max: float = Field(30.0, gt=0)
    llm_max_retries: int = Field(3, ge=0, le=10)

    # Durable search queue
    queue_rate_limit: int = Field(60, ge=1, description="Queue items processed per minute")
    queue_max_retries: int = Field(3, ge=1, le=10)
    search_retries: int = Field(0, ge=0, le=5, description="LLM retries inside one queue attempt")

    # Storage
    database_path: Path = Field(Path(".cache/feedscout.db"))
    cleanup_days: int = Field(7, ge=1)

    # Scheduler authentication
    cron_secret: Optional[str] = Field(None, description="Bearer token expected from the scheduler")

    # Logging
    log_level: str = Field("INFO")
    log_format: str = Field("json", pattern="^(json|text)$")

    @field_validator("database_path")
    @classmethod
    def _create_parent_dir(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v


# Instantiate global settings
settings = Settings()
