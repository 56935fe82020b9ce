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

    # Storage
    data_dir: Path = Field(Path(".data"))
    database_path: Optional[Path] = Field(None, description="SQLite file for campaigns and jobs")

    # Text moderation service
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key for moderation")
    moderation_url: str = Field("https://api.openai.com/v1/moderations")
    moderation_model: str = Field("omni-moderation-latest")
    moderation_timeout: float = Field(10.0, gt=0)
    moderation_max_chars: int = Field(4000, ge=1, le=4000)
    moderation_max_retries: int = Field(2, ge=1, le=5)

    # Job queue
    claim_batch_limit: int = Field(5, ge=1, le=5)
    worker_poll_interval: float = Field(30.0, gt=0)
    worker_count: int = Field(1, ge=1)
    lock_timeout_minutes: int = Field(15, ge=1)

    # HTTP trigger
    cron_secret: Optional[str] = Field(None, description="Bearer secret for the cron endpoint")

    # Logging
    log_level: str = Field("INFO")
    log_format: str = Field("json", pattern="^(json|text)$")

    @field_validator("data_dir")
    @classmethod
    def _create_dirs(cls, v: Path) -> Path:
        v.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def db_path(self) -> Path:
        return self.database_path or self.data_dir / "screening.db"


# Instantiate global settings
settings = Settings()
