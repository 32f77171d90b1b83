"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Import pipeline settings loaded from IMPORTER_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IMPORTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Execution store (import_executions / import_execution_logs)
    database_url: str = "sqlite:///./importer.db"
    log_level: str = "INFO"

    # Source timeouts
    connect_timeout_seconds: int = Field(10, ge=1)
    query_timeout_seconds: int = Field(30, ge=1)
    api_timeout_seconds: int = Field(30, ge=1)
    api_max_retries: int = Field(3, ge=0)
    api_backoff_factor: float = 0.5

    # Execution engine
    progress_interval: int = Field(10, ge=1)
    preview_limit: int = Field(10, ge=1)
    join_preview_limit: int = Field(20, ge=1)
    inference_sample_size: int = Field(100, ge=1)

    # HTTP API
    allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @property
    def origins(self) -> list:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
