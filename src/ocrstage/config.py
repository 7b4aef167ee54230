"""Configuration management for the staged OCR pipeline."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # AWS
    aws_region: str = "ap-southeast-1"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_endpoint_url: Optional[str] = Field(
        None, description="Override endpoint (localstack, etc.)"
    )
    bucket: str = "ocr-documents"
    queue_url: str = ""
    blob_prefix: str = "documents"

    # Database
    database_url: Optional[str] = Field(
        None, description="Full async URL; overrides the postgres_* parts"
    )
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "ocrstage"
    postgres_password: str = "localdev"
    postgres_db: str = "ocrstage"

    # Job records
    partition_key: str = "ocr-job"

    # Pipeline
    process_delay_seconds: int = Field(240, ge=0, le=900)
    handwritten_threshold: float = 85.0
    form_drop_empty_values: bool = False
    search_key_fields: list[str] = Field(default_factory=lambda: ["lastName", "firstName"])

    # Ollama
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "llama3.1"
    ollama_timeout: float = 120.0

    # Worker
    worker_batch_size: int = Field(10, ge=1, le=10)
    worker_wait_seconds: int = Field(20, ge=0, le=20)
    worker_error_backoff_seconds: float = Field(5.0, ge=0)

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def async_database_url(self) -> str:
        """Construct async database URL."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_sqlite(self) -> bool:
        return self.async_database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
