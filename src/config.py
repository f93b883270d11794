"""Application configuration using pydantic-settings pattern."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Attribution Dashboard"
    app_version: str = "0.1.0"
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Database (Turso)
    turso_database_url: str | None = Field(default=None)
    turso_auth_token: str | None = Field(default=None)

    # Ingestion jobs
    ingest_match_threshold: str = Field(
        default="medium",
        description="Minimum confidence an ingestion job passes to the resolver",
    )
    ingest_concurrency: int = Field(default=4, ge=1)
    ingest_max_attempts: int = Field(default=3, ge=1)

    # Contact resolution tuning
    name_similarity_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Minimum name similarity (0-1) for a fuzzy name match",
    )
    min_phone_digits: int = Field(default=6, ge=1)
    fuzzy_pool_limit: int = Field(default=500, ge=1)
    placeholder_names: list[str] = Field(
        default_factory=lambda: ["Unknown Contact", "Unknown", "N/A"],
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
