"""Configuration settings for the connection broker service."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # CORS
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # API key for dashboard/admin callers (auth disabled when unset)
    api_key: Optional[str] = None

    # Database
    database_url: Optional[str] = None

    # Credential encryption (Fernet key)
    encryption_key: Optional[str] = None

    # Connection list broker
    connections_cache_ttl_seconds: float = 10.0
    connections_query_timeout_seconds: float = 8.0
    connections_retry_after_seconds: int = 10

    # Vendor validation probes
    validator_timeout_seconds: float = 10.0

    # Public URLs used for OAuth redirects
    api_url: str = "http://localhost:8000"
    app_url: str = "http://localhost:3000"

    # Google OAuth app (google_calendar integration)
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def async_database_url(self) -> str:
        """Database URL with an async driver."""
        # Convert postgres:// to postgresql+asyncpg:// if needed
        db_url = self.database_url or "postgresql+asyncpg://localhost/botmakers"
        if db_url.startswith("postgres://"):
            db_url = db_url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif db_url.startswith("postgresql://"):
            db_url = db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return db_url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
