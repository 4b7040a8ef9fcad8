"""
Configuration settings for pinmap.

Uses Pydantic Settings to load environment variables for backend selection,
database connectivity, caching and logging. Values come from the process
environment or a local `.env` file.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Backend selection
    db_provider: Optional[Literal["postgres", "sqlite"]] = Field(None, alias="DB_PROVIDER")
    use_sqlite: bool = Field(False, alias="USE_SQLITE")

    # Networked backend (PostgreSQL)
    postgres_url: Optional[str] = Field(None, alias="POSTGRES_URL")
    postgres_prisma_url: Optional[str] = Field(None, alias="POSTGRES_PRISMA_URL")
    db_pool_size: int = Field(10, alias="DB_POOL_SIZE", ge=1)
    db_connect_timeout: float = Field(10.0, alias="DB_CONNECT_TIMEOUT", gt=0)
    db_idle_timeout: float = Field(20.0, alias="DB_IDLE_TIMEOUT", gt=0)

    # Embedded backend (SQLite)
    sqlite_path: str = Field("./data.sqlite", alias="SQLITE_PATH")

    # Read-through cache
    pin_cache_ttl_ms: int = Field(5_000, alias="PIN_CACHE_TTL_MS", ge=0)

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    json_logs: bool = Field(False, alias="JSON_LOGS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def postgres_dsn(self) -> Optional[str]:
        """Connection string for the networked backend, if one is configured."""
        return self.postgres_url or self.postgres_prisma_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
