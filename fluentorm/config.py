"""Runtime configuration for fluentorm."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Settings for the bundled SQLite gateway and the query layer."""

    database_path: str = Field(
        default=":memory:",
        description="SQLite database path used when an engine is created implicitly",
    )

    log_queries: bool = Field(
        default=False,
        description="Log every executed statement at log_level instead of DEBUG",
    )
    log_level: str = Field(default="DEBUG")
    record_queries: bool = Field(
        default=False,
        description="Keep (sql, bindings) of every statement on engine.queries",
    )

    default_per_page: int = Field(default=15, ge=1)
    timestamp_format: str = Field(default="%Y-%m-%d %H:%M:%S")

    model_config = SettingsConfigDict(
        env_prefix="FLUENTORM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> DatabaseSettings:
    """Get cached settings."""
    return DatabaseSettings()
