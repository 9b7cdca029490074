"""
Configuration management using Pydantic Settings.
Loads settings from environment variables and .env files.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.core.constants import (
    ACTOR_HEADER,
    DEFAULT_BULK_TRANSACTION_TIMEOUT_SECONDS,
    DEFAULT_MIN_REJECTION_REASON_LENGTH,
)


class DatabaseSettings(BaseSettings):
    """Database configuration settings."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    backend: str = Field(
        default="memory",
        description="Store backend: 'memory' or 'sql'",
    )
    url: str = Field(
        default="sqlite+aiosqlite:///./reviewgate.db",
        description="SQLAlchemy async connection URL (sqlite+aiosqlite or postgresql+asyncpg)",
    )
    pool_size: int = Field(default=5, description="Connection pool size (PostgreSQL only)")
    max_overflow: int = Field(default=10, description="Max overflow connections (PostgreSQL only)")
    echo: bool = Field(default=False, description="Echo SQL statements")
    serialization_retries: int = Field(
        default=3,
        ge=0,
        description="Times an operation is re-run after a serialization conflict (PostgreSQL only)",
    )

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        allowed = {"memory", "sql"}
        if v.lower() not in allowed:
            raise ValueError(f"backend must be one of {allowed}")
        return v.lower()


class WorkflowSettings(BaseSettings):
    """Workflow rule configuration."""

    model_config = SettingsConfigDict(env_prefix="WORKFLOW_")

    min_rejection_reason_length: int = Field(
        default=DEFAULT_MIN_REJECTION_REASON_LENGTH,
        ge=1,
        description="Minimum length of the reason attached to a send-back decision",
    )
    bulk_transaction_timeout_seconds: float = Field(
        default=DEFAULT_BULK_TRANSACTION_TIMEOUT_SECONDS,
        gt=0,
        description="Transaction budget for bulk operations such as project duplication",
    )
    transaction_timeout_seconds: float = Field(
        default=5,
        gt=0,
        description="Transaction budget for single-issue operations",
    )


class CacheSettings(BaseSettings):
    """Team existence cache configuration."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    team_ttl_seconds: int = Field(default=3600, ge=1, description="TTL of team existence entries")
    team_max_entries: int = Field(default=1024, ge=1, description="Max cached teams")


class SecuritySettings(BaseSettings):
    """Security configuration."""

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    actor_header: str = Field(default=ACTOR_HEADER, description="Header carrying the acting user id")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="CORS allowed origins",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="reviewgate", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=True, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"app_env must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience function for accessing settings
settings = get_settings()
