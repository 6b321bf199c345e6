"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_VERSION = "0.1.0"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 3001
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    max_request_bytes: int = 100 * 1024  # Page snapshots above this are rejected

    # Rate limiting (per client IP)
    rate_limit_enabled: bool = True  # Set to False to disable rate limiting in dev
    rate_limit_requests: int = 10
    rate_limit_window_seconds: int = 60

    # Generator
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"
    generator_timeout_seconds: float = 120.0
    generator_temperature: float = 0.3
    generator_max_tokens: int = 8000

    # History
    history_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    history_max_entries: int = 50
    history_key: str = "lift:audit_history"

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.env == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.env == "test"

    @property
    def generator_enabled(self) -> bool:
        """Check if the audit generator has an API key."""
        return bool(self.openai_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
