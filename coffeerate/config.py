"""
Configuration and settings for the coffee rating API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    # Hosted auth service
    auth_url: Optional[str] = Field(default=None, validation_alias="SUPABASE_URL")
    auth_anon_key: Optional[str] = Field(default=None, validation_alias="SUPABASE_KEY")
    auth_service_role_key: Optional[str] = Field(
        default=None, validation_alias="SUPABASE_SERVICE_ROLE_KEY"
    )
    auth_request_timeout: float = Field(
        default=10.0, validation_alias="AUTH_REQUEST_TIMEOUT"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="COFFEERATE_USE_IN_MEMORY_BACKENDS"
    )
    require_email_confirmation: bool = Field(
        default=False, validation_alias="COFFEERATE_REQUIRE_EMAIL_CONFIRMATION"
    )

    # Session cookies
    cookie_secure: bool = Field(default=True, validation_alias="COOKIE_SECURE")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
