"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # SOURCE CONNECTOR
    # ===================
    anthropic_api_key: Optional[str] = Field(
        None,
        description="Anthropic API key used by the Claude connector"
    )
    default_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used when the caller does not pick one"
    )
    connector_max_tokens: int = Field(
        default=16000,
        ge=1024,
        le=64000,
        description="Maximum tokens per connector response"
    )
    connector_thinking_budget: int = Field(
        default=4000,
        ge=0,
        le=32000,
        description="Extended thinking budget (0 disables thought streaming)"
    )
    connector_timeout_seconds: float = Field(
        default=300.0,
        ge=10,
        le=1800,
        description="Timeout for one connector request"
    )
    page_fetch_timeout_seconds: float = Field(
        default=20.0,
        ge=1,
        le=120,
        description="Timeout for fetching a source page"
    )
    page_max_chars: int = Field(
        default=120000,
        ge=5000,
        le=1000000,
        description="Maximum characters of page HTML sent to the connector"
    )

    # ===================
    # SCAN SETTINGS
    # ===================
    scan_max_concurrency: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Category scans dispatched with overlap"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def connector_configured(self) -> bool:
        """Check if the Claude connector has credentials."""
        return bool(self.anthropic_api_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
