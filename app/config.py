# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all configuration values.
#
# Usage:
#   from app.config import settings
#   print(settings.SUPABASE_URL)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# The Settings class validates all values at startup, catching configuration
# errors early rather than at runtime.
# =============================================================================

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses pydantic-settings to:
    - Automatically load from .env file
    - Validate types and constraints
    - Provide sensible defaults for development

    All settings are accessed via the global `settings` instance.
    """

    # -------------------------------------------------------------------------
    # Supabase Configuration
    # -------------------------------------------------------------------------
    # These are required - app won't start without them

    SUPABASE_URL: str = Field(
        ...,  # ... means required (no default)
        description="Supabase project URL (e.g., https://xxx.supabase.co)"
    )

    SUPABASE_ANON_KEY: str = Field(
        ...,
        description="Supabase anon/public API key"
    )

    SUPABASE_SERVICE_KEY: str = Field(
        ...,
        description="Supabase service_role key (bypasses RLS)"
    )

    SUPABASE_JWT_SECRET: str = Field(
        default="dev-jwt-secret-change-in-production",
        description="Legacy HS256 secret used to verify Supabase access tokens"
    )

    # -------------------------------------------------------------------------
    # Stripe Configuration
    # -------------------------------------------------------------------------

    STRIPE_SECRET_KEY: str = Field(
        default="",
        description="Stripe secret API key (sk_live_... or sk_test_...)"
    )

    STRIPE_WEBHOOK_SECRET: str = Field(
        default="",
        description="Signing secret for the Stripe webhook endpoint (whsec_...)"
    )

    # -------------------------------------------------------------------------
    # Redis Configuration (Celery + realtime fan-out)
    # -------------------------------------------------------------------------
    # Default to localhost for development

    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for Celery broker and pub/sub"
    )

    REALTIME_ENABLED: bool = Field(
        default=True,
        description="Publish user events to Redis and bridge them to WebSockets"
    )

    # -------------------------------------------------------------------------
    # Marketplace Settings
    # -------------------------------------------------------------------------

    DEFAULT_CURRENCY: str = Field(
        default="GBP",
        description="Currency used when an order does not specify one"
    )

    SUPPORTED_CURRENCIES: str = Field(
        default="gbp,eur,usd",
        description="Currencies accepted by the payment provider (comma-separated)"
    )

    PLATFORM_FEE_PERCENT: float = Field(
        default=8.0,
        ge=0.0,
        le=100.0,
        description="Platform fee deducted from every release to a seller"
    )

    RETAINER_NOTICE_DAYS: int = Field(
        default=14,
        ge=0,
        description="Default notice period when a retainer is cancelled"
    )

    OTJT_MAX_DAILY_HOURS: float = Field(
        default=8.0,
        gt=0.0,
        le=24.0,
        description="Maximum off-the-job training hours per apprentice per day"
    )

    # -------------------------------------------------------------------------
    # Rate Limiting & Notifications
    # -------------------------------------------------------------------------

    RATE_LIMIT_BACKEND: Literal["memory", "supabase"] = Field(
        default="memory",
        description="Fixed-window counter store (supabase uses the check_rate_limit RPC)"
    )

    NOTIFICATIONS_ASYNC: bool = Field(
        default=False,
        description="Dispatch notifications through Celery instead of inline"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Current environment"
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging, auto-reload)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server to"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for the API server"
    )

    APP_VERSION: str = Field(
        default="1.0.0",
        description="Version reported by the health endpoint"
    )

    # CORS origins (comma-separated string that gets parsed)
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        # Load from .env file in project root
        env_file=".env",
        env_file_encoding="utf-8",
        # Don't fail if .env doesn't exist (useful for production where
        # env vars are set directly)
        env_ignore_empty=True,
        # Case-sensitive environment variable names
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS_ORIGINS string into a list.

        Example: "http://localhost:3000, https://app.centauros.io" -> ["http://localhost:3000", "https://app.centauros.io"]
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def supported_currencies_list(self) -> list[str]:
        """Lower-cased currency codes, e.g. ["gbp", "eur", "usd"]."""
        return [c.strip().lower() for c in self.SUPPORTED_CURRENCIES.split(",") if c.strip()]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once,
    not on every access.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
# Usage: from app.config import settings
settings = get_settings()
