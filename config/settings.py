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
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for catalog writes)"
    )
    catalog_table: str = Field(
        default="books",
        min_length=1,
        description="Catalog table that committed rows are written into"
    )

    # ===================
    # IMPORT LIMITS
    # ===================
    import_max_rows: int = Field(
        default=5000,
        ge=1,
        le=100000,
        description="Maximum data rows kept from an uploaded file"
    )
    import_max_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        le=100 * 1024 * 1024,
        description="Maximum bytes of an uploaded file that are parsed"
    )
    import_session_ttl_minutes: int = Field(
        default=30,
        ge=1,
        le=24 * 60,
        description="Idle minutes before an uncommitted import session expires"
    )
    import_result_ttl_minutes: int = Field(
        default=7 * 24 * 60,
        ge=1,
        le=30 * 24 * 60,
        description="Minutes a committed import stays readable for status checks"
    )
    import_preview_rows: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Rows returned as preview after stage and remap"
    )
    import_default_page_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Default page size for staged row listing"
    )
    import_max_page_size: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Largest page size accepted for staged row listing"
    )
    import_cleanup_interval_seconds: int = Field(
        default=60,
        ge=5,
        le=3600,
        description="Seconds between sweeps that drop expired import sessions"
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
    cors_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        description="Origins allowed to call the API from a browser"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def supabase_configured(self) -> bool:
        """Check if the catalog database is configured."""
        return bool(self.supabase_url and self.supabase_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
