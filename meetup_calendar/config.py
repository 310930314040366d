"""
Configuration management for Meetup Calendar.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )
    app_name: str = Field(
        default="Meetup Calendar",
        description="Name used in the public calendar feed"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./meetup_calendar.db",
        description="Database connection URL"
    )
    auto_create_tables: bool = Field(
        default=True,
        description="Create missing tables at startup (development convenience)"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    api_reload: bool = Field(
        default=True,
        description="Enable auto-reload in development"
    )

    # Timezone Configuration
    timezone: str = Field(
        default="Europe/Berlin",
        description="Default series timezone (IANA timezone name)"
    )

    # Public feed
    feed_domain: str = Field(
        default="meetup-calendar.local",
        description="Domain part of UIDs in the ICS feed"
    )
    feed_past_days: int = Field(
        default=30,
        ge=0,
        description="Days before today included in the ICS feed"
    )
    feed_future_days: int = Field(
        default=365,
        ge=1,
        description="Days after today included in the ICS feed"
    )

    # Recurrence preview (authoring UI)
    preview_months: int = Field(
        default=6,
        ge=1,
        le=60,
        description="Months covered by a recurrence preview"
    )
    preview_limit: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Maximum instances returned by a recurrence preview"
    )
    describe_locale: str = Field(
        default="en",
        description="Locale for human-readable rule descriptions ('en' or 'de')"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_postgresql(self) -> bool:
        """Check if PostgreSQL is the configured database."""
        return "postgresql" in self.database_url.lower()

    def validate_production_config(self) -> None:
        """
        Validate configuration for production environment.

        Raises:
            ValueError: If required production settings are missing or invalid
        """
        if not self.is_production:
            return

        errors = []

        if not self.uses_postgresql:
            errors.append(
                "Production requires PostgreSQL. "
                "Set DATABASE_URL to a PostgreSQL connection string."
            )

        if self.auto_create_tables:
            errors.append(
                "AUTO_CREATE_TABLES must be disabled in production. "
                "Use 'alembic upgrade head' instead."
            )

        if errors:
            raise ValueError("Invalid production configuration:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure we only load settings once.
    Use this function throughout the application to access settings.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from meetup_calendar.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.database_url)
    """
    return Settings()
