"""
Unit tests for meetup_calendar/config.py

Tests Settings defaults, environment variable loading, production
validation and caching.
"""

import pytest
from pydantic import ValidationError

from meetup_calendar.config import Settings, get_settings


class TestSettingsDefaults:
    """Test Settings initialization with default values."""

    def test_settings_defaults(self, monkeypatch):
        """Settings should initialize with correct default values."""
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("PYTHON_ENV", raising=False)

        settings = Settings(_env_file=None)

        assert settings.python_env == "development"
        assert settings.log_level == "INFO"
        assert settings.database_url == "sqlite:///./meetup_calendar.db"
        assert settings.timezone == "Europe/Berlin"
        assert settings.preview_months == 6
        assert settings.preview_limit == 20
        assert settings.feed_past_days == 30
        assert settings.feed_future_days == 365
        assert settings.describe_locale == "en"
        assert settings.api_port == 8000

    def test_is_production_when_set(self):
        """is_production should return True when python_env is production."""
        settings = Settings(_env_file=None, python_env="production")
        assert settings.is_production is True
        assert settings.is_development is False


class TestSettingsEnvironmentVariables:
    """Test Settings loading from environment variables."""

    def test_settings_from_env_vars(self, monkeypatch):
        """Settings should load values from environment variables."""
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("TIMEZONE", "America/New_York")
        monkeypatch.setenv("PREVIEW_LIMIT", "50")
        monkeypatch.setenv("FEED_DOMAIN", "meetups.example.org")

        settings = Settings(_env_file=None)

        assert settings.log_level == "DEBUG"
        assert settings.timezone == "America/New_York"
        assert settings.preview_limit == 50
        assert settings.feed_domain == "meetups.example.org"

    def test_invalid_log_level(self, monkeypatch):
        """Unknown log levels should be rejected."""
        monkeypatch.setenv("LOG_LEVEL", "VERBOSE")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_preview_limit_bounds(self):
        """Preview limits outside 1..1000 should be rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, preview_limit=0)


class TestProductionValidation:
    """Test validate_production_config."""

    def test_sqlite_rejected_in_production(self):
        """Production must not run on SQLite."""
        settings = Settings(
            _env_file=None,
            python_env="production",
            database_url="sqlite:///./prod.db",
            auto_create_tables=False,
        )

        with pytest.raises(ValueError, match="PostgreSQL"):
            settings.validate_production_config()

    def test_auto_create_rejected_in_production(self):
        """Production must use migrations instead of create_all."""
        settings = Settings(
            _env_file=None,
            python_env="production",
            database_url="postgresql://localhost/meetups",
            auto_create_tables=True,
        )

        with pytest.raises(ValueError, match="AUTO_CREATE_TABLES"):
            settings.validate_production_config()

    def test_valid_production(self):
        """PostgreSQL without auto-create passes."""
        settings = Settings(
            _env_file=None,
            python_env="production",
            database_url="postgresql://localhost/meetups",
            auto_create_tables=False,
        )

        settings.validate_production_config()
        assert settings.uses_postgresql

    def test_development_skips_validation(self):
        """Development settings are never rejected."""
        Settings(_env_file=None, database_url="sqlite:///:memory:").validate_production_config()


class TestGetSettings:
    """Test get_settings caching."""

    def test_cached_instance(self):
        """get_settings should return the same instance."""
        assert get_settings() is get_settings()
