"""Unit tests for configuration module."""

import pytest

from client_reports.config import Settings, get_settings


class TestSettings:
    """Test suite for Settings class."""

    def test_default_settings(self) -> None:
        """Test that default settings are properly initialized."""
        settings = Settings()

        assert settings.qdrant_collection == "message_embeddings"
        assert settings.embedding_dimension == 1536
        assert settings.email_fetch_limit == 1000
        assert settings.embedding_batch_size == 20
        assert settings.task_retention_minutes == 30
        assert settings.graph_base_url == "https://graph.microsoft.com/v1.0"
        assert settings.allow_deterministic_vectors is False
        assert settings.log_level == "INFO"

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading settings from environment variables."""
        monkeypatch.setenv("CLIENT_REPORTS_DATABASE_URL", "sqlite:///reports.db")
        monkeypatch.setenv("CLIENT_REPORTS_EMBEDDING_DIMENSION", "256")
        monkeypatch.setenv("CLIENT_REPORTS_DEBUG", "true")

        # Clear the cache to ensure fresh settings
        get_settings.cache_clear()

        settings = get_settings()

        assert settings.database_url == "sqlite:///reports.db"
        assert settings.embedding_dimension == 256
        assert settings.debug is True

        # Clean up
        get_settings.cache_clear()

    def test_admin_emails_from_comma_separated_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Admin addresses are split on commas and lowercased."""
        monkeypatch.setenv("CLIENT_REPORTS_ADMIN_EMAILS", "Boss@Example.com, ops@example.com,")

        settings = Settings()

        assert settings.admin_emails == ["boss@example.com", "ops@example.com"]

    def test_rejects_non_positive_limits(self) -> None:
        with pytest.raises(ValueError):
            Settings(email_fetch_limit=0)

    def test_get_settings_returns_cached_instance(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

        # Clean up
        get_settings.cache_clear()
