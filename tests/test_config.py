"""Tests for configuration management."""

import pytest
from pydantic import ValidationError

from sitecrew.core.config import LogFormat, NotifierType, Settings, get_settings
from sitecrew.core.exceptions import ConfigurationError


class TestDefaults:
    """Default configuration values."""

    def test_invitation_defaults(self):
        """Invitations last seven days and creation only warns at capacity."""
        settings = Settings()
        assert settings.invitations.expiry_days == 7
        assert settings.invitations.max_pending_per_company == 50
        assert settings.invitations.enforce_seats_on_create is False

    def test_channel_and_logging_defaults(self):
        """Emails are logged and logs are JSON unless configured otherwise."""
        settings = Settings()
        assert settings.notifications.channel == NotifierType.LOG
        assert settings.logging.format == LogFormat.JSON
        assert settings.logging.sanitize is True
        assert settings.is_production is False

    def test_cache_defaults(self, test_settings):
        """Fixture settings override the cache TTL."""
        assert test_settings.cache.enabled is True
        assert test_settings.cache.ttl_seconds == 60


class TestValidation:
    """Field validation."""

    def test_expiry_bounds(self):
        """Expiry must be within one to thirty days."""
        with pytest.raises(ValidationError):
            Settings(invitations={"expiry_days": 0})
        with pytest.raises(ValidationError):
            Settings(invitations={"expiry_days": 31})

    def test_unknown_channel(self):
        """Only known notification channels are accepted."""
        with pytest.raises(ValidationError):
            Settings(notifications={"channel": "carrier-pigeon"})

    def test_accept_url(self, test_settings):
        """The trailing slash of base_url is dropped."""
        assert test_settings.invitations.base_url == "https://app.example.com"
        assert test_settings.accept_url("abc") == "https://app.example.com/invitations/accept?token=abc"


class TestSources:
    """Environment and YAML sources."""

    def test_nested_environment_variables(self, monkeypatch):
        """SITECREW_ variables with __ reach nested sections."""
        monkeypatch.setenv("SITECREW_INVITATIONS__EXPIRY_DAYS", "3")
        monkeypatch.setenv("SITECREW_ENVIRONMENT", "production")

        settings = Settings()

        assert settings.invitations.expiry_days == 3
        assert settings.is_production is True

    def test_yaml_with_env_expansion(self, tmp_path, monkeypatch):
        """YAML values expand ${VAR} and fall back to ${VAR:default}."""
        monkeypatch.setenv("MAILGUN_KEY", "key-123")
        monkeypatch.delenv("MAILGUN_DOMAIN", raising=False)
        config_file = tmp_path / "sitecrew.yaml"
        config_file.write_text(
            "environment: staging\n"
            "notifications:\n"
            "  channel: mailgun\n"
            "  mailgun:\n"
            "    api_key: ${MAILGUN_KEY}\n"
            "    domain: ${MAILGUN_DOMAIN:mg.example.com}\n"
            "invitations:\n"
            "  expiry_days: 14\n"
        )

        settings = Settings.from_yaml(config_file)

        assert settings.environment == "staging"
        assert settings.notifications.channel == NotifierType.MAILGUN
        assert settings.notifications.mailgun.api_key == "key-123"
        assert settings.notifications.mailgun.domain == "mg.example.com"
        assert settings.invitations.expiry_days == 14

    def test_missing_yaml(self, tmp_path):
        """A missing file is an error."""
        with pytest.raises(FileNotFoundError):
            Settings.from_yaml(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Unparseable files raise ConfigurationError."""
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("database: [unclosed\n")
        with pytest.raises(ConfigurationError):
            Settings.from_yaml(config_file)

    def test_get_settings_is_cached(self, tmp_path):
        """The same path returns the same instance."""
        config_file = tmp_path / "sitecrew.yaml"
        config_file.write_text("environment: test\n")
        try:
            first = get_settings(str(config_file))
            assert get_settings(str(config_file)) is first
            assert first.environment == "test"
        finally:
            get_settings.cache_clear()
