"""Tests for settings and logging configuration."""

import json
import logging

import pytest
import structlog

from josekit.config import Settings, get_settings
from josekit.core.jwk_source import DefaultResourceRetriever, RemoteJWKSet
from josekit.core.processor import DefaultClaimsVerifier
from josekit.observability import configure_logging, get_logger


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for environment driven defaults."""

    def test_defaults(self, monkeypatch):
        """Test the built-in defaults."""
        for name in ("HTTP_CONNECT_TIMEOUT", "HTTP_READ_TIMEOUT", "HTTP_SIZE_LIMIT", "JWK_SET_CACHE_TTL"):
            monkeypatch.delenv(f"JOSEKIT_{name}", raising=False)

        settings = Settings(_env_file=None)

        assert settings.http_connect_timeout == 0.5
        assert settings.http_read_timeout == 0.5
        assert settings.http_size_limit == 51200
        assert settings.jwk_set_cache_ttl == 300
        assert settings.jwk_set_refresh_on_miss is True

    def test_env_override(self, monkeypatch):
        """Test that JOSEKIT_* variables override the defaults."""
        monkeypatch.setenv("JOSEKIT_HTTP_SIZE_LIMIT", "1024")
        monkeypatch.setenv("JOSEKIT_JWK_SET_CACHE_TTL", "60")
        monkeypatch.setenv("JOSEKIT_MAX_CLOCK_SKEW", "5")

        assert get_settings().http_size_limit == 1024
        assert DefaultResourceRetriever().size_limit == 1024
        assert RemoteJWKSet("https://example.com/jwks.json").cache_ttl == 60
        assert DefaultClaimsVerifier().max_clock_skew == 5

    def test_explicit_arguments_win(self, monkeypatch):
        """Test that constructor arguments take precedence over settings."""
        monkeypatch.setenv("JOSEKIT_JWK_SET_CACHE_TTL", "60")

        assert RemoteJWKSet("https://example.com/jwks.json", cache_ttl=10).cache_ttl == 10

    def test_invalid_value(self, monkeypatch):
        """Test that invalid values are rejected."""
        monkeypatch.setenv("JOSEKIT_JWK_SET_CACHE_TTL", "0")

        with pytest.raises(ValueError):
            Settings(_env_file=None)


class TestLogging:
    """Tests for structlog configuration."""

    def test_json_output(self, caplog):
        """Test that configured loggers emit JSON with the service name."""
        caplog.set_level(logging.INFO)
        configure_logging(level="info", service_name="josekit-test")
        try:
            get_logger("josekit.test").info("jwk_set_fetch_started", url="https://example.com")
        finally:
            structlog.reset_defaults()

        event = json.loads(caplog.messages[-1])
        assert event["event"] == "jwk_set_fetch_started"
        assert event["service"] == "josekit-test"
        assert event["level"] == "info"
