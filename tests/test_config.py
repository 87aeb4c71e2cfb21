"""Tests for settings loading and validation."""

import pytest

from consultant.config import Settings
from consultant.errors import ConfigurationError


class TestSettingsFromEnv:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.openrouter_api_key is None
        assert settings.rate_limit_per_minute == 20
        assert settings.cache_ttl_seconds == 300
        assert settings.max_conversation_history == 20
        assert settings.circuit_breaker_timeout == 30.0
        assert settings.circuit_breaker_threshold == 0.5
        assert settings.circuit_breaker_reset_timeout == 30.0
        assert settings.retry_attempts == 3
        assert settings.verbose_logging is False

    def test_overrides(self):
        settings = Settings.from_env(
            {
                "OPENROUTER_API_KEY": "sk-or-123",
                "RATE_LIMIT_PER_MINUTE": "5",
                "CACHE_TTL_SECONDS": "60",
                "MAX_CONVERSATION_HISTORY": "8",
                "CIRCUIT_BREAKER_TIMEOUT_MS": "1500",
                "CIRCUIT_BREAKER_THRESHOLD": "0.25",
                "CIRCUIT_BREAKER_RESET_MS": "5000",
                "RETRY_ATTEMPTS": "0",
                "VERBOSE_LOGGING": "TRUE",
            }
        )
        assert settings.openrouter_api_key == "sk-or-123"
        assert settings.rate_limit_per_minute == 5
        assert settings.cache_ttl_seconds == 60
        assert settings.max_conversation_history == 8
        assert settings.circuit_breaker_timeout == 1.5
        assert settings.circuit_breaker_threshold == 0.25
        assert settings.circuit_breaker_reset_timeout == 5.0
        assert settings.retry_attempts == 0
        assert settings.verbose_logging is True

    def test_unparseable_values_fall_back(self, caplog):
        settings = Settings.from_env({"RATE_LIMIT_PER_MINUTE": "lots", "VERBOSE_LOGGING": "maybe"})
        assert settings.rate_limit_per_minute == 20
        assert settings.verbose_logging is False
        assert "Invalid number for RATE_LIMIT_PER_MINUTE" in caplog.text

    @pytest.mark.parametrize("value", ["nan", "inf", "-Infinity"])
    def test_non_finite_values_fall_back(self, value, caplog):
        settings = Settings.from_env({"RATE_LIMIT_PER_MINUTE": value, "RETRY_ATTEMPTS": value})
        assert settings.rate_limit_per_minute == 20
        assert settings.retry_attempts == 3
        assert "Invalid number for RETRY_ATTEMPTS" in caplog.text
        assert "Invalid boolean for VERBOSE_LOGGING" in caplog.text

    @pytest.mark.parametrize(
        "key, value",
        [
            ("RATE_LIMIT_PER_MINUTE", "0"),
            ("CACHE_TTL_SECONDS", "-1"),
            ("MAX_CONVERSATION_HISTORY", "0"),
            ("CIRCUIT_BREAKER_THRESHOLD", "1.5"),
            ("RETRY_ATTEMPTS", "-2"),
        ],
    )
    def test_invalid_values_raise(self, key, value):
        with pytest.raises(ConfigurationError, match=key):
            Settings.from_env({key: value})

    def test_settings_are_immutable(self):
        settings = Settings()
        with pytest.raises(AttributeError):
            settings.rate_limit_per_minute = 1
