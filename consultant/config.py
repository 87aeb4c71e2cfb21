"""Configuration for the AI consultant."""

import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .constants import ModelDefaults, RequestLimits
from .errors import ConfigurationError

load_dotenv()

DEFAULT_MODELS = ModelDefaults()
REQUEST_LIMITS = RequestLimits()

logger = logging.getLogger(__name__)


def _number_env(env: Mapping[str, str], key: str, default: float) -> float:
    value = env.get(key)
    if not value:
        return default
    try:
        number = float(value)
    except ValueError:
        number = math.nan
    if not math.isfinite(number):
        logger.warning("Invalid number for %s: %s. Using default: %s", key, value, default)
        return default
    return number


def _bool_env(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(key)
    if not value:
        return default
    lowered = value.lower()
    if lowered in ("true", "1"):
        return True
    if lowered in ("false", "0"):
        return False
    logger.warning("Invalid boolean for %s: %s. Using default: %s", key, value, default)
    return default


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, created once and handed to each component."""

    openrouter_api_key: Optional[str] = None
    openrouter_api_url: str = DEFAULT_MODELS.openrouter_api_url
    rate_limit_per_minute: int = REQUEST_LIMITS.rate_limit_per_minute
    cache_ttl_seconds: float = REQUEST_LIMITS.cache_ttl_seconds
    cache_check_period: float = REQUEST_LIMITS.cache_check_period
    max_conversation_history: int = REQUEST_LIMITS.max_conversation_history
    # Breaker timings are kept in seconds; the environment speaks milliseconds.
    circuit_breaker_timeout: float = REQUEST_LIMITS.circuit_breaker_timeout_ms / 1000
    circuit_breaker_threshold: float = REQUEST_LIMITS.circuit_breaker_threshold
    circuit_breaker_reset_timeout: float = REQUEST_LIMITS.circuit_breaker_reset_ms / 1000
    circuit_breaker_rolling_window: float = REQUEST_LIMITS.circuit_breaker_rolling_window
    circuit_breaker_volume_threshold: int = REQUEST_LIMITS.circuit_breaker_volume_threshold
    retry_attempts: int = REQUEST_LIMITS.retry_attempts
    retry_backoff_base: float = REQUEST_LIMITS.retry_backoff_base
    retry_jitter: float = REQUEST_LIMITS.retry_jitter
    verbose_logging: bool = False

    def __post_init__(self) -> None:
        self.validate()

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ if env is None else env
        return cls(
            openrouter_api_key=env.get("OPENROUTER_API_KEY") or None,
            rate_limit_per_minute=int(
                _number_env(env, "RATE_LIMIT_PER_MINUTE", REQUEST_LIMITS.rate_limit_per_minute)
            ),
            cache_ttl_seconds=_number_env(env, "CACHE_TTL_SECONDS", REQUEST_LIMITS.cache_ttl_seconds),
            max_conversation_history=int(
                _number_env(env, "MAX_CONVERSATION_HISTORY", REQUEST_LIMITS.max_conversation_history)
            ),
            circuit_breaker_timeout=_number_env(
                env, "CIRCUIT_BREAKER_TIMEOUT_MS", REQUEST_LIMITS.circuit_breaker_timeout_ms
            )
            / 1000,
            circuit_breaker_threshold=_number_env(
                env, "CIRCUIT_BREAKER_THRESHOLD", REQUEST_LIMITS.circuit_breaker_threshold
            ),
            circuit_breaker_reset_timeout=_number_env(
                env, "CIRCUIT_BREAKER_RESET_MS", REQUEST_LIMITS.circuit_breaker_reset_ms
            )
            / 1000,
            retry_attempts=int(_number_env(env, "RETRY_ATTEMPTS", REQUEST_LIMITS.retry_attempts)),
            verbose_logging=_bool_env(env, "VERBOSE_LOGGING", False),
        )

    def validate(self) -> None:
        """Raise ConfigurationError if any value is out of range."""
        if self.rate_limit_per_minute <= 0:
            raise ConfigurationError("RATE_LIMIT_PER_MINUTE must be greater than 0")
        if self.cache_ttl_seconds < 0:
            raise ConfigurationError("CACHE_TTL_SECONDS must be non-negative")
        if self.max_conversation_history <= 0:
            raise ConfigurationError("MAX_CONVERSATION_HISTORY must be greater than 0")
        if not 0 <= self.circuit_breaker_threshold <= 1:
            raise ConfigurationError("CIRCUIT_BREAKER_THRESHOLD must be between 0 and 1")
        if self.circuit_breaker_timeout <= 0:
            raise ConfigurationError("CIRCUIT_BREAKER_TIMEOUT_MS must be greater than 0")
        if self.circuit_breaker_reset_timeout <= 0:
            raise ConfigurationError("CIRCUIT_BREAKER_RESET_MS must be greater than 0")
        if self.retry_attempts < 0:
            raise ConfigurationError("RETRY_ATTEMPTS must be non-negative")


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging; verbose mode surfaces per-request debug detail."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
