"""Shared constants and defaults for the AI consultant backend."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ModelDefaults:
    """Immutable defaults for model routing and the upstream endpoint."""

    default_model: str = "gpt-5-codex"
    openrouter_api_url: str = "https://openrouter.ai/api/v1/chat/completions"
    app_title: str = "AI Consultant"
    global_identifier: str = "global"
    cache_prompt_prefix: int = 100


@dataclass(frozen=True)
class RequestLimits:
    """Tunables for rate limiting, caching, history sizing and resilience."""

    rate_limit_per_minute: int = 20
    rate_limit_window: float = 60.0
    cache_ttl_seconds: float = 300.0
    cache_check_period: float = 60.0
    max_conversation_history: int = 20
    circuit_breaker_timeout_ms: int = 30000
    circuit_breaker_threshold: float = 0.5
    circuit_breaker_reset_ms: int = 30000
    circuit_breaker_rolling_window: float = 10.0
    circuit_breaker_volume_threshold: int = 0
    retry_attempts: int = 3
    retry_backoff_base: float = 0.1
    retry_jitter: float = 0.05
