"""Error types raised by the consultation engine."""

from __future__ import annotations

from typing import Optional


class ConsultantError(Exception):
    """Base class for all consultation errors."""


class ConfigurationError(ConsultantError):
    """Settings failed validation."""


class ValidationError(ConsultantError):
    """The request is malformed (missing prompt, empty model list, ...)."""


class RateLimitError(ConsultantError):
    """Too many requests for an identifier within the current window.

    Attributes:
        wait_seconds: Whole seconds until the window resets.
    """

    def __init__(self, message: str, wait_seconds: int):
        super().__init__(message)
        self.wait_seconds = wait_seconds


class ModelNotFoundError(ConsultantError):
    """A short model id is not in the catalog."""

    def __init__(self, model_id: str):
        super().__init__(f"Unknown model: {model_id}")
        self.model_id = model_id


class UpstreamError(ConsultantError):
    """The model provider failed or could not be reached.

    Attributes:
        status_code: HTTP status returned by the provider, if any.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CircuitOpenError(ConsultantError):
    """Circuit breaker is open and rejecting requests.

    Attributes:
        retry_after: Seconds until the breaker admits a probe, if known.
    """

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class CallTimeoutError(ConsultantError):
    """A call guarded by the circuit breaker exceeded its time limit."""

    def __init__(self, message: str, timeout_seconds: float):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
