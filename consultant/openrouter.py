"""OpenRouter API client for making LLM requests."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Optional, Sequence

import httpx
import pydantic

from .circuit_breaker import (
    EVENT_CLOSE,
    EVENT_HALF_OPEN,
    EVENT_OPEN,
    CircuitBreaker,
)
from .config import DEFAULT_MODELS, Settings
from .errors import CallTimeoutError, CircuitOpenError, UpstreamError
from .models import ChatMessage, ConsultationResult, TokenUsage
from .utils import retry_with_backoff

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.RequestError)


def _log_breaker_event(event: str, breaker: CircuitBreaker) -> None:
    if event == EVENT_OPEN:
        logger.error(
            "Circuit breaker opened - too many failures detected. Requests will fail fast.",
            extra={"breaker": breaker.name},
        )
    elif event == EVENT_HALF_OPEN:
        logger.warning(
            "Circuit breaker half-open - testing if service has recovered.",
            extra={"breaker": breaker.name},
        )
    elif event == EVENT_CLOSE:
        logger.info("Circuit breaker closed - service has recovered.", extra={"breaker": breaker.name})


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()


def to_upstream_error(exc: BaseException) -> UpstreamError:
    """Translate transport and provider failures into UpstreamError."""
    if isinstance(exc, UpstreamError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        return UpstreamError(
            f"OpenRouter API error: {_error_message(exc.response)}",
            exc.response.status_code,
        )
    if isinstance(exc, httpx.RequestError):
        return UpstreamError(f"OpenRouter API error: {str(exc) or exc.__class__.__name__}")
    if isinstance(exc, CallTimeoutError):
        return UpstreamError(f"OpenRouter API error: request timed out after {exc.timeout_seconds:g} seconds")
    return UpstreamError(f"API error: {exc}")


class OpenRouterClient:
    """
    Single-call client for the OpenRouter chat completions endpoint.

    Every call goes through one CircuitBreaker shared by all callers of
    this instance; inside the breaker the HTTP request is retried on
    network failures and 5xx responses.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self._settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self.breaker = breaker or CircuitBreaker(
            self._post_with_retry,
            timeout=settings.circuit_breaker_timeout,
            error_threshold=settings.circuit_breaker_threshold,
            reset_timeout=settings.circuit_breaker_reset_timeout,
            rolling_window=settings.circuit_breaker_rolling_window,
            volume_threshold=settings.circuit_breaker_volume_threshold,
            name="openrouter",
        )
        self.breaker.add_listener(_log_breaker_event)

    async def get_async_client(self) -> httpx.AsyncClient:
        """Return a shared AsyncClient with connection pooling."""
        if self._client and not self._client.is_closed:
            return self._client

        async with self._client_lock:
            if self._client and not self._client.is_closed:
                return self._client
            limits = httpx.Limits(max_keepalive_connections=20, max_connections=40)
            timeout = httpx.Timeout(connect=10.0, read=40.0, write=10.0, pool=5.0)
            self._client = httpx.AsyncClient(limits=limits, timeout=timeout, transport=self._transport)
            return self._client

    async def aclose(self) -> None:
        """Close the shared AsyncClient (used on application shutdown)."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _post(self, model: str, messages: Sequence[ChatMessage]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._settings.openrouter_api_key}",
            "Content-Type": "application/json",
            "X-Title": DEFAULT_MODELS.app_title,
        }
        payload = {"model": model, "messages": list(messages)}

        client = await self.get_async_client()
        response = await client.post(self._settings.openrouter_api_url, headers=headers, json=payload)
        logger.debug(
            "openrouter responded",
            extra={"model": model, "status_code": response.status_code},
        )
        response.raise_for_status()
        return response.json()

    async def _post_with_retry(self, model: str, messages: Sequence[ChatMessage]) -> Dict[str, Any]:
        return await retry_with_backoff(
            lambda: self._post(model, messages),
            retries=self._settings.retry_attempts,
            base_delay=self._settings.retry_backoff_base,
            jitter=self._settings.retry_jitter,
            exceptions=(httpx.RequestError, httpx.HTTPStatusError),
            operation_name=f"consult:{model}",
            should_retry=_is_retryable,
        )

    async def consult(
        self,
        prompt: str,
        model: str,
        history: Sequence[ChatMessage] = (),
    ) -> ConsultationResult:
        """
        Send the conversation plus the new user turn to ``model``.

        Args:
            prompt: The new user message.
            model: Provider-qualified model id (e.g. "openai/gpt-5-codex").
            history: Earlier messages of the conversation, oldest first.

        Returns:
            ConsultationResult with the model's reply and token usage.

        Raises:
            CircuitOpenError: The breaker is rejecting calls.
            UpstreamError: The provider failed, timed out or was unreachable.
        """
        messages = [*history, {"role": "user", "content": prompt}]
        logger.debug(
            "sending request to openrouter",
            extra={
                "model": model,
                "message_count": len(messages),
                "total_characters": sum(len(m["content"]) for m in messages),
            },
        )

        start_time = perf_counter()
        try:
            data = await self.breaker.fire(model, messages)
        except CircuitOpenError:
            raise
        except Exception as exc:
            error = to_upstream_error(exc)
            logger.warning(
                "openrouter request failed",
                extra={"model": model, "status_code": error.status_code, "error": str(error)},
            )
            raise error from exc
        finally:
            elapsed_ms = int((perf_counter() - start_time) * 1000)
            logger.info("model request finished", extra={"model": model, "elapsed_ms": elapsed_ms})

        try:
            content = data["choices"][0]["message"]["content"]
            usage = TokenUsage(**(data.get("usage") or {}))
        except (KeyError, IndexError, TypeError, AttributeError, pydantic.ValidationError) as exc:
            logger.warning("openrouter returned malformed body", extra={"model": model})
            raise UpstreamError("OpenRouter API error: malformed response body") from exc

        return ConsultationResult(model=model, response=content or "", usage=usage)
