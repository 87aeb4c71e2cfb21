"""Tests for the OpenRouter client: payloads, retry policy and error mapping."""

import asyncio
import dataclasses
import json

import httpx
import pytest

from consultant.circuit_breaker import CircuitBreaker, CircuitState
from consultant.errors import CircuitOpenError, UpstreamError
from consultant.openrouter import OpenRouterClient

OK_BODY = {
    "choices": [{"message": {"content": "Recursion is a function calling itself."}}],
    "usage": {"prompt_tokens": 12, "completion_tokens": 8, "total_tokens": 20},
}


class Responder:
    """MockTransport handler that replays a list of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


def _client(settings, responder, **overrides):
    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    return OpenRouterClient(settings, transport=httpx.MockTransport(responder))


class TestConsult:
    @pytest.mark.asyncio
    async def test_sends_history_then_prompt(self, settings):
        responder = Responder(httpx.Response(200, json=OK_BODY))
        client = _client(settings, responder)
        history = [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]

        result = await client.consult("explain recursion", "google/gemini-2.5-pro", history)
        await client.aclose()

        request = responder.requests[0]
        assert str(request.url) == settings.openrouter_api_url
        assert request.headers["Authorization"] == "Bearer test-key"
        body = json.loads(request.content)
        assert body["model"] == "google/gemini-2.5-pro"
        assert body["messages"] == [*history, {"role": "user", "content": "explain recursion"}]

        assert result.model == "google/gemini-2.5-pro"
        assert result.response == "Recursion is a function calling itself."
        assert result.usage.total_tokens == 20
        assert result.cached is False

    @pytest.mark.asyncio
    async def test_missing_usage_fields(self, settings):
        body = {"choices": [{"message": {"content": "ok"}}], "usage": {"total_tokens": 5}}
        client = _client(settings, Responder(httpx.Response(200, json=body)))

        result = await client.consult("q", "m")

        assert result.usage.prompt_tokens is None
        assert result.usage.total_tokens == 5

    @pytest.mark.asyncio
    async def test_malformed_body(self, settings):
        client = _client(settings, Responder(httpx.Response(200, json={"choices": []})))

        with pytest.raises(UpstreamError, match="malformed"):
            await client.consult("q", "m")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "usage",
        [{"total_tokens": -1}, {"prompt_tokens": 1.5}, "lots", ["x"]],
    )
    async def test_malformed_usage(self, settings, usage):
        """Bad token counts surface as UpstreamError, not a validation crash."""
        body = {"choices": [{"message": {"content": "hi"}}], "usage": usage}
        client = _client(settings, Responder(httpx.Response(200, json=body)))

        with pytest.raises(UpstreamError, match="malformed response body"):
            await client.consult("q", "m")


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_retries_server_errors(self, settings):
        responder = Responder(
            httpx.Response(503, json={"error": {"message": "overloaded"}}),
            httpx.Response(502),
            httpx.Response(200, json=OK_BODY),
        )
        client = _client(settings, responder)

        result = await client.consult("q", "m")

        assert len(responder.requests) == 3
        assert result.usage.total_tokens == 20

    @pytest.mark.asyncio
    async def test_retries_network_errors(self, settings):
        responder = Responder(
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json=OK_BODY),
        )
        client = _client(settings, responder)

        await client.consult("q", "m")

        assert len(responder.requests) == 2

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, settings):
        responder = Responder(httpx.Response(401, json={"error": {"message": "No auth credentials found"}}))
        client = _client(settings, responder)

        with pytest.raises(UpstreamError) as exc_info:
            await client.consult("q", "m")

        assert len(responder.requests) == 1
        assert exc_info.value.status_code == 401
        assert str(exc_info.value) == "OpenRouter API error: No auth credentials found"

    @pytest.mark.asyncio
    async def test_gives_up_after_configured_retries(self, settings):
        responder = Responder(httpx.Response(500))
        client = _client(settings, responder, retry_attempts=2)

        with pytest.raises(UpstreamError) as exc_info:
            await client.consult("q", "m")

        assert len(responder.requests) == 3
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_network_failure_has_no_status(self, settings):
        client = _client(settings, Responder(httpx.ConnectError("refused")), retry_attempts=0)

        with pytest.raises(UpstreamError) as exc_info:
            await client.consult("q", "m")

        assert exc_info.value.status_code is None
        assert "refused" in str(exc_info.value)


class TestBreakerIntegration:
    @pytest.mark.asyncio
    async def test_open_breaker_fails_fast(self, settings):
        responder = Responder(httpx.Response(500))
        client = _client(settings, responder, retry_attempts=0)

        with pytest.raises(UpstreamError):
            await client.consult("q", "m")
        assert client.breaker.state is CircuitState.OPEN

        with pytest.raises(CircuitOpenError):
            await client.consult("q", "m")
        assert len(responder.requests) == 1

    @pytest.mark.asyncio
    async def test_breaker_timeout_becomes_upstream_error(self, settings):
        release = asyncio.Event()

        async def stalled(model, messages):
            await release.wait()
            return OK_BODY

        breaker = CircuitBreaker(stalled, timeout=0.01)
        client = OpenRouterClient(settings, breaker=breaker)

        with pytest.raises(UpstreamError, match="timed out after 0.01 seconds"):
            await client.consult("q", "m")

        release.set()
        await asyncio.sleep(0)
