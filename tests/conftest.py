"""Shared fixtures for consultant tests."""

from __future__ import annotations

from typing import List, Sequence, Tuple

import pytest

from consultant.cache import ResponseCache
from consultant.config import Settings
from consultant.history import HistoryManager
from consultant.model_selector import ModelSelector
from consultant.models import ChatMessage, ConsultationResult, TokenUsage
from consultant.orchestrator import ConsultationService
from consultant.rate_limiter import RateLimiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """Records calls and answers from a per-model script."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, List[ChatMessage]]] = []
        self.failures: dict[str, Exception] = {}
        self.usage = TokenUsage(prompt_tokens=10, completion_tokens=20, total_tokens=30)

    async def consult(
        self,
        prompt: str,
        model: str,
        history: Sequence[ChatMessage] = (),
    ) -> ConsultationResult:
        self.calls.append((prompt, model, list(history)))
        if model in self.failures:
            raise self.failures[model]
        return ConsultationResult(model=model, response=f"{model} says: {prompt}", usage=self.usage)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        openrouter_api_key="test-key",
        openrouter_api_url="https://openrouter.test/api/v1/chat/completions",
        retry_backoff_base=0.0,
        retry_jitter=0.0,
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def service(upstream: FakeUpstream, clock: FakeClock) -> ConsultationService:
    return ConsultationService(
        api_client=upstream,
        model_selector=ModelSelector(),
        cache=ResponseCache(ttl=300, clock=clock),
        history=HistoryManager(max_history_length=20),
        rate_limiter=RateLimiter(requests_per_minute=20, clock=clock),
    )
