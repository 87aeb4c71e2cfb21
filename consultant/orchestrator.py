"""Consultation orchestration: rate limiting, model choice, caching and history."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .cache import ResponseCache, generate_cache_key
from .constants import ModelDefaults
from .errors import ModelNotFoundError, ValidationError
from .history import HistoryManager
from .model_selector import ModelSelector
from .models import (
    ChatMessage,
    ConsultationRequest,
    ConsultationResult,
    ModelResponse,
    MultiModelResult,
    TokenUsage,
)
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

GLOBAL_IDENTIFIER = ModelDefaults().global_identifier


class UpstreamClient(Protocol):
    async def consult(
        self,
        prompt: str,
        model: str,
        history: Sequence[ChatMessage] = (),
    ) -> ConsultationResult: ...


def sum_usage(usages: Sequence[TokenUsage]) -> TokenUsage:
    """Add token counts field by field, treating missing counts as zero."""
    return TokenUsage(
        prompt_tokens=sum(u.prompt_tokens or 0 for u in usages),
        completion_tokens=sum(u.completion_tokens or 0 for u in usages),
        total_tokens=sum(u.total_tokens or 0 for u in usages),
    )


def combine_responses(responses: Sequence[ModelResponse]) -> str:
    """Render every model's answer as one markdown document."""
    sections = ["# Multi-Model Consultation Results\n\n"]
    for index, entry in enumerate(responses, start=1):
        cached = " (cached)" if entry.cached else ""
        sections.append(f"## Model {index}: {entry.model}{cached}\n\n")
        sections.append(f"{entry.response}\n\n")
        sections.append(f"**Tokens used:** {entry.tokens_used.total_tokens or 0}\n\n")
        sections.append("---\n\n")
    return "".join(sections)


class ConsultationService:
    """
    Route consultations to upstream models.

    Single-model requests run: rate limit check, optional history clear,
    model resolution, cache lookup (stateless requests only), upstream
    call, then history or cache update. Multi-model requests share one
    rate limit check and one history turn across all models, and consult
    the models one after another.
    """

    def __init__(
        self,
        api_client: UpstreamClient,
        model_selector: ModelSelector,
        cache: ResponseCache[ConsultationResult],
        history: HistoryManager,
        rate_limiter: RateLimiter,
    ):
        self.api_client = api_client
        self.model_selector = model_selector
        self.cache = cache
        self.history = history
        self.rate_limiter = rate_limiter

    def list_models(self) -> List[Dict[str, Any]]:
        """Describe the catalog for callers."""
        return [
            {
                "name": name,
                "id": model.id,
                "description": model.description,
                "bestFor": list(model.best_for),
            }
            for name, model in self.model_selector.get_all_models().items()
        ]

    async def consult(self, request: ConsultationRequest) -> ConsultationResult:
        """Consult one model, or several when ``request.models`` is given."""
        if not request.prompt or not request.prompt.strip():
            raise ValidationError("prompt is required")
        if request.models is not None:
            return await self.consult_multiple(request)

        self._begin(request)
        model = self._resolve_model(request.model, request.task_description, request.prompt)
        logger.debug("selected model", extra={"model": model})

        result = await self._consult_model(request, model)
        if request.conversation_id:
            self._record_turn(request.conversation_id, request.prompt, result.response)
        return result

    async def consult_multiple(self, request: ConsultationRequest) -> MultiModelResult:
        """
        Consult each model in ``request.models`` sequentially.

        A failing model does not abort the batch; its entry carries the
        error text and zero token usage instead.
        """
        models = request.models or []
        if not models:
            raise ValidationError("No models specified for multi-model consultation")

        start_time = perf_counter()
        logger.info("multi-model consultation start", extra={"model_count": len(models)})
        self._begin(request)

        responses: List[ModelResponse] = []
        for model_id in models:
            try:
                model = self._resolve_model(model_id, request.task_description, request.prompt)
                result = await self._consult_model(request, model)
            except Exception as exc:
                logger.error(
                    "error consulting model",
                    extra={"model": model_id, "error": str(exc)},
                )
                responses.append(
                    ModelResponse(
                        model=model_id,
                        response=f"Error: {exc}",
                        tokens_used=TokenUsage(prompt_tokens=0, completion_tokens=0, total_tokens=0),
                        error=str(exc),
                    )
                )
                continue
            responses.append(
                ModelResponse(
                    model=model_id,
                    response=result.response,
                    tokens_used=result.usage,
                    cached=result.cached,
                )
            )

        combined = combine_responses(responses)
        if request.conversation_id:
            self._record_turn(request.conversation_id, request.prompt, combined)

        elapsed_ms = int((perf_counter() - start_time) * 1000)
        logger.info(
            "multi-model consultation complete",
            extra={
                "elapsed_ms": elapsed_ms,
                "failure_count": sum(1 for entry in responses if entry.error),
            },
        )
        return MultiModelResult(
            model=f"Multi-model: {', '.join(models)}",
            response=combined,
            usage=sum_usage([entry.tokens_used for entry in responses]),
            models_used=list(models),
            responses=responses,
        )

    def _begin(self, request: ConsultationRequest) -> None:
        """Rate limit check and optional history reset, once per request."""
        identifier = request.conversation_id or GLOBAL_IDENTIFIER
        logger.debug("checking rate limit", extra={"identifier": identifier})
        self.rate_limiter.check(identifier)

        if request.clear_history and request.conversation_id:
            logger.debug("clearing conversation history", extra={"conversation_id": request.conversation_id})
            self.history.clear(request.conversation_id)

    def _resolve_model(
        self,
        explicit_model: Optional[str],
        task_description: Optional[str],
        prompt: str,
    ) -> str:
        """Return the provider-qualified id to call."""
        if explicit_model:
            try:
                return self.model_selector.require_model(explicit_model).id
            except ModelNotFoundError:
                logger.warning("Invalid model ID: %s. Using auto-selection.", explicit_model)
        return self.model_selector.select_model(task_description or prompt).id

    async def _consult_model(self, request: ConsultationRequest, model: str) -> ConsultationResult:
        """Cache lookup, upstream call and cache store for one model."""
        stateless = not request.conversation_id
        cache_key = generate_cache_key(request.prompt, model)

        if stateless:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info("Cache hit for query", extra={"model": model})
                return cached.model_copy(update={"model": f"{model} (cached)", "cached": True})
            logger.debug("Cache miss for query", extra={"model": model})

        history = [] if stateless else self.history.get(request.conversation_id)
        if not stateless:
            logger.debug(
                "loaded conversation history",
                extra={"conversation_id": request.conversation_id, "message_count": len(history)},
            )

        result = await self.api_client.consult(request.prompt, model, history)

        if stateless:
            self.cache.set(cache_key, result)
        return result

    def _record_turn(self, conversation_id: str, prompt: str, reply: str) -> None:
        self.history.update(
            conversation_id,
            {"role": "user", "content": prompt},
            {"role": "assistant", "content": reply},
        )
