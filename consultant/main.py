"""FastAPI front-end for the AI consultant."""

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .cache import ResponseCache
from .config import Settings, configure_logging
from .errors import CircuitOpenError, RateLimitError, UpstreamError, ValidationError
from .history import HistoryManager
from .model_selector import ModelSelector
from .models import ConsultationRequest, ConsultationResult, ModelResponse, MultiModelResult, TokenUsage
from .openrouter import OpenRouterClient
from .orchestrator import ConsultationService, UpstreamClient
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class ModelInfo(BaseModel):
    """Catalog entry exposed to callers."""
    name: str
    id: str
    description: str
    bestFor: List[str]


class ConsultResponse(BaseModel):
    """Response for a single-model consultation."""
    model_used: str
    response: str
    tokens_used: TokenUsage
    conversation_id: Optional[str] = None
    cached: bool


class MultiModelConsultResponse(BaseModel):
    """Response for a sequential multi-model consultation."""
    models_used: List[str]
    responses: List[ModelResponse]
    combined_response: str
    total_tokens_used: TokenUsage
    conversation_id: Optional[str] = None


def build_service(settings: Settings, upstream: Optional[UpstreamClient] = None) -> ConsultationService:
    """Wire the consultation service from one settings object."""
    return ConsultationService(
        api_client=upstream or OpenRouterClient(settings),
        model_selector=ModelSelector(),
        cache=ResponseCache(ttl=settings.cache_ttl_seconds, check_period=settings.cache_check_period),
        history=HistoryManager(settings.max_conversation_history),
        rate_limiter=RateLimiter(settings.rate_limit_per_minute),
    )


def _error_response(status_code: int, detail: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail}, headers=headers)


def create_app(
    settings: Optional[Settings] = None,
    upstream: Optional[UpstreamClient] = None,
) -> FastAPI:
    """Build the API application around a single ConsultationService."""
    settings = settings or Settings.from_env()
    configure_logging(settings.verbose_logging)
    service = build_service(settings, upstream)

    app = FastAPI(title="AI Consultant API")
    app.state.settings = settings
    app.state.service = service

    # Default to permissive CORS, but allow tightening via CORS_ORIGINS.
    raw_origins = os.environ.get("CORS_ORIGINS")
    allow_origins = (
        [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
        if raw_origins
        else ["*"]
    )
    # When allowing all origins, credentials must be disabled by the CORS standard.
    allow_credentials = False if "*" in allow_origins else True

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error_response(400, str(exc))

    @app.exception_handler(RateLimitError)
    async def rate_limit_handler(request: Request, exc: RateLimitError):
        return _error_response(429, str(exc), headers={"Retry-After": str(exc.wait_seconds)})

    @app.exception_handler(CircuitOpenError)
    async def circuit_open_handler(request: Request, exc: CircuitOpenError):
        headers = None
        if exc.retry_after is not None:
            headers = {"Retry-After": str(max(1, round(exc.retry_after)))}
        return _error_response(503, str(exc), headers=headers)

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        return _error_response(502, str(exc))

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Ensure outbound HTTP clients are cleaned up."""
        client = service.api_client
        if isinstance(client, OpenRouterClient):
            await client.aclose()

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "service": "AI Consultant API"}

    @app.get("/api/models", response_model=List[ModelInfo])
    async def list_models():
        """List all available models with their descriptions and best use cases."""
        return service.list_models()

    @app.post("/api/consult")
    async def consult(request: ConsultationRequest) -> Dict[str, Any]:
        """
        Consult one model (auto-selected or explicit) or several models in turn.
        """
        if upstream is None and not settings.openrouter_api_key:
            raise HTTPException(status_code=400, detail="OpenRouter API key not set. Configure OPENROUTER_API_KEY.")

        logger.debug(
            "consultation requested",
            extra={
                "prompt_length": len(request.prompt),
                "requested_model": request.model or "auto-select",
                "requested_models": request.models or [],
                "conversation_id": request.conversation_id,
            },
        )
        result = await service.consult(request)
        return _format_result(result, request.conversation_id)

    return app


def _format_result(result: ConsultationResult, conversation_id: Optional[str]) -> Dict[str, Any]:
    if isinstance(result, MultiModelResult):
        return MultiModelConsultResponse(
            models_used=result.models_used,
            responses=result.responses,
            combined_response=result.response,
            total_tokens_used=result.usage,
            conversation_id=conversation_id,
        ).model_dump()
    return ConsultResponse(
        model_used=result.model,
        response=result.response,
        tokens_used=result.usage,
        conversation_id=conversation_id,
        cached=result.cached,
    ).model_dump()


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
