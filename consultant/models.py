"""Request and result types for consultations."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Chat messages are plain {"role": ..., "content": ...} dicts, as sent upstream.
ChatMessage = Dict[str, str]


@dataclass(frozen=True)
class ModelDescriptor:
    """A model in the catalog."""

    name: str
    id: str
    description: str
    best_for: Tuple[str, ...]


class ConsultationRequest(BaseModel):
    """A caller's request to consult one or more models."""

    prompt: str = Field(description="The question or task to send to the AI model.")
    model: Optional[str] = Field(default=None, description="Optional short model id.")
    models: Optional[List[str]] = Field(
        default=None,
        description="Models to consult sequentially; takes precedence over 'model'.",
    )
    task_description: Optional[str] = Field(
        default=None,
        description="Brief description of the task used for auto-selection.",
    )
    conversation_id: Optional[str] = Field(
        default=None,
        description="Keeps context across consultations; disables caching.",
    )
    clear_history: bool = Field(
        default=False,
        description="Clear the conversation history before processing.",
    )

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("prompt is required")
        return value


class TokenUsage(BaseModel):
    """Token counts reported by the provider; any field may be missing."""

    model_config = ConfigDict(frozen=True)

    prompt_tokens: Optional[int] = Field(default=None, ge=0)
    completion_tokens: Optional[int] = Field(default=None, ge=0)
    total_tokens: Optional[int] = Field(default=None, ge=0)


class ConsultationResult(BaseModel):
    """Outcome of a single-model consultation. Cached instances are shared."""

    model_config = ConfigDict(frozen=True)

    model: str
    response: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cached: bool = False


class ModelResponse(BaseModel):
    """One model's entry in a multi-model consultation."""

    model: str
    response: str
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)
    cached: bool = False
    error: Optional[str] = None


class MultiModelResult(ConsultationResult):
    """Aggregated outcome of a sequential multi-model consultation."""

    models_used: List[str]
    responses: List[ModelResponse]
