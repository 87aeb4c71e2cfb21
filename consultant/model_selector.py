"""Keyword-based model selection."""

from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .constants import ModelDefaults
from .errors import ModelNotFoundError
from .models import ModelDescriptor

DEFAULT_MODELS = ModelDefaults()

AVAILABLE_MODELS: Mapping[str, ModelDescriptor] = MappingProxyType(
    {
        "gemini-2.5-pro": ModelDescriptor(
            name="gemini-2.5-pro",
            id="google/gemini-2.5-pro",
            description="Google's Gemini 2.5 Pro with large context window",
            best_for=("large context", "general purpose", "quick questions"),
        ),
        "gpt-5-codex": ModelDescriptor(
            name="gpt-5-codex",
            id="openai/gpt-5-codex",
            description="OpenAI's GPT-5 Codex, optimized for coding tasks",
            best_for=("coding", "complex tasks", "large context", "debugging", "refactoring"),
        ),
        "grok-code-fast-1": ModelDescriptor(
            name="grok-code-fast-1",
            id="x-ai/grok-code-fast-1",
            description="xAI's Grok Code Fast 1, optimized for code-related tasks",
            best_for=("complex reasoning", "code review", "detailed analysis", "budget"),
        ),
    }
)

CODING_KEYWORDS: Tuple[str, ...] = (
    "code",
    "coding",
    "typescript",
    "javascript",
    "python",
    "java",
    "refactor",
    "debug",
    "function",
    "class",
    "bug",
    "programming",
    "algorithm",
)
COMPLEX_KEYWORDS: Tuple[str, ...] = (
    "complex",
    "architecture",
    "system design",
    "detailed analysis",
    "in-depth",
    "comprehensive",
    "thorough",
)
QUICK_KEYWORDS: Tuple[str, ...] = (
    "quick",
    "simple",
    "explain",
    "what is",
    "how to",
    "large context",
    "summary",
)
BUDGET_KEYWORDS: Tuple[str, ...] = ("budget", "cost-effective", "cheap", "affordable")

# Checked in order; the first keyword set found in the text picks the model.
SELECTION_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (CODING_KEYWORDS, "gpt-5-codex"),
    (COMPLEX_KEYWORDS, "grok-code-fast-1"),
    (QUICK_KEYWORDS, "gemini-2.5-pro"),
    (BUDGET_KEYWORDS, "grok-code-fast-1"),
)


class ModelSelector:
    """Stateless mapping from task text to a catalog model."""

    def __init__(self, models: Mapping[str, ModelDescriptor] = AVAILABLE_MODELS):
        self._models = models

    def select_model(self, task_description: str) -> ModelDescriptor:
        """
        Pick a model for the task by substring keyword matching.

        Coding keywords win over complex-analysis keywords, which win over
        quick-question keywords, which win over budget keywords. Text that
        matches nothing gets the default model.
        """
        text = (task_description or "").lower()
        for keywords, model_name in SELECTION_RULES:
            if any(keyword in text for keyword in keywords):
                return self._models[model_name]
        return self._models[DEFAULT_MODELS.default_model]

    def get_model_by_id(self, model_id: str) -> Optional[ModelDescriptor]:
        return self._models.get(model_id)

    def require_model(self, model_id: str) -> ModelDescriptor:
        """Like get_model_by_id, but raise ModelNotFoundError for unknown ids."""
        descriptor = self._models.get(model_id)
        if descriptor is None:
            raise ModelNotFoundError(model_id)
        return descriptor

    def get_all_models(self) -> Mapping[str, ModelDescriptor]:
        return self._models
