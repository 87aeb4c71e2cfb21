"""Tests for keyword-based model selection."""

import pytest

from consultant.errors import ModelNotFoundError
from consultant.model_selector import AVAILABLE_MODELS, ModelSelector


@pytest.fixture
def selector():
    return ModelSelector()


class TestSelectModel:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("refactor this function", "gpt-5-codex"),
            ("Debug my Python script", "gpt-5-codex"),
            ("a thorough system design review", "grok-code-fast-1"),
            ("explain recursion", "gemini-2.5-pro"),
            ("What is a monad?", "gemini-2.5-pro"),
            ("budget", "grok-code-fast-1"),
            ("something cheap please", "grok-code-fast-1"),
        ],
    )
    def test_keyword_sets(self, selector, text, expected):
        assert selector.select_model(text).name == expected

    def test_earlier_keyword_set_wins(self, selector):
        """Coding beats quick-question when both match."""
        assert selector.select_model("quick question about a bug").name == "gpt-5-codex"
        assert selector.select_model("explain this complex topic").name == "grok-code-fast-1"

    def test_default_when_nothing_matches(self, selector):
        assert selector.select_model("").name == "gpt-5-codex"
        assert selector.select_model("tell me a story").name == "gpt-5-codex"

    def test_deterministic(self, selector):
        results = {selector.select_model("Explain the architecture").id for _ in range(5)}
        assert results == {"x-ai/grok-code-fast-1"}


class TestCatalog:
    def test_get_model_by_id(self, selector):
        model = selector.get_model_by_id("gemini-2.5-pro")
        assert model is not None
        assert model.id == "google/gemini-2.5-pro"

    def test_unknown_model_is_absent(self, selector):
        assert selector.get_model_by_id("gpt-2") is None
        assert selector.get_model_by_id("openai/gpt-5-codex") is None

    def test_require_model_raises_for_unknown_id(self, selector):
        assert selector.require_model("gpt-5-codex").id == "openai/gpt-5-codex"
        with pytest.raises(ModelNotFoundError) as exc_info:
            selector.require_model("gpt-2")
        assert exc_info.value.model_id == "gpt-2"

    def test_every_short_id_resolves(self, selector):
        for name, model in selector.get_all_models().items():
            assert model.name == name
            assert selector.get_model_by_id(name) is model

    def test_catalog_is_read_only(self):
        with pytest.raises(TypeError):
            AVAILABLE_MODELS["new"] = AVAILABLE_MODELS["gpt-5-codex"]
