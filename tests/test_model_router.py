"""Tests for task detection and model routing."""

import pytest

from vibe.core.config import AppConfig, DEFAULT_MODEL
from vibe.core.types import TaskType
from vibe.services.model_router import (
    TASK_MODEL_MAPPING,
    ModelRouter,
    detect_task_type,
    fallback_order,
    route_model,
)


class TestDetectTaskType:
    """Keyword and command based classification."""

    @pytest.mark.parametrize("prompt,expected", [
        ("generate a REST handler", TaskType.CODE_GENERATION),
        ("Why does this throw an error?", TaskType.DEBUG),
        ("please refactor the parser", TaskType.REFACTOR),
        ("add a unit test for foo", TaskType.TEST_GENERATION),
        ("autocomplete this line", TaskType.COMPLETION),
        ("modify the config loader", TaskType.MULTI_EDIT),
        ("summarize my last commit", TaskType.GIT_ANALYSIS),
        ("critique this function", TaskType.CODE_REVIEW),
        ("hello there", TaskType.CHAT),
    ])
    def test_keywords(self, prompt, expected):
        assert detect_task_type(prompt) == expected

    def test_empty_and_none_default_to_chat(self):
        assert detect_task_type("") == TaskType.CHAT
        assert detect_task_type(None) == TaskType.CHAT

    def test_whole_words_only(self):
        # "prefix" contains "fix" but is not a debug request
        assert detect_task_type("the prefix tree") == TaskType.CHAT

    def test_earlier_family_wins(self):
        # both "write" (generation) and "test" (test generation) appear
        assert detect_task_type("write a test") == TaskType.CODE_GENERATION

    def test_command_takes_precedence(self):
        assert detect_task_type("hello", command="refactor") == TaskType.REFACTOR
        assert detect_task_type("generate code", command="edit") == TaskType.MULTI_EDIT

    def test_unknown_command_falls_back_to_text(self):
        assert detect_task_type("debug it", command="unknown") == TaskType.DEBUG

    def test_deterministic(self):
        prompt = "fix the failing build"
        assert {detect_task_type(prompt) for _ in range(5)} == {TaskType.DEBUG}


class TestRouteModel:
    """Candidate list construction."""

    @pytest.mark.parametrize("task_type", list(TASK_MODEL_MAPPING))
    def test_contains_preferred_and_default_without_duplicates(self, task_type):
        candidates = route_model(task_type, default_model="my/default")

        assert len(candidates) == len(set(candidates))
        assert set(TASK_MODEL_MAPPING[task_type]) <= set(candidates)
        assert "my/default" in candidates

    def test_default_already_preferred_goes_first(self):
        preferred = TASK_MODEL_MAPPING[TaskType.MULTI_EDIT]
        candidates = route_model(TaskType.MULTI_EDIT, default_model=preferred[1])

        assert candidates[0] == preferred[1]
        assert sorted(candidates) == sorted(preferred)

    def test_default_not_preferred_is_appended(self):
        candidates = route_model(TaskType.DEBUG, default_model="my/default")
        assert candidates == TASK_MODEL_MAPPING[TaskType.DEBUG] + ["my/default"]

    def test_explicit_model_overrides_default(self):
        candidates = route_model(TaskType.DEBUG, explicit_model="x/explicit", default_model="my/default")
        assert candidates[-1] == "x/explicit"
        assert "my/default" not in candidates

    def test_hardcoded_default_when_nothing_configured(self):
        candidates = route_model(TaskType.CHAT)
        assert candidates[0] == DEFAULT_MODEL


def test_fallback_order_promotes_start_model():
    config = AppConfig()
    models = config.openrouter.top_free_models
    order = fallback_order(models, models[3].id)

    assert order[0] == models[3].id
    assert len(order) == len(models)
    assert len(set(order)) == len(order)


class TestModelRouter:
    """Router wired to configuration."""

    def test_task_hint_uses_mapping(self):
        router = ModelRouter(AppConfig())
        candidates = router.candidates(task_type=TaskType.REFACTOR)
        assert candidates[0] == TASK_MODEL_MAPPING[TaskType.REFACTOR][0]

    def test_prompt_is_classified(self):
        router = ModelRouter(AppConfig())
        assert router.candidates(prompt="debug this") == route_model(TaskType.DEBUG, default_model=DEFAULT_MODEL)

    def test_no_hint_uses_free_model_list(self):
        config = AppConfig.model_validate({"openrouter": {"defaultModel": "google/gemma-3-27b:free"}})
        candidates = ModelRouter(config).candidates()

        assert candidates[0] == "google/gemma-3-27b:free"
        assert len(candidates) == len(config.openrouter.top_free_models)
