"""Task detection and candidate-model routing for OpenRouter."""

import re
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from ..core.config import AppConfig, DEFAULT_MODEL, FreeModel
from ..core.types import TaskType

logger = logging.getLogger(__name__)


TASK_MODEL_MAPPING: Dict[TaskType, List[str]] = {
    TaskType.CODE_GENERATION: ["deepseek/deepseek-coder-v2-lite", "qwen/qwen2.5-coder-7b"],
    TaskType.CHAT: ["z-ai/glm-4.5-air:free", "mistral/mistral-nemo-instruct"],
    TaskType.DEBUG: ["qwen/qwen3-coder-480b", "kwaipilot/kat-coder-pro"],
    TaskType.LONG_CONTEXT: ["google/gemini-2.0-flash-exp:free"],
    TaskType.REFACTOR: ["kwaipilot/kat-coder-pro-v1:free", "deepseek/deepseek-coder-v2-lite"],
    TaskType.TEST_GENERATION: ["qwen/qwen3-coder-480b-a35b:free", "deepseek/deepseek-coder-v2-lite"],
    TaskType.COMPLETION: ["deepseek/deepseek-coder-v2-lite", "qwen/qwen2.5-coder-7b"],
    TaskType.MULTI_EDIT: ["kwaipilot/kat-coder-pro-v1:free", "z-ai/glm-4.5-air:free"],
    TaskType.GIT_ANALYSIS: ["z-ai/glm-4.5-air:free", "mistral/mistral-nemo-instruct"],
    TaskType.CODE_REVIEW: ["kwaipilot/kat-coder-pro-v1:free", "qwen/qwen3-coder-480b-a35b:free"],
}

COMMAND_TASKS: Dict[str, TaskType] = {
    "generate": TaskType.CODE_GENERATION,
    "complete": TaskType.COMPLETION,
    "refactor": TaskType.REFACTOR,
    "edit": TaskType.MULTI_EDIT,
    "debug": TaskType.DEBUG,
    "test": TaskType.TEST_GENERATION,
    "git": TaskType.GIT_ANALYSIS,
    "review": TaskType.CODE_REVIEW,
    "chat": TaskType.CHAT,
}

# Checked in order; first family with a whole-word hit wins
KEYWORD_FAMILIES: List[Tuple[TaskType, "re.Pattern[str]"]] = [
    (TaskType.CODE_GENERATION, re.compile(r"\b(generate|create|implement|write)\b")),
    (TaskType.DEBUG, re.compile(r"\b(debug|error|fix|issue)\b")),
    (TaskType.REFACTOR, re.compile(r"\b(refactor|optimize|improve)\b")),
    (TaskType.TEST_GENERATION, re.compile(r"\b(test|spec|unit test)\b")),
    (TaskType.COMPLETION, re.compile(r"\b(complete|finish|autocomplete)\b")),
    (TaskType.MULTI_EDIT, re.compile(r"\b(edit|modify|change)\b")),
    (TaskType.GIT_ANALYSIS, re.compile(r"\b(git|commit|pr|merge)\b")),
    (TaskType.CODE_REVIEW, re.compile(r"\b(review|analyze|critique)\b")),
]


def detect_task_type(prompt_text: Optional[str], command: Optional[str] = None) -> TaskType:
    """Classify a request.

    Args:
        prompt_text: Raw user prompt (may be empty or None)
        command: Explicit CLI command name, checked before the text

    Returns:
        Task type; CHAT when nothing matches
    """
    if command and command in COMMAND_TASKS:
        return COMMAND_TASKS[command]

    text = (prompt_text or "").lower()
    for task_type, pattern in KEYWORD_FAMILIES:
        if pattern.search(text):
            return task_type
    return TaskType.CHAT


def _dedupe(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(i for i in ids if i))


def route_model(
    task_type: TaskType,
    explicit_model: Optional[str] = None,
    default_model: Optional[str] = None,
) -> List[str]:
    """Ordered candidate ids for a task type.

    The default model (explicit override, else configured default, else the
    hardcoded fallback) is moved to the front when the task already prefers
    it, otherwise appended.

    Args:
        task_type: Task category
        explicit_model: Per-call override
        default_model: Configured default model

    Returns:
        Duplicate-free list of model ids
    """
    preferred = TASK_MODEL_MAPPING.get(task_type, TASK_MODEL_MAPPING[TaskType.CHAT])
    chosen = explicit_model or default_model or DEFAULT_MODEL

    if chosen in preferred:
        return _dedupe([chosen] + [m for m in preferred if m != chosen])
    return _dedupe(list(preferred) + [chosen])


def fallback_order(free_models: Iterable[FreeModel], start_model: str) -> List[str]:
    """The full free-model list with start_model promoted to the front."""
    ids = [m.id for m in free_models]
    return _dedupe([start_model] + [m for m in ids if m != start_model])


class ModelRouter:
    """Router for selecting candidate OpenRouter models."""

    def __init__(self, config: AppConfig):
        self.config = config

    @property
    def default_model(self) -> str:
        return self.config.openrouter.default_model or DEFAULT_MODEL

    def task_for(self, prompt: Optional[str], command: Optional[str] = None) -> TaskType:
        return detect_task_type(prompt, command)

    def candidates(
        self,
        task_type: Optional[TaskType] = None,
        prompt: Optional[str] = None,
        model: Optional[str] = None,
    ) -> List[str]:
        """Resolve the candidate order for one completion.

        Args:
            task_type: Explicit task hint
            prompt: Raw prompt, used for detection when no task hint is given
            model: Explicit model override

        Returns:
            Ordered candidate ids
        """
        if task_type is not None or prompt:
            resolved = task_type if task_type is not None else detect_task_type(prompt)
            order = route_model(resolved, model, self.default_model)
            logger.debug(f"Routing {resolved.value} -> {order}", extra={"task_type": resolved.value})
            return order

        order = fallback_order(self.config.openrouter.top_free_models, model or self.default_model)
        logger.debug(f"No task hint, using free-model order {order}")
        return order
