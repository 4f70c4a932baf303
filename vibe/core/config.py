"""Configuration management with environment overrides."""

import copy
import json
import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import logging

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "z-ai/glm-4.5-air:free"
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_RATE_LIMIT_BACKOFF_MS = 5000
PROJECT_CONFIG_FILE = ".vibe.yaml"


class FreeModel(BaseModel):
    """Free-tier model descriptor."""
    id: str = Field(..., description="Provider model id")
    ctx: Optional[int] = Field(None, description="Context window in tokens")
    note: Optional[str] = None


TOP_FREE_MODELS: List[FreeModel] = [
    FreeModel(id="tng/deepseek-r1t2-chimera:free", ctx=164000, note="long-context reasoning"),
    FreeModel(id="z-ai/glm-4.5-air:free", ctx=131000, note="default, agentic coding"),
    FreeModel(id="tng/deepseek-r1t-chimera:free", ctx=164000, note="balanced reasoning"),
    FreeModel(id="kwaipilot/kat-coder-pro-v1:free", ctx=256000, note="SWE-Bench strong"),
    FreeModel(id="deepseek/deepseek-v3-0324:free", ctx=164000, note="flagship chat"),
    FreeModel(id="deepseek/r1-0528:free", ctx=164000, note="open reasoning"),
    FreeModel(id="qwen/qwen3-coder-480b-a35b:free", ctx=262000, note="MoE code gen"),
    FreeModel(id="google/gemini-2.0-flash-exp:free", ctx=1050000, note="multimodal/fast"),
    FreeModel(id="google/gemma-3-27b:free", ctx=131000, note="vision/math/reasoning"),
]


class OpenRouterConfig(BaseModel):
    """OpenRouter configuration."""
    model_config = ConfigDict(populate_by_name=True)

    api_key: Optional[str] = Field(None, alias="apiKey")
    default_model: str = Field(default=DEFAULT_MODEL, alias="defaultModel")
    top_free_models: List[FreeModel] = Field(
        default_factory=lambda: [m.model_copy() for m in TOP_FREE_MODELS],
        alias="topFreeModels",
    )
    base_url: str = Field(default=DEFAULT_BASE_URL, alias="baseUrl")

    @field_validator("top_free_models", mode="before")
    @classmethod
    def _normalize_models(cls, value: Any) -> Any:
        # Older config files store bare model ids
        if isinstance(value, list):
            return [{"id": m} if isinstance(m, str) else m for m in value]
        return value


class CoreConfig(BaseModel):
    """CLI behaviour settings."""
    model_config = ConfigDict(populate_by_name=True)

    theme: str = Field(default="dark")
    autonomous: bool = Field(default=False)
    rate_limit_backoff: int = Field(default=DEFAULT_RATE_LIMIT_BACKOFF_MS, ge=0, alias="rateLimitBackoff")


class AppConfig(BaseModel):
    """Application configuration."""
    model_config = ConfigDict(populate_by_name=True)

    openrouter: OpenRouterConfig = Field(default_factory=OpenRouterConfig)
    core: CoreConfig = Field(default_factory=CoreConfig)

    @property
    def rate_limit_backoff_seconds(self) -> float:
        return self.core.rate_limit_backoff / 1000.0


def default_config_dir() -> Path:
    """~/.vibe unless VIBE_CONFIG_DIR points elsewhere."""
    override = os.getenv("VIBE_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".vibe"


def coerce_value(raw: str) -> Any:
    """Interpret a CLI string as JSON when it parses ("5000" -> 5000), else keep the string."""
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigStore:
    """Reads and writes the per-user JSON config file.

    The raw dict is kept as loaded so that saving never writes back values
    that only came from the project overlay or the environment.
    """

    def __init__(self, config_dir: Optional[Path] = None, project_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.config_file = self.config_dir / "config.json"
        self.project_dir = Path(project_dir) if project_dir else Path.cwd()
        self.data: Dict[str, Any] = self.load()

    def load(self) -> Dict[str, Any]:
        """Load configuration from file; any read or parse failure yields {}."""
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.debug(f"No usable config at {self.config_file}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def save(self) -> None:
        """Write the raw config as pretty-printed JSON, creating the directory if needed."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2)
        logger.info(f"Saved config to {self.config_file}")

    def ensure_defaults(self, persist: bool = False) -> None:
        """Fill in missing openrouter/core sections."""
        changed = False
        if not isinstance(self.data.get("openrouter"), dict):
            self.data["openrouter"] = {
                "defaultModel": DEFAULT_MODEL,
                "topFreeModels": [m.model_dump(exclude_none=True) for m in TOP_FREE_MODELS],
            }
            changed = True
        if not isinstance(self.data.get("core"), dict):
            self.data["core"] = {
                "theme": "dark",
                "autonomous": False,
                "rateLimitBackoff": DEFAULT_RATE_LIMIT_BACKOFF_MS,
            }
            changed = True
        if changed and persist:
            self.save()

    def get_path(self, key_path: str) -> Any:
        """Look up a dotted path such as "openrouter.defaultModel"."""
        node: Any = self.data
        for part in key_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def set_path(self, key_path: str, value: Any, persist: bool = True) -> None:
        """Set a dotted path, creating intermediate sections."""
        parts = key_path.split(".")
        node = self.data
        for part in parts[:-1]:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
        if persist:
            self.save()

    def load_project_overlay(self) -> Dict[str, Any]:
        """Read .vibe.yaml from the project directory, if present."""
        path = self.project_dir / PROJECT_CONFIG_FILE
        if not path.exists():
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Ignoring unreadable {path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def settings(self) -> AppConfig:
        """Merged, validated view: user JSON <- project YAML <- environment."""
        config_dict = _deep_merge(copy.deepcopy(self.data), self.load_project_overlay())

        # Apply environment overrides
        if model := os.getenv("VIBE_DEFAULT_MODEL"):
            config_dict.setdefault("openrouter", {})["defaultModel"] = model
        if backoff := os.getenv("VIBE_RATE_LIMIT_BACKOFF"):
            try:
                config_dict.setdefault("core", {})["rateLimitBackoff"] = int(backoff)
            except ValueError:
                logger.warning(f"Ignoring non-numeric VIBE_RATE_LIMIT_BACKOFF={backoff!r}")

        return AppConfig.model_validate(config_dict)


def load_config(config_dir: Optional[Path] = None, project_dir: Optional[Path] = None) -> AppConfig:
    """Load configuration with project and environment overrides.

    Args:
        config_dir: Directory holding config.json (default: ~/.vibe)
        project_dir: Directory searched for .vibe.yaml (default: cwd)

    Returns:
        Loaded configuration
    """
    return ConfigStore(config_dir, project_dir).settings()
