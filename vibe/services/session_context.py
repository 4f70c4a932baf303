"""Per-invocation session state: API key cache and prompting policy."""

import os
from typing import Dict, Any, Optional
import logging

from ..core.config import ConfigStore
from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = ("OPENROUTER_API_KEY", "OPENROUTER_KEY")

MISSING_KEY_HELP = (
    "Missing OpenRouter API key. Set OPENROUTER_API_KEY or run "
    "`vibe config set openrouter.apiKey <key>`."
)


def api_key_from_env() -> Optional[str]:
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name)
        if value and value.strip():
            return value.strip()
    return None


class SessionContext:
    """Owned by the top-level CLI invocation and passed to the completion client.

    Args:
        config_store: Config file access (for reading and optionally persisting the key)
        prompter: Object with ``ask_secret(message)`` and ``confirm(message, default)``
        interactive: Whether prompting the user is allowed
    """

    def __init__(self, config_store: ConfigStore, prompter=None, interactive: bool = False):
        self.config_store = config_store
        self.prompter = prompter
        self.interactive = interactive and prompter is not None
        self.api_key: Optional[str] = None
        self.prompted = False

    def resolve_api_key(self) -> str:
        """Cached -> environment -> config file -> one interactive prompt.

        Raises:
            ConfigurationError: If no key can be resolved
        """
        if self.api_key:
            return self.api_key

        env_key = api_key_from_env()
        if env_key:
            self.api_key = env_key
            return self.api_key

        stored = self.config_store.get_path("openrouter.apiKey")
        if isinstance(stored, str) and stored.strip():
            self.api_key = stored.strip()
            return self.api_key

        if self.interactive and not self.prompted:
            self.prompted = True
            entered = (self.prompter.ask_secret("Enter your OpenRouter API key:") or "").strip()
            if entered:
                self.api_key = entered
                if self.prompter.confirm("Save API key to config for future use?", default=False):
                    self.config_store.set_path("openrouter.apiKey", entered)
                    logger.info("API key saved to config")
                return self.api_key

        raise ConfigurationError(MISSING_KEY_HELP)

    def has_api_key(self) -> bool:
        return bool(self.api_key or api_key_from_env() or self.config_store.get_path("openrouter.apiKey"))

    def status(self) -> Dict[str, Any]:
        """Where a key is (or would be) coming from, without revealing it."""
        return {
            "has_key": self.has_api_key(),
            "is_cached": bool(self.api_key),
            "from_env": api_key_from_env() is not None,
            "from_config": bool(self.config_store.get_path("openrouter.apiKey")),
            "was_prompted": self.prompted,
        }

    def clear(self) -> None:
        """Forget the cached key and allow prompting again."""
        self.api_key = None
        self.prompted = False
