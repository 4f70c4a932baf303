"""OpenRouter chat-completion client with model rotation on rate limits.

Candidates are tried strictly one after another. A 429 sleeps for the
configured backoff and moves on to the next candidate; any other failure
moves on immediately. The first success is returned.
"""

import base64
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
import httpx

from ..core.config import AppConfig, FreeModel
from ..core.errors import CompletionFailedError, ProviderError, RateLimitError
from ..core.logging import get_logger
from ..core.types import ChatMessage, CompletionRequest, CompletionResult
from .model_router import ModelRouter
from .session_context import SessionContext

logger = get_logger(__name__)

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "HTTP-Referer": "https://openrouter.ai",
    "X-Title": "Vibe CLI",
}

IMAGE_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


class OpenRouterClient:
    """Client for the OpenRouter chat completions API."""

    def __init__(
        self,
        config: AppConfig,
        session: SessionContext,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 120.0,
    ):
        """Initialize the client.

        Args:
            config: Loaded application config
            session: Session owning API key resolution
            http_client: Pre-built httpx client (tests pass one with a mock transport)
            sleep: Backoff sleep function, in seconds
            timeout: Per-request timeout in seconds
        """
        self.config = config
        self.session = session
        self.router = ModelRouter(config)
        self.base_url = config.openrouter.base_url.rstrip("/")
        self.client = http_client or httpx.Client(timeout=timeout)
        self._sleep = sleep

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "OpenRouterClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {**DEFAULT_HEADERS, "Authorization": f"Bearer {api_key}"}

    def _build_body(self, model: str, request: CompletionRequest) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": model,
            "messages": [m.to_wire() for m in request.messages],
            "temperature": request.temperature,
        }
        if request.max_tokens is not None:
            body["max_tokens"] = request.max_tokens
        if request.thinking is not None:
            body["reasoning"] = {"effort": "medium" if request.thinking else "low"}
        return body

    def _post_completion(self, model: str, body: Dict[str, Any], api_key: str) -> CompletionResult:
        """POST one completion.

        Raises:
            RateLimitError: On 429
            ProviderError: On any other non-2xx or an unusable body
            httpx.HTTPError: On transport failure
        """
        response = self.client.post(
            f"{self.base_url}/chat/completions",
            json=body,
            headers=self._headers(api_key),
        )

        if response.status_code == 429:
            raise RateLimitError(model, body=response.text)
        if not response.is_success:
            raise ProviderError(
                f"HTTP {response.status_code} from {model}: {response.text[:2000]}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError:
            raise ProviderError(f"Invalid JSON from {model}", response.status_code, response.text)

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices[0], dict) or not isinstance(choices[0].get("message"), dict):
            raise ProviderError(f"No choices in response from {model}", response.status_code, response.text)

        return CompletionResult(model=model, message=choices[0]["message"], raw_response=data)

    def chat_completion(self, request: CompletionRequest) -> CompletionResult:
        """Return the first successful completion across the candidate models.

        Args:
            request: Messages and options

        Returns:
            Completion from the first candidate that succeeded

        Raises:
            ConfigurationError: If no API key can be resolved
            CompletionFailedError: If every candidate failed
        """
        api_key = request.api_key or self.session.resolve_api_key()
        candidates = self.router.candidates(request.task_type, request.prompt, request.model)
        backoff = self.config.rate_limit_backoff_seconds

        last_error: Optional[BaseException] = None
        for index, model in enumerate(candidates):
            body = self._build_body(model, request)
            try:
                result = self._post_completion(model, body, api_key)
            except RateLimitError as e:
                last_error = e
                logger.warning(f"{e}; rotating to next model", extra={"model": model, "status_code": 429})
                if index < len(candidates) - 1:
                    self._sleep(backoff)
                continue
            except (ProviderError, httpx.HTTPError) as e:
                last_error = e
                logger.warning(f"Model {model} failed: {e}", extra={"model": model})
                continue

            logger.info(f"Completion served by {model}", extra={"model": model})
            return result

        logger.error(f"OpenRouter API error: all {len(candidates)} candidates failed")
        raise CompletionFailedError(last_error)

    def list_free_models(self) -> Tuple[str, List[FreeModel]]:
        """Configured default model and free-model list."""
        return self.config.openrouter.default_model, list(self.config.openrouter.top_free_models)

    def fetch_remote_free_models(self) -> List[FreeModel]:
        """Query the provider's model catalogue and keep zero-priced models.

        Raises:
            ProviderError: On non-2xx
        """
        api_key = self.session.resolve_api_key()
        response = self.client.get(f"{self.base_url}/models", headers=self._headers(api_key))
        if not response.is_success:
            raise ProviderError(
                f"HTTP {response.status_code} listing models: {response.text[:2000]}",
                status_code=response.status_code,
                body=response.text,
            )
        payload = response.json()
        entries = payload.get("data", []) if isinstance(payload, dict) else payload
        return [
            FreeModel(id=m["id"], ctx=m.get("context_length"), note=m.get("name"))
            for m in entries
            if isinstance(m, dict) and m.get("id") and is_free_model(m)
        ]


def _price(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float("".join(c for c in value if c.isdigit() or c == "."))
        except ValueError:
            return None
    return None


def is_free_model(model: Dict[str, Any]) -> bool:
    """True when the catalogue entry is flagged free or every listed price is zero."""
    if model.get("is_free"):
        return True
    pricing = model.get("pricing") or (model.get("top_provider") or {}).get("pricing")
    if not isinstance(pricing, dict):
        return False
    prices = [_price(pricing.get(k)) for k in ("prompt", "completion", "input", "output")]
    prices = [p for p in prices if p is not None]
    return bool(prices) and all(p == 0 for p in prices)


def encode_image_to_data_url(file_path: str) -> str:
    """Read an image and return it as a base64 data URL.

    Args:
        file_path: Image path; MIME type is inferred from the extension

    Returns:
        ``data:<mime>;base64,<payload>``

    Raises:
        OSError: If the file cannot be read
    """
    mime = IMAGE_MIME_TYPES.get(Path(file_path).suffix.lower(), "application/octet-stream")
    payload = base64.b64encode(Path(file_path).read_bytes()).decode("ascii")
    return f"data:{mime};base64,{payload}"


def chat_completion(
    messages: List[Any],
    *,
    session: SessionContext,
    config: Optional[AppConfig] = None,
    **options: Any,
) -> CompletionResult:
    """Convenience function: one completion with a short-lived client."""
    config = config or session.config_store.settings()
    request = CompletionRequest(
        messages=[m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m) for m in messages],
        **options,
    )
    with OpenRouterClient(config, session) as client:
        return client.chat_completion(request)
