"""Exception types raised by the completion client and the diff engine."""

from typing import Optional


class VibeError(Exception):
    """Base class for errors surfaced to the CLI."""


class ConfigurationError(VibeError):
    """Missing API key or invalid options."""


class ProviderError(VibeError):
    """Non-2xx response (or unusable body) from the completion provider."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RateLimitError(ProviderError):
    """429 from the provider; handled by rotating to the next candidate."""

    def __init__(self, model: str, body: str = ""):
        super().__init__(f"Rate limited (429) on {model}", status_code=429, body=body)
        self.model = model


class CompletionFailedError(VibeError):
    """Every candidate model failed."""

    def __init__(self, last_error: Optional[BaseException] = None):
        if last_error is not None:
            message = f"Completion failed: {last_error}"
        else:
            message = "Completion failed: All models failed"
        super().__init__(message)
        self.last_error = last_error


class DiffApplyError(VibeError):
    """A hunk could not be located in the target file."""

    def __init__(self, path: str, hunk_index: int, reason: str):
        super().__init__(f"{path}: hunk {hunk_index + 1} does not apply ({reason})")
        self.path = path
        self.hunk_index = hunk_index
        self.reason = reason
