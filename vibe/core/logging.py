"""Structured logging with redaction helpers."""

import logging
import json
import os
import re
from typing import Any, Optional
from datetime import datetime, timezone

# Sensitive key patterns to redact
SENSITIVE_PATTERNS = [
    r"api[_-]?key",
    r"token",
    r"secret",
    r"password",
    r"bearer",
    r"authorization",
]

# OpenRouter keys look like sk-or-v1-<hex>
_KEY_LITERAL = re.compile(r"sk-or-[A-Za-z0-9-]{8,}")

# Extra record attributes copied into structured output
EXTRA_FIELDS = ("model", "task_type", "stage", "path", "status_code")


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_sensitive(record.getMessage()),
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_obj[field] = getattr(record, field)

        # Add exception info if present
        if record.exc_info:
            log_obj["exception"] = redact_sensitive(self.formatException(record.exc_info))

        return json.dumps(log_obj)


class RedactingFormatter(logging.Formatter):
    """Plain text formatter that scrubs secrets from the rendered line."""

    def format(self, record: logging.LogRecord) -> str:
        return redact_sensitive(super().format(record))


def redact_sensitive(data: Any) -> Any:
    """Redact sensitive information from data.

    Args:
        data: Data to redact (dict, list, or string)

    Returns:
        Redacted data
    """
    if isinstance(data, dict):
        return {k: redact_value(k, v) for k, v in data.items()}
    elif isinstance(data, list):
        return [redact_sensitive(item) for item in data]
    elif isinstance(data, str):
        data = _KEY_LITERAL.sub("***REDACTED***", data)
        for pattern in SENSITIVE_PATTERNS:
            data = re.sub(
                rf"({pattern})([\s=:]+)(?!\*\*\*REDACTED)[\S]+",
                r"\1\2***REDACTED***",
                data,
                flags=re.IGNORECASE
            )
        return data
    return data


def redact_value(key: str, value: Any) -> Any:
    """Redact value if key matches sensitive pattern.

    Args:
        key: Dictionary key
        value: Value to potentially redact

    Returns:
        Original or redacted value
    """
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if re.search(pattern, key_lower):
            return "***REDACTED***"

    # Recursively redact nested structures
    if isinstance(value, (dict, list)):
        return redact_sensitive(value)

    return value


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def setup_logging(
    level: Optional[str] = None,
    structured: bool = False
) -> None:
    """Set up application logging.

    Args:
        level: Log level (default: $VIBE_LOG_LEVEL or WARNING)
        structured: Use structured JSON logging
    """
    level = (level or os.getenv("VIBE_LOG_LEVEL") or "WARNING").upper()
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.WARNING))

    # Clear existing handlers
    root_logger.handlers = []

    # Create console handler (stderr, so command output stays clean)
    handler = logging.StreamHandler()

    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            RedactingFormatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
        )

    root_logger.addHandler(handler)

    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
