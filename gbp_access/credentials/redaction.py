"""
Credential redaction for log output.

SECURITY REQUIREMENTS:
- Tokens NEVER appear in logs (access_token, refresh_token)

Usage:
    logger.addFilter(CredentialLoggingFilter())
"""

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

REDACTED_VALUE = "[REDACTED]"

CREDENTIAL_SECRET_PATTERNS = [
    re.compile(r"(ya29\.[a-zA-Z0-9_-]+)"),  # Google access tokens
    re.compile(r"(1//[a-zA-Z0-9_-]{20,})"),  # Google refresh tokens
    re.compile(r"(bearer\s+[a-zA-Z0-9._-]+)", re.IGNORECASE),
]

SECRET_KEY_MARKERS = (
    "token", "secret", "credential", "bearer",
    "api_key", "apikey", "password",
)

# Token bookkeeping fields that are safe to log
SAFE_KEYS = frozenset({"token_expires_at", "has_refresh_token"})


def is_credential_secret_key(key: str) -> bool:
    """Check if a key name indicates a credential secret."""
    key_lower = key.lower()
    if key_lower in SAFE_KEYS:
        return False
    return any(marker in key_lower for marker in SECRET_KEY_MARKERS)


def redact_credential_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    result = value
    for pattern in CREDENTIAL_SECRET_PATTERNS:
        result = pattern.sub(REDACTED_VALUE, result)
    return result


def redact_credential_data(data: Any, _depth: int = 0) -> Any:
    """Recursively redact credential secrets from a data structure."""
    if _depth > 10:
        return data

    if isinstance(data, dict):
        return {
            key: REDACTED_VALUE if is_credential_secret_key(str(key))
            else redact_credential_data(value, _depth + 1)
            for key, value in data.items()
        }

    if isinstance(data, list):
        return [redact_credential_data(item, _depth + 1) for item in data]

    if isinstance(data, str):
        return redact_credential_value(data)

    return data


class CredentialLoggingFilter(logging.Filter):
    """Logging filter that redacts credential secrets from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_credential_value(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_credential_data(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(redact_credential_value(arg) for arg in record.args)

        for key in list(record.__dict__.keys()):
            value = record.__dict__[key]
            if is_credential_secret_key(key):
                record.__dict__[key] = REDACTED_VALUE
            elif isinstance(value, (str, dict, list)):
                record.__dict__[key] = redact_credential_data(value)

        return True


def setup_credential_logging() -> None:
    """
    Attach the redaction filter to every engine handler.

    Filters on a logger do not apply to records from child loggers, so the
    filter goes on the root handlers installed by logging.basicConfig().
    """
    credential_filter = CredentialLoggingFilter()
    for handler in logging.getLogger().handlers:
        handler.addFilter(credential_filter)

    logger.info("Credential logging configured with redaction filter")
