"""
Utilities for redacting credential material from logs and error output.

Service-account and external-account JSON blobs are logged for diagnostics
only after passing through these helpers.
"""

from __future__ import annotations

import re
from typing import Any

# Patterns for detecting sensitive data
SENSITIVE_PATTERNS = {
    "private_key": r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
    "server_key": r"(key=)([a-zA-Z0-9_:-]{20,})",
    "bearer_token": r"(Bearer\s+)([a-zA-Z0-9._-]{20,})",
}

# Keys that should always be considered sensitive
SENSITIVE_KEYS = {
    "private_key",
    "private_key_id",
    "client_secret",
    "refresh_token",
    "access_token",
    "api_key",
    "legacy_api_key",
    "password",
    "secret",
}


def redact_sensitive_data(text: str) -> str:
    """
    Redact sensitive data from string using pattern matching.

    Args:
        text: String potentially containing sensitive data

    Returns:
        String with sensitive patterns replaced with [REDACTED_*] placeholders
    """
    result = text
    for name, pattern in SENSITIVE_PATTERNS.items():
        result = re.sub(
            pattern,
            f"[REDACTED_{name.upper()}]",
            result,
            flags=re.DOTALL | re.IGNORECASE,
        )
    return result


def redact_dict(data: dict[str, Any]) -> dict[str, Any]:
    """
    Create a redacted copy of a credential dict, hiding sensitive keys.

    Args:
        data: Dictionary potentially containing sensitive values

    Returns:
        New dictionary with sensitive values replaced with [REDACTED]
    """
    redacted = {}
    for key, value in data.items():
        if key.lower() in SENSITIVE_KEYS:
            redacted[key] = "[REDACTED]"
        elif isinstance(value, dict):
            redacted[key] = redact_dict(value)
        elif isinstance(value, (list, tuple)):
            redacted[key] = [
                redact_dict(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            redacted[key] = value
    return redacted
