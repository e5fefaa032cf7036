"""Error message sanitization to keep credentials and local paths out of output."""

from __future__ import annotations

import os
import re

MAX_ERROR_LENGTH = 500


def sanitize_error(message: str) -> str:
    """Redact API keys, auth headers and the user's home path from a message."""
    if not message:
        return message

    sanitized = message
    sanitized = re.sub(r"sk-ant-[a-zA-Z0-9_-]+", "[REDACTED_KEY]", sanitized)
    sanitized = re.sub(r"sk-[a-zA-Z0-9_-]{20,}", "[REDACTED_KEY]", sanitized)
    sanitized = re.sub(r"Bearer\s+\S+", "Bearer [REDACTED]", sanitized)
    sanitized = re.sub(r"x-api-key:\s*\S+", "x-api-key: [REDACTED]", sanitized, flags=re.IGNORECASE)
    sanitized = re.sub(r"Authorization:\s*\S+", "Authorization: [REDACTED]", sanitized)

    home = os.environ.get("USERPROFILE") or os.environ.get("HOME") or ""
    if home and home != "/":
        sanitized = sanitized.replace(home, "[USER_HOME]")

    if len(sanitized) > MAX_ERROR_LENGTH:
        sanitized = sanitized[:MAX_ERROR_LENGTH] + "..."

    return sanitized


def describe_error(error: BaseException) -> str:
    """One-line, sanitized description of an exception (no traceback)."""
    text = str(error) or error.__class__.__name__
    return sanitize_error(text)
