"""Identifier generation for findings."""

from __future__ import annotations

import secrets
import time

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


def generate_id() -> str:
    """Return ``{timestamp}-{random}``, sortable by creation time."""
    return f"{_base36(int(time.time() * 1000))}-{secrets.token_hex(4)}"
