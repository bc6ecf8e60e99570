"""Domain helpers for username and password validation."""
from __future__ import annotations

import re

USERNAME_PATTERN = re.compile(r"[a-zA-Z][a-zA-Z0-9]{5,14}")
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 20


def is_valid_username(value: str | None) -> bool:
    """Return True for 6-15 ASCII letters/digits starting with a letter."""
    if not value:
        return False
    return bool(USERNAME_PATTERN.fullmatch(value))
