"""Helpers for issuing the invitation codes of private groups."""

from __future__ import annotations

import re
import secrets
import string
from typing import Callable

JOIN_CODE_LENGTH = 8
JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
JOIN_CODE_PATTERN = re.compile(rf"^[A-Z0-9]{{{JOIN_CODE_LENGTH}}}$")
MAX_GENERATION_ATTEMPTS = 10


def generate_join_code() -> str:
    """Return a random uppercase alphanumeric code."""

    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


def normalize_join_code(value: str | None) -> str | None:
    """Uppercase and strip a user supplied code, mapping blanks to ``None``."""

    if value is None:
        return None
    normalized = value.strip().upper()
    return normalized or None


def is_valid_join_code(value: str) -> bool:
    return bool(JOIN_CODE_PATTERN.match(value))


def unique_join_code(
    exists: Callable[[str], bool], attempts: int = MAX_GENERATION_ATTEMPTS
) -> str:
    """Generate a code that the ``exists`` callback reports as unused."""

    for _ in range(attempts):
        code = generate_join_code()
        if not exists(code):
            return code
    raise RuntimeError("Unable to generate a unique join code")
