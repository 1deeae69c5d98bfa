"""
login_gateway/services/password_policy.py — Парольная политика.

Правила (проверяются по порядку, возвращается первое нарушенное):
длина ≥ 12, заглавная, строчная, цифра, спецсимвол.
"""

from __future__ import annotations

import re

from login_gateway.exceptions import InvalidInputError

SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'

_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"\d"), "Password must contain at least one number"),
    (
        re.compile(f"[{re.escape(SPECIAL_CHARACTERS)}]"),
        "Password must contain at least one special character",
    ),
)


def password_violation(password: str, min_length: int = 12) -> str | None:
    """Первое нарушенное правило или None."""
    if len(password) < min_length:
        return f"Password must be at least {min_length} characters"
    for pattern, message in _RULES:
        if not pattern.search(password):
            return message
    return None


def validate_password(password: str, min_length: int = 12) -> None:
    """Поднимает InvalidInputError(invalid_password) при нарушении политики."""
    violation = password_violation(password, min_length)
    if violation is not None:
        raise InvalidInputError("invalid_password", violation)
