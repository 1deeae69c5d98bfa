"""
login_gateway/db/repositories/user_repo.py — Репозиторий учётных записей.

Модуль-репозиторий: flow'ы получают его как объект с async-функциями
``get_user_by_login_id`` / ``get_user_by_email`` / ``create_user`` /
``save_user``. ``memory_store.activate_memory_store()`` подменяет
эти функции in-memory реализациями.
"""

from __future__ import annotations

import asyncpg

from login_gateway.database import get_connection
from login_gateway.exceptions import ConflictError
from login_gateway.models.user import UserAccount

_COLUMNS = (
    "user_id", "login_id", "email", "first_name", "last_name", "user_type",
    "identity_provider", "identity_provider_user_id", "roles",
    "email_verified", "password_set", "mfa_enrolled", "passkey_enrolled",
    "status", "lock_type", "lock_reason", "locked_by", "status_before_lock",
    "deactivation_reason",
    "created_at", "created_by", "updated_at",
)


def _to_row(user: UserAccount) -> list:
    data = user.model_dump(mode="json")
    data["user_id"] = user.user_id
    data["created_at"] = user.created_at
    data["updated_at"] = user.updated_at
    data["roles"] = sorted(data["roles"])
    return [data[c] for c in _COLUMNS]


def _from_row(row) -> UserAccount | None:
    if row is None:
        return None
    data = dict(row)
    data["roles"] = set(data.get("roles") or [])
    return UserAccount.model_validate(data)


async def create_user(user: UserAccount) -> UserAccount:
    """Создать учётную запись."""
    placeholders = ", ".join(f"${i}" for i in range(1, len(_COLUMNS) + 1))
    async with get_connection() as conn:
        try:
            row = await conn.fetchrow(
                f"INSERT INTO user_accounts ({', '.join(_COLUMNS)}) "
                f"VALUES ({placeholders}) RETURNING *",
                *_to_row(user),
            )
        except asyncpg.UniqueViolationError as exc:
            raise ConflictError(
                f"User with login id '{user.login_id}' already exists",
                error="user_exists",
            ) from exc
        return _from_row(row)


async def get_user_by_login_id(login_id: str) -> UserAccount | None:
    """Найти учётную запись по login id."""
    async with get_connection() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM user_accounts WHERE login_id = $1", login_id
        )
        return _from_row(row)


async def get_user_by_email(email: str) -> UserAccount | None:
    """Найти учётную запись по email (без учёта регистра)."""
    async with get_connection() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM user_accounts WHERE lower(email) = lower($1) "
            "ORDER BY created_at LIMIT 1",
            email,
        )
        return _from_row(row)


async def save_user(user: UserAccount) -> UserAccount:
    """Сохранить изменённую учётную запись (все изменяемые поля)."""
    mutable = _COLUMNS[3:]
    assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(mutable, start=2))
    values = _to_row(user)
    async with get_connection() as conn:
        row = await conn.fetchrow(
            f"UPDATE user_accounts SET {assignments} WHERE user_id = $1 RETURNING *",
            values[0],
            *values[3:],
        )
        return _from_row(row) or user
