"""
═══════════════════════════════════════════════════════════════════════════════
Login Gateway — In-Memory хранилище (замена БД для локальной разработки)
═══════════════════════════════════════════════════════════════════════════════

In-memory реализация user_repo + функция ``activate_memory_store()``
для monkey-patching. Хранит копии UserAccount: изменения, не прошедшие
через ``save_user``, в хранилище не попадают (как и с настоящей БД).
"""

from __future__ import annotations

import logging
from uuid import UUID

from login_gateway.exceptions import ConflictError
from login_gateway.models.user import UserAccount

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
# Хранилище учётных записей
# ═══════════════════════════════════════════════════════════════════════════════
_users: dict[UUID, UserAccount] = {}


def clear() -> None:
    """Очищает хранилище (тесты, перезапуск dev-окружения)."""
    _users.clear()


# ═══════════════════════════════════════════════════════════════════════════════
# user_repo in-memory
# ═══════════════════════════════════════════════════════════════════════════════

async def create_user(user: UserAccount) -> UserAccount:
    """Создаёт учётную запись в памяти."""
    for existing in _users.values():
        if existing.login_id == user.login_id:
            raise ConflictError(
                f"User with login id '{user.login_id}' already exists",
                error="user_exists",
            )
    _users[user.user_id] = user.model_copy(deep=True)
    logger.info("Memory store: created user %s <%s>", user.login_id, user.email)
    return user.model_copy(deep=True)


async def get_user_by_login_id(login_id: str) -> UserAccount | None:
    for u in _users.values():
        if u.login_id == login_id:
            return u.model_copy(deep=True)
    return None


async def get_user_by_email(email: str) -> UserAccount | None:
    wanted = email.strip().lower()
    matches = [u for u in _users.values() if u.email.lower() == wanted]
    if not matches:
        return None
    return min(matches, key=lambda u: u.created_at).model_copy(deep=True)


async def save_user(user: UserAccount) -> UserAccount:
    _users[user.user_id] = user.model_copy(deep=True)
    return user


# ═══════════════════════════════════════════════════════════════════════════════
# Активация in-memory хранилища (monkey-patching)
# ═══════════════════════════════════════════════════════════════════════════════

def activate_memory_store() -> None:
    """
    Подменяет функции в login_gateway.db.repositories.user_repo на in-memory.

    Вызывается из login_gateway.main → lifespan() при недоступности БД.
    """
    from login_gateway.db.repositories import user_repo

    user_repo.create_user = create_user
    user_repo.get_user_by_login_id = get_user_by_login_id
    user_repo.get_user_by_email = get_user_by_email
    user_repo.save_user = save_user

    logger.warning(
        "🧠 Login memory store ACTIVATED — all accounts are in-memory (lost on restart)."
    )
