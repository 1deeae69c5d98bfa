"""
═══════════════════════════════════════════════════════════════════════════════
Login Gateway — Пул соединений к базе данных (Database Connection Pool)
═══════════════════════════════════════════════════════════════════════════════

Пул соединений к PostgreSQL с учётными записями пользователей.
Параметры берутся из ``login_gateway.config.get_settings()``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import asyncpg

from login_gateway.config import get_settings

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
# Глобальная переменная пула (module-level singleton)
# ═══════════════════════════════════════════════════════════════════════════════
_pool: asyncpg.Pool | None = None


async def get_pool() -> asyncpg.Pool:
    """
    Возвращает глобальный пул соединений к PostgreSQL.

    Создаёт пул при первом вызове с параметрами из GatewaySettings.
    """
    global _pool
    if _pool is None:
        settings = get_settings()
        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=settings.database_pool_min,
            max_size=settings.database_pool_max,
            command_timeout=60,
        )
        logger.info(
            "Login DB pool created (min=%d, max=%d)",
            settings.database_pool_min,
            settings.database_pool_max,
        )
    return _pool


def is_pool_ready() -> bool:
    """True, если пул уже создан (без попытки подключения)."""
    return _pool is not None


async def close_pool() -> None:
    """Закрывает глобальный пул соединений."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Login DB pool closed")


@asynccontextmanager
async def get_connection() -> AsyncGenerator[asyncpg.Connection, None]:
    """
    Выдаёт соединение из пула и возвращает его обратно.

    Использование::

        async with get_connection() as conn:
            row = await conn.fetchrow("SELECT * FROM user_accounts WHERE login_id = $1", login_id)
    """
    pool = await get_pool()
    async with pool.acquire() as conn:
        yield conn


async def check_connection() -> bool:
    """Проверяет доступность PostgreSQL (health check)."""
    if not is_pool_ready():
        return False
    try:
        async with get_connection() as conn:
            result = await conn.fetchval("SELECT 1")
            return result == 1
    except Exception as e:
        logger.error("Login DB health check failed: %s", e)
        return False
