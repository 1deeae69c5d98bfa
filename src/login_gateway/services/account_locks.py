"""
login_gateway/services/account_locks.py — Сериализация мутаций по учётной записи.

Два flow'а над одной учётной записью (например, FTR complete и сброс
пароля) не должны терять обновления флагов: каждый load → mutate → save
выполняется под asyncio.Lock, ключ — login_id.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

_locks: dict[str, asyncio.Lock] = {}
_waiters: dict[str, int] = {}


@asynccontextmanager
async def account_lock(key: str) -> AsyncIterator[None]:
    lock = _locks.get(key)
    if lock is None:
        lock = _locks[key] = asyncio.Lock()
    _waiters[key] = _waiters.get(key, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _waiters[key] -= 1
        if _waiters[key] == 0:
            del _waiters[key]
            del _locks[key]


def held_keys() -> int:
    """Количество ключей с активными владельцами/ожидающими."""
    return len(_locks)
