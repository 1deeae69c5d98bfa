"""
login_gateway/services/audit_logger.py — Аудит-лог шлюза аутентификации.

Действия:
    • onboarding.*  — подтверждение email, установка пароля, завершение FTR
    • password_reset.*, guardian.reset, passkey_fallback.verified
    • account.*     — административные переходы (lock/unlock/...)

Пишет в таблицу audit_log (если пул БД поднят) + NATS-события.
При недоступной БД — in-memory буфер с последующим flush.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class LoginAuditAction(str, Enum):
    """Типы аудируемых действий."""

    # Onboarding
    EMAIL_VERIFIED = "onboarding.email_verified"
    PASSWORD_SET = "onboarding.password_set"
    ONBOARDING_COMPLETED = "onboarding.completed"

    # Recovery
    PASSWORD_RESET_VERIFIED = "password_reset.verified"
    PASSWORD_RESET_COMPLETED = "password_reset.completed"
    GUARDIAN_RESET = "guardian.reset"
    PASSKEY_FALLBACK_VERIFIED = "passkey_fallback.verified"

    # Administration
    ACCOUNT_CREATED = "account.created"
    ACCOUNT_PROVISIONED = "account.provisioned"
    ACCOUNT_LOCKED = "account.locked"
    ACCOUNT_UNLOCKED = "account.unlocked"
    ACCOUNT_ACTIVATED = "account.activated"
    ACCOUNT_DEACTIVATED = "account.deactivated"


class LoginAuditLogger:
    """
    Аудит-логгер шлюза.

    Поддерживает:
    - PostgreSQL (audit_log)
    - In-memory буфер (fallback)
    - NATS-публикацию аудит-событий
    """

    def __init__(self, max_buffer_size: int = 10000) -> None:
        self._buffer: list[dict[str, Any]] = []
        self._max_buffer = max_buffer_size

    async def log(
        self,
        action: LoginAuditAction | str,
        entity_type: str,
        entity_id: str,
        user_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Записать аудит-событие."""
        action_str = action.value if isinstance(action, LoginAuditAction) else action
        record = {
            "action": action_str,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "user_id": user_id,
            "details": details or {},
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            await self._write_to_db(record)
        except Exception as e:
            logger.debug("Login audit DB write failed, buffering: %s", e)
            self._write_to_buffer(record)
        else:
            if self._buffer:
                await self.flush_buffer()

        from login_gateway.events import publish
        await publish(f"login.audit.{record['action']}", record)

    async def _write_to_db(self, record: dict[str, Any]) -> None:
        """Записать в PostgreSQL."""
        from login_gateway.database import get_pool, is_pool_ready

        if not is_pool_ready():
            raise RuntimeError("database pool is not initialized")
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO audit_log (action, entity_type, entity_id, user_id, details)
                VALUES ($1, $2, $3, $4, $5::jsonb)
                """,
                record["action"],
                record["entity_type"],
                record["entity_id"],
                record["user_id"],
                json.dumps(record["details"], default=str),
            )

    def _write_to_buffer(self, record: dict[str, Any]) -> None:
        """Fallback в in-memory буфер."""
        if len(self._buffer) >= self._max_buffer:
            self._buffer.pop(0)
        self._buffer.append(record)

    async def flush_buffer(self) -> int:
        """Попытаться записать буферизованные события в БД."""
        if not self._buffer:
            return 0
        flushed = 0
        remaining: list[dict[str, Any]] = []
        for record in self._buffer:
            try:
                await self._write_to_db(record)
                flushed += 1
            except Exception:
                remaining.append(record)
        self._buffer = remaining
        if flushed:
            logger.info("Flushed %d login audit records from buffer", flushed)
        return flushed

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    @property
    def buffered(self) -> list[dict[str, Any]]:
        return list(self._buffer)


# ═══════════════════════════════════════════════════════════════════════════════
# Singleton
# ═══════════════════════════════════════════════════════════════════════════════

_audit_logger: LoginAuditLogger | None = None


def get_audit_logger() -> LoginAuditLogger:
    """Получить единственный экземпляр LoginAuditLogger."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = LoginAuditLogger()
    return _audit_logger
