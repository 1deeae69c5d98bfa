"""
login_gateway/events.py — NATS Event Publisher.

Публикует доменные события шлюза в NATS:
    • ``login.onboarding.completed`` — пользователь завершил FTR
    • ``login.password.reset``       — пароль сброшен через OTP
    • ``login.guardian.reset``       — удалены push-аутентификаторы
    • ``login.account.locked``       — учётная запись заблокирована

Graceful degradation: соединение устанавливается в lifespan; если NATS
недоступен — событие пропускается с записью в лог (не ломает flow).
"""

from __future__ import annotations

import json
import logging
from typing import Any

import nats
from nats.aio.client import Client as NATSClient

from login_gateway.config import get_settings

logger = logging.getLogger(__name__)

# ── Singleton NATS connection ─────────────────────────────────────────────

_nc: NATSClient | None = None


async def connect() -> NATSClient | None:
    """Подключается к NATS (если ещё не подключён)."""
    global _nc
    if _nc is not None and _nc.is_connected:
        return _nc
    settings = get_settings()
    try:
        _nc = await nats.connect(
            settings.nats_url,
            connect_timeout=2,
            max_reconnect_attempts=3,
            allow_reconnect=True,
        )
        logger.info("NATS publisher connected: %s", settings.nats_url)
        return _nc
    except Exception as exc:
        logger.warning("NATS connect failed (events will be skipped): %s", exc)
        _nc = None
        return None


async def disconnect() -> None:
    """Закрывает соединение с NATS."""
    global _nc
    if _nc and _nc.is_connected:
        await _nc.drain()
        logger.info("NATS publisher disconnected")
    _nc = None


def is_connected() -> bool:
    return _nc is not None and _nc.is_connected


# ── Публикация событий ───────────────────────────────────────────────────

async def publish(subject: str, data: dict[str, Any]) -> None:
    """
    Публикует JSON-событие в NATS.

    Не пытается переподключиться: запросы пользователей не должны ждать
    недоступный брокер.

    Args:
        subject: Тема сообщения (e.g. ``login.password.reset``).
        data: Payload (сериализуется в JSON).
    """
    nc = _nc
    if nc is None or not nc.is_connected:
        logger.debug("NATS unavailable — skipping event %s", subject)
        return
    try:
        payload = json.dumps(data, default=str).encode("utf-8")
        await nc.publish(subject, payload)
        logger.info("NATS event published: %s", subject)
    except Exception as exc:
        logger.warning("NATS publish failed for %s: %s", subject, exc)


# ── Удобные функции домена ───────────────────────────────────────────────

async def emit_onboarding_completed(user_id: str, login_id: str) -> None:
    """Событие: онбординг завершён, учётная запись активна."""
    await publish("login.onboarding.completed", {
        "event": "onboarding.completed",
        "user_id": user_id,
        "login_id": login_id,
    })


async def emit_password_reset(user_id: str, login_id: str) -> None:
    """Событие: пароль сброшен."""
    await publish("login.password.reset", {
        "event": "password.reset",
        "user_id": user_id,
        "login_id": login_id,
    })


async def emit_guardian_reset(user_id: str, deleted_count: int) -> None:
    """Событие: push-аутентификаторы удалены."""
    await publish("login.guardian.reset", {
        "event": "guardian.reset",
        "user_id": user_id,
        "deleted_count": deleted_count,
    })


async def emit_account_locked(user_id: str, lock_type: str, actor: str) -> None:
    """Событие: учётная запись заблокирована."""
    await publish("login.account.locked", {
        "event": "account.locked",
        "user_id": user_id,
        "lock_type": lock_type,
        "actor": actor,
    })
