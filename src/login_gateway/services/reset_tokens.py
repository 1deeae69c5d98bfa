"""
login_gateway/services/reset_tokens.py — Хранилище одноразовых токенов сброса.

Токен: 256 бит из ``secrets``, URL-safe base64 без padding.
Запись: (login_id, абсолютный срок жизни). Операции под одним
``threading.Lock`` — погашение атомарно, повторное погашение невозможно.

Тот же класс с ``purpose="passkey_fallback"`` хранит маркеры passkey fallback.

⚠ Хранилище живёт в памяти процесса: при нескольких инстансах сервиса
нужен внешний KV с TTL (Redis).
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class RedeemResult(str, Enum):
    OK = "ok"
    INVALID = "invalid"
    MISMATCH = "mismatch"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ResetRecord:
    login_id: str
    expires_at: float


class ResetTokenStore:
    """Ограниченное по размеру хранилище токенов с TTL и уборкой при выпуске."""

    def __init__(
        self,
        purpose: str = "password_reset",
        ttl_seconds: int = 15 * 60,
        max_records: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_records < 1:
            raise ValueError("max_records must be positive")
        self.purpose = purpose
        self.ttl_seconds = ttl_seconds
        self._max_records = max_records
        self._clock = clock
        self._records: dict[str, ResetRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def issue(self, login_id: str) -> str:
        """Выпустить токен для login_id."""
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            if len(self._records) >= self._max_records:
                victim = min(self._records, key=lambda t: self._records[t].expires_at)
                evicted = self._records.pop(victim)
                logger.warning(
                    "%s token store full (%d), evicted token of %s",
                    self.purpose, self._max_records, evicted.login_id,
                )
            token = secrets.token_urlsafe(TOKEN_BYTES)
            while token in self._records:
                token = secrets.token_urlsafe(TOKEN_BYTES)
            self._records[token] = ResetRecord(login_id=login_id, expires_at=now + self.ttl_seconds)
        logger.info("%s token issued for %s", self.purpose, login_id)
        return token

    def redeem(self, token: str, expected_login_id: str) -> RedeemResult:
        """
        Погасить токен (проверка и удаление — одна операция).

        MISMATCH не удаляет запись: угадавший токен не может сжечь чужой.
        Просроченная запись удаляется.
        """
        with self._lock:
            record = self._records.get(token)
            if record is None:
                return RedeemResult.INVALID
            if self._clock() >= record.expires_at:
                del self._records[token]
                return RedeemResult.EXPIRED
            if record.login_id != expected_login_id:
                logger.warning(
                    "%s token presented for %s but bound to another login id",
                    self.purpose, expected_login_id,
                )
                return RedeemResult.MISMATCH
            del self._records[token]
        return RedeemResult.OK

    def sweep(self) -> int:
        """Удалить просроченные записи."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        expired = [t for t, r in self._records.items() if now >= r.expires_at]
        for t in expired:
            del self._records[t]
        if expired:
            logger.debug("%s token store: swept %d expired", self.purpose, len(expired))
        return len(expired)
