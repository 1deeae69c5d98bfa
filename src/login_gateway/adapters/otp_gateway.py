"""
login_gateway/adapters/otp_gateway.py — OTP-шлюз (выпуск и проверка одноразовых кодов).

``OtpVerificationGateway`` — порт, которым пользуются все OTP-gated flow'ы.
``InMemoryOtpGateway`` — реализация в памяти процесса:
    • 6-значные коды из ``secrets``, срок жизни 120 с
    • не более 3 попыток ввода, затем MAX_ATTEMPTS
    • не более 3 отправок за окно 60 с на пару (назначение, адрес)
    • ключи вида ``purpose:email`` — код одного назначения не проходит в другом
    • сравнение кода за постоянное время (``hmac.compare_digest``)

Доставка письма — внешний транспорт: передаётся async-хуком
(``webhook_delivery`` — POST на почтовый сервис через httpx). Без хука код
пишется в лог только при ``log_codes=True`` (разработка); иначе send
возвращает SEND_FAILED.

Каждый send убирает просроченные коды и закрытые окна rate limit;
размер обеих таблиц ограничен ``max_records``.
"""

from __future__ import annotations

import hmac
import logging
import math
import secrets
import threading
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Protocol

import httpx

from login_gateway.models.enums import OtpPurpose
from login_gateway.models.otp import OtpOutcome

logger = logging.getLogger(__name__)

# (destination, display_name, code, expires_in_seconds)
OtpDeliveryHook = Callable[[str, str | None, str, int], Awaitable[None]]


def webhook_delivery(
    url: str,
    timeout: float = 5.0,
    client: httpx.AsyncClient | None = None,
) -> OtpDeliveryHook:
    """
    Хук доставки: POST JSON на почтовый сервис.

    Ответ не-2xx и сетевые ошибки поднимаются как ``httpx.HTTPError``;
    шлюз превращает их в SEND_FAILED.
    """
    http = client or httpx.AsyncClient(timeout=timeout)

    async def deliver(
        email: str, display_name: str | None, code: str, expires_in_seconds: int
    ) -> None:
        response = await http.post(
            url,
            json={
                "email": email,
                "display_name": display_name,
                "code": code,
                "expires_in_seconds": expires_in_seconds,
            },
        )
        response.raise_for_status()

    return deliver


class OtpVerificationGateway(Protocol):
    """Порт OTP-шлюза: выпуск и проверка кодов с пространством имён purpose."""

    async def send(
        self, destination: str, display_name: str | None, purpose: OtpPurpose
    ) -> OtpOutcome: ...

    async def verify(self, destination: str, code: str, purpose: OtpPurpose) -> OtpOutcome: ...


@dataclass(frozen=True)
class _OtpRecord:
    code: str
    expires_at: float
    attempts: int = 0
    verified: bool = False


@dataclass(frozen=True)
class _RateWindow:
    started_at: float
    count: int


class InMemoryOtpGateway:
    """OTP-шлюз в памяти процесса (один инстанс сервиса)."""

    def __init__(
        self,
        expiration_seconds: int = 120,
        max_attempts: int = 3,
        rate_limit_window_seconds: int = 60,
        rate_limit_max_requests: int = 3,
        delivery: OtpDeliveryHook | None = None,
        log_codes: bool = True,
        max_records: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_records < 1:
            raise ValueError("max_records must be positive")
        self._expiration = expiration_seconds
        self._log_codes = log_codes
        self._max_records = max_records
        self._max_attempts = max_attempts
        self._window = rate_limit_window_seconds
        self._max_requests = rate_limit_max_requests
        self._delivery = delivery
        self._clock = clock
        self._codes: dict[str, _OtpRecord] = {}
        self._rates: dict[str, _RateWindow] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(destination: str, purpose: OtpPurpose) -> str:
        return f"{purpose.value}:{destination.strip().lower()}"

    # ── send ─────────────────────────────────────────────────────────────

    async def send(
        self, destination: str, display_name: str | None, purpose: OtpPurpose
    ) -> OtpOutcome:
        key = self._key(destination, purpose)
        email = destination.strip().lower()
        if self._delivery is None and not self._log_codes:
            logger.error("No OTP delivery configured, cannot send to %s", email)
            return OtpOutcome.send_failed("OTP delivery is not configured")

        now = self._clock()
        with self._lock:
            self._sweep_locked(now)
            window = self._rates.get(key)
            if window is not None and window.count >= self._max_requests:
                retry_after = max(1, math.ceil(window.started_at + self._window - now))
                logger.warning("OTP rate limit exceeded for %s", key)
                return OtpOutcome.rate_limited(retry_after)

            if key not in self._codes and len(self._codes) >= self._max_records:
                victim = min(self._codes, key=lambda k: self._codes[k].expires_at)
                del self._codes[victim]
                logger.warning("OTP store full (%d), evicted code of %s", self._max_records, victim)
            if key not in self._rates and len(self._rates) >= self._max_records:
                victim = min(self._rates, key=lambda k: self._rates[k].started_at)
                del self._rates[victim]
                logger.warning(
                    "OTP rate table full (%d), evicted window of %s", self._max_records, victim
                )

            code = f"{secrets.randbelow(10**6):06d}"
            self._codes[key] = _OtpRecord(code=code, expires_at=now + self._expiration)
            self._rates[key] = (
                _RateWindow(started_at=now, count=1)
                if window is None
                else replace(window, count=window.count + 1)
            )

        if self._delivery is None:
            logger.info("OTP code for %s (%s): %s (dev only)", email, purpose.value, code)
        else:
            try:
                await self._delivery(email, display_name, code, self._expiration)
            except Exception as exc:
                logger.error("Failed to deliver OTP to %s: %s", email, exc)
                return OtpOutcome.send_failed(str(exc))

        logger.info("OTP sent to %s (purpose: %s)", email, purpose.value)
        return OtpOutcome.sent(self._expiration)

    # ── verify ───────────────────────────────────────────────────────────

    async def verify(self, destination: str, code: str, purpose: OtpPurpose) -> OtpOutcome:
        key = self._key(destination, purpose)
        now = self._clock()

        with self._lock:
            record = self._codes.get(key)
            if record is None:
                logger.warning("OTP not found for %s", key)
                return OtpOutcome.invalid_code()
            if record.verified:
                return OtpOutcome.already_verified()
            if now >= record.expires_at:
                del self._codes[key]
                logger.warning("OTP expired for %s", key)
                return OtpOutcome.expired()
            if record.attempts >= self._max_attempts:
                del self._codes[key]
                logger.warning("OTP max attempts exceeded for %s", key)
                return OtpOutcome.max_attempts()

            if not hmac.compare_digest(code.encode(), record.code.encode()):
                record = replace(record, attempts=record.attempts + 1)
                self._codes[key] = record
                remaining = self._max_attempts - record.attempts
                logger.warning("Invalid OTP for %s, %d attempt(s) remaining", key, remaining)
                return OtpOutcome.invalid_code(remaining)

            self._codes[key] = replace(record, verified=True)

        logger.info("OTP verified for %s", key)
        return OtpOutcome.verified()

    # ── Обслуживание ─────────────────────────────────────────────────────

    def invalidate(self, destination: str, purpose: OtpPurpose) -> None:
        """Аннулировать выданный код (например, после смены адреса)."""
        with self._lock:
            self._codes.pop(self._key(destination, purpose), None)

    def cleanup(self) -> int:
        """Удалить просроченные коды и закрытые окна rate limit."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._codes)

    def _sweep_locked(self, now: float) -> int:
        # просроченный код живёт ещё один срок, чтобы verify успел ответить EXPIRED
        stale_codes = [
            k for k, r in self._codes.items() if now >= r.expires_at + self._expiration
        ]
        for k in stale_codes:
            del self._codes[k]
        stale_windows = [k for k, w in self._rates.items() if now >= w.started_at + self._window]
        for k in stale_windows:
            del self._rates[k]
        if stale_codes or stale_windows:
            logger.debug(
                "OTP store: swept %d code(s), %d rate window(s)",
                len(stale_codes), len(stale_windows),
            )
        return len(stale_codes)
