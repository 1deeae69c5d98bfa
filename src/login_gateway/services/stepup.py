"""
login_gateway/services/stepup.py — Step-up авторизация через push.

Протокол «запрос — опрос»:
    start(mfa_token, message)   → oob_code
    verify(mfa_token, oob_code) → pending | approved | rejected | expired | error

Сервис не ждёт и не повторяет запросы: один вызов verify — один опрос
провайдера, backoff на стороне клиента. Терминальные исходы
(approved / rejected / expired) запоминаются на TTL: повторный опрос
после них возвращает тот же исход, не обращаясь к провайдеру.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable

from login_gateway.adapters.identity_gateway import IdentityGateway, IdentityProviderError, PushPoll
from login_gateway.exceptions import PreconditionError
from login_gateway.models.enums import PushStatus

logger = logging.getLogger(__name__)

_CACHED_STATUSES = frozenset({PushStatus.APPROVED, PushStatus.REJECTED, PushStatus.EXPIRED})


class PushOutcomeCache:
    """Ограниченный TTL-кеш терминальных исходов push-опроса."""

    def __init__(
        self,
        ttl_seconds: int = 600,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, PushPoll]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key(mfa_token: str, oob_code: str) -> str:
        return hashlib.sha256(f"{mfa_token}:{oob_code}".encode()).hexdigest()

    def get(self, key: str) -> PushPoll | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, poll = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return poll

    def put(self, key: str, poll: PushPoll) -> None:
        with self._lock:
            now = self._clock()
            for k in [k for k, (exp, _) in self._entries.items() if now >= exp]:
                del self._entries[k]
            while len(self._entries) >= self._max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = (now + self._ttl, poll)

    def __len__(self) -> int:
        return len(self._entries)


class StepUpFlow:
    def __init__(self, identity: IdentityGateway, outcomes: PushOutcomeCache) -> None:
        self._identity = identity
        self._outcomes = outcomes

    async def start(self, mfa_token: str, message: str | None = None) -> dict[str, Any]:
        """Отправить push с текстом авторизуемого действия."""
        try:
            oob_code = await self._identity.start_push_challenge(mfa_token, message)
        except IdentityProviderError as exc:
            logger.warning("Step-up start failed: %s", exc)
            raise exc.to_gateway_error(description="Failed to start step-up challenge") from exc
        logger.info("Step-up push challenge dispatched")
        return {"success": True, "oob_code": oob_code}

    async def verify(self, mfa_token: str, oob_code: str) -> dict[str, Any]:
        """Один опрос. Никогда не блокируется в ожидании решения пользователя."""
        key = PushOutcomeCache.key(mfa_token, oob_code)
        cached = self._outcomes.get(key)
        if cached is not None:
            return {"success": True, **cached.to_response()}

        poll = await self._identity.poll_push_challenge(mfa_token, oob_code)
        if poll.status in _CACHED_STATUSES:
            self._outcomes.put(key, poll.model_copy(update={"tokens": None}))
            logger.info("Step-up resolved: %s", poll.status.value)
        elif poll.status is PushStatus.ERROR:
            logger.warning("Step-up poll error: %s", poll.error)
        # токены step-up наружу не отдаются
        body = poll.model_copy(update={"tokens": None}).to_response()
        return {"success": True, **body}

    async def refresh_token(self, email: str, password: str) -> dict[str, Any]:
        """Новый mfa_token по логину и паролю (старый истёк посреди flow)."""
        try:
            grant = await self._identity.login(email, password)
        except IdentityProviderError as exc:
            raise exc.to_gateway_error(description="Authentication failed") from exc
        if not grant.mfa_required:
            raise PreconditionError(
                "mfa_not_required", "MFA was not triggered. Check Auth0 MFA policy."
            )
        return {
            "success": True,
            "mfa_token": grant.mfa_token,
            "mfa_token_expires_at": grant.mfa_token_expires_at,
        }
