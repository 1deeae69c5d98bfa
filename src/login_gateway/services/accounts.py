"""
login_gateway/services/accounts.py — Администрирование учётных записей.

Операторские обёртки над автоматом состояний UserAccount: заведение,
привязка к провайдеру, lock / unlock / activate / deactivate.
Каждая мутация — под ключевой блокировкой учётной записи.
"""

from __future__ import annotations

import logging
from typing import Callable

from login_gateway import events
from login_gateway.db.repositories import user_repo
from login_gateway.exceptions import NotFoundError
from login_gateway.models.enums import LockType
from login_gateway.models.user import UserAccount, UserCreate, UserRead
from login_gateway.services.account_locks import account_lock
from login_gateway.services.audit_logger import LoginAuditAction, LoginAuditLogger, get_audit_logger

logger = logging.getLogger(__name__)


class AccountAdministration:
    def __init__(self, users=user_repo, audit: LoginAuditLogger | None = None) -> None:
        self._users = users
        self._audit = audit or get_audit_logger()

    async def _load(self, login_id: str) -> UserAccount:
        account = await self._users.get_user_by_login_id(login_id)
        if account is None:
            raise NotFoundError()
        return account

    async def _mutate(
        self,
        login_id: str,
        action: LoginAuditAction,
        actor: str | None,
        change: Callable[[UserAccount], None],
        details: dict | None = None,
    ) -> UserAccount:
        async with account_lock(login_id):
            account = await self._load(login_id)
            change(account)
            account = await self._users.save_user(account)
        await self._audit.log(
            action, "user_account", str(account.user_id), user_id=actor,
            details={"login_id": login_id, **(details or {})},
        )
        logger.info("Account %s: %s by %s", login_id, action.value, actor or "system")
        return account

    async def create_account(self, data: UserCreate) -> UserRead:
        account = await self._users.create_user(UserAccount(**data.model_dump()))
        await self._audit.log(
            LoginAuditAction.ACCOUNT_CREATED, "user_account", str(account.user_id),
            user_id=data.created_by, details={"login_id": account.login_id},
        )
        logger.info("Account created: %s <%s>", account.login_id, account.email)
        return UserRead.from_account(account)

    async def get_account(self, login_id: str) -> UserRead:
        return UserRead.from_account(await self._load(login_id))

    async def provision(
        self, login_id: str, identity_provider_user_id: str, actor: str, force: bool = False
    ) -> UserRead:
        """Привязать к пользователю провайдера; ``force`` — явная перепривязка."""
        def change(account: UserAccount) -> None:
            if force:
                account.reprovision(identity_provider_user_id, actor)
            else:
                account.mark_provisioned(identity_provider_user_id)

        account = await self._mutate(
            login_id, LoginAuditAction.ACCOUNT_PROVISIONED, actor, change,
            {"identity_provider_user_id": identity_provider_user_id, "force": force},
        )
        return UserRead.from_account(account)

    async def lock(
        self,
        login_id: str,
        lock_type: LockType,
        actor: str,
        reason: str | None = None,
        override: bool = False,
    ) -> UserRead:
        account = await self._mutate(
            login_id, LoginAuditAction.ACCOUNT_LOCKED, actor,
            lambda a: a.lock(lock_type, actor, reason=reason, override=override),
            {"lock_type": lock_type.value, "reason": reason},
        )
        await events.emit_account_locked(str(account.user_id), lock_type.value, actor)
        return UserRead.from_account(account)

    async def unlock(self, login_id: str, actor: str) -> UserRead:
        account = await self._mutate(
            login_id, LoginAuditAction.ACCOUNT_UNLOCKED, actor, lambda a: a.unlock(actor)
        )
        return UserRead.from_account(account)

    async def activate(self, login_id: str, actor: str, override: bool = False) -> UserRead:
        account = await self._mutate(
            login_id, LoginAuditAction.ACCOUNT_ACTIVATED, actor,
            lambda a: a.activate(override=override, actor=actor),
            {"override": override},
        )
        return UserRead.from_account(account)

    async def deactivate(self, login_id: str, reason: str, actor: str) -> UserRead:
        account = await self._mutate(
            login_id, LoginAuditAction.ACCOUNT_DEACTIVATED, actor,
            lambda a: a.deactivate(reason, actor=actor),
            {"reason": reason},
        )
        return UserRead.from_account(account)


__all__ = ["AccountAdministration"]
