"""
login_gateway/services/guardian_reset.py — Сброс push-MFA (Guardian) по OTP.

Сценарий «потерял телефон»: поиск по email, OTP, затем удаление ВСЕХ
подтверждённых push-аутентификаторов у провайдера. Список
аутентификаторов каждый раз запрашивается заново (без кеша).
Удаления независимы: сбой одного логируется и пропускается.
Ноль удалённых — ошибка, даже если OTP прошёл.
"""

from __future__ import annotations

import logging
from typing import Any

from login_gateway import events
from login_gateway.adapters.identity_gateway import (
    Authenticator,
    IdentityGateway,
    IdentityProviderError,
)
from login_gateway.adapters.otp_gateway import OtpVerificationGateway
from login_gateway.db.repositories import user_repo
from login_gateway.exceptions import (
    AccountDeactivatedError,
    InvalidInputError,
    NotFoundError,
    PreconditionError,
    UpstreamError,
)
from login_gateway.models.enums import OtpPurpose, UserStatus
from login_gateway.models.user import UserAccount
from login_gateway.services.audit_logger import LoginAuditAction, LoginAuditLogger, get_audit_logger
from login_gateway.services.otp_step import OtpGatedStep

logger = logging.getLogger(__name__)

GUARDIAN_RESET_MESSAGE = (
    "Guardian enrollment deleted. You can enroll a new device during your next login."
)


class GuardianResetFlow:
    def __init__(
        self,
        otp_gateway: OtpVerificationGateway,
        identity: IdentityGateway,
        users=user_repo,
        audit: LoginAuditLogger | None = None,
    ) -> None:
        self._step = OtpGatedStep(otp_gateway, OtpPurpose.GUARDIAN_RESET)
        self._identity = identity
        self._users = users
        self._audit = audit or get_audit_logger()

    async def _load(self, email: str) -> UserAccount:
        account = await self._users.get_user_by_email(email)
        if account is None:
            raise NotFoundError()
        if account.status is UserStatus.DEACTIVATED:
            raise AccountDeactivatedError()
        if not account.is_provisioned:
            raise InvalidInputError("invalid_request", "User not found in Auth0")
        return account

    async def _confirmed_push(self, account: UserAccount) -> list[Authenticator]:
        try:
            authenticators = await self._identity.list_user_authenticators(
                account.identity_provider_user_id
            )
        except IdentityProviderError as exc:
            logger.error("Failed to list authenticators for %s: %s", account.login_id, exc)
            raise UpstreamError("server_error", "Failed to check MFA enrollments") from exc
        return [a for a in authenticators if a.is_confirmed_push]

    async def send_otp(self, email: str) -> dict[str, Any]:
        account = await self._load(email)
        if not await self._confirmed_push(account):
            raise PreconditionError("no_guardian", "No Guardian enrollment found")
        outcome = await self._step.send(account)
        logger.info("Guardian reset OTP sent for %s", account.login_id)
        return OtpGatedStep.sent_response(account, outcome)

    async def verify_otp_and_reset(self, email: str, code: str) -> dict[str, Any]:
        account = await self._load(email)
        await self._step.verify(account, code)
        logger.info("Guardian reset OTP verified for %s, deleting enrollments", account.login_id)

        deleted = 0
        for authenticator in await self._confirmed_push(account):
            try:
                await self._identity.delete_authenticator(
                    account.identity_provider_user_id, authenticator.id
                )
            except IdentityProviderError as exc:
                logger.warning(
                    "Failed to delete Guardian enrollment %s for %s: %s",
                    authenticator.id, account.login_id, exc,
                )
                continue
            deleted += 1

        if deleted == 0:
            raise PreconditionError("no_guardian", "No Guardian enrollment found to delete")

        await self._audit.log(
            LoginAuditAction.GUARDIAN_RESET, "user_account", str(account.user_id),
            details={"login_id": account.login_id, "deleted_count": deleted},
        )
        await events.emit_guardian_reset(str(account.user_id), deleted)
        logger.info("Guardian reset for %s: deleted %d enrollment(s)", account.login_id, deleted)
        return {
            "success": True,
            "deleted_count": deleted,
            "message": GUARDIAN_RESET_MESSAGE,
        }
