"""
login_gateway/services/passkey_fallback.py — Вход по паролю без passkey.

Пользователь с passkey потерял аутентификатор: OTP на email → короткоживущий
одноразовый ``fallback_token``. Страница входа гасит его через ``redeem``
и один раз пропускает вход по паролю.
"""

from __future__ import annotations

import logging
from typing import Any

from login_gateway.adapters.otp_gateway import OtpVerificationGateway
from login_gateway.db.repositories import user_repo
from login_gateway.exceptions import AccountDeactivatedError, InvalidInputError, NotFoundError
from login_gateway.models.enums import OtpPurpose, UserStatus
from login_gateway.models.user import UserAccount
from login_gateway.services.audit_logger import LoginAuditAction, LoginAuditLogger, get_audit_logger
from login_gateway.services.otp_step import OtpGatedStep
from login_gateway.services.reset_tokens import RedeemResult, ResetTokenStore

logger = logging.getLogger(__name__)


class PasskeyFallbackFlow:
    def __init__(
        self,
        otp_gateway: OtpVerificationGateway,
        markers: ResetTokenStore,
        users=user_repo,
        audit: LoginAuditLogger | None = None,
    ) -> None:
        self._step = OtpGatedStep(otp_gateway, OtpPurpose.PASSKEY_FALLBACK)
        self._markers = markers
        self._users = users
        self._audit = audit or get_audit_logger()

    async def _load(self, email: str) -> UserAccount:
        account = await self._users.get_user_by_email(email)
        if account is None:
            raise NotFoundError()
        if account.status is UserStatus.DEACTIVATED:
            raise AccountDeactivatedError()
        if not account.passkey_enrolled:
            raise InvalidInputError("invalid_request", "User does not have passkey enrolled")
        return account

    async def send_otp(self, email: str) -> dict[str, Any]:
        account = await self._load(email)
        outcome = await self._step.send(account)
        logger.info("Passkey fallback OTP sent for %s", account.login_id)
        return OtpGatedStep.sent_response(account, outcome)

    async def verify_otp(self, email: str, code: str) -> dict[str, Any]:
        account = await self._load(email)
        await self._step.verify(account, code)
        marker = self._markers.issue(account.login_id)

        await self._audit.log(
            LoginAuditAction.PASSKEY_FALLBACK_VERIFIED, "user_account", str(account.user_id),
            details={"login_id": account.login_id},
        )
        return {
            "success": True,
            "verified": True,
            "fallback_token": marker,
            "expires_in_seconds": self._markers.ttl_seconds,
        }

    async def redeem(self, email: str, fallback_token: str) -> dict[str, Any]:
        """Погасить маркер: вход по паролю разрешён ровно один раз."""
        account = await self._users.get_user_by_email(email)
        if account is None or account.status is UserStatus.DEACTIVATED:
            raise InvalidInputError("invalid_token", "Fallback token is invalid or expired.")
        result = self._markers.redeem(fallback_token, account.login_id)
        if result is not RedeemResult.OK:
            logger.info("Passkey fallback redeem for %s: %s", account.login_id, result.value)
            raise InvalidInputError("invalid_token", "Fallback token is invalid or expired.")
        return {
            "success": True,
            "login_id": account.login_id,
            "password_login_allowed": True,
        }
