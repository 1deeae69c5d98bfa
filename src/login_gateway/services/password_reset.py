"""
login_gateway/services/password_reset.py — Сброс пароля по OTP.

    request_reset (= resend_otp) → verify_otp → reset_password

Anti-enumeration: для неизвестного login_id, деактивированной записи и
реально отправленного кода ответ одинаковый по форме
(success / message / expires_in_seconds). Явно отличаются только
LOCKED (403) и «пароль ещё не установлен» (400).

Токен сброса гасится ДО обращения к провайдеру и не восстанавливается
при его отказе: пользователь запрашивает новый.
"""

from __future__ import annotations

import logging
from typing import Any

from login_gateway import events
from login_gateway.adapters.identity_gateway import IdentityGateway, IdentityProviderError
from login_gateway.adapters.otp_gateway import OtpVerificationGateway
from login_gateway.db.repositories import user_repo
from login_gateway.exceptions import (
    AccountLockedError,
    InvalidInputError,
    PreconditionError,
    UpstreamError,
)
from login_gateway.models.enums import OtpPurpose, UserStatus
from login_gateway.services.audit_logger import LoginAuditAction, LoginAuditLogger, get_audit_logger
from login_gateway.services.otp_step import OtpGatedStep
from login_gateway.services.password_policy import validate_password
from login_gateway.services.reset_tokens import RedeemResult, ResetTokenStore

logger = logging.getLogger(__name__)

GENERIC_REQUEST_MESSAGE = "If an account exists with this login ID, a reset code will be sent."
RESET_SUCCESS_MESSAGE = (
    "Password has been reset successfully. Please log in with your new password."
)
INVALID_TOKEN_MESSAGE = "Reset token is invalid or expired. Please request a new password reset."


class PasswordResetFlow:
    """Сброс пароля: OTP → одноразовый токен → новый пароль у провайдера."""

    def __init__(
        self,
        otp_gateway: OtpVerificationGateway,
        identity: IdentityGateway,
        tokens: ResetTokenStore,
        users=user_repo,
        audit: LoginAuditLogger | None = None,
        otp_expiration_seconds: int = 120,
        password_min_length: int = 12,
    ) -> None:
        self._step = OtpGatedStep(otp_gateway, OtpPurpose.PASSWORD_RESET)
        self._identity = identity
        self._tokens = tokens
        self._users = users
        self._audit = audit or get_audit_logger()
        self._otp_expiration_seconds = otp_expiration_seconds
        self._password_min_length = password_min_length

    def _generic(self, expires_in_seconds: int | None = None) -> dict[str, Any]:
        return {
            "success": True,
            "message": GENERIC_REQUEST_MESSAGE,
            "expires_in_seconds": expires_in_seconds or self._otp_expiration_seconds,
        }

    async def request_reset(self, login_id: str) -> dict[str, Any]:
        account = await self._users.get_user_by_login_id(login_id)
        if account is None or account.status is UserStatus.DEACTIVATED:
            logger.info("Password reset requested for unknown/inactive login id")
            return self._generic()
        if account.status is UserStatus.LOCKED:
            raise AccountLockedError()
        if not account.password_set:
            raise PreconditionError("invalid_state", "Please complete your account setup first.")

        outcome = await self._step.send(account)
        logger.info("Password reset OTP sent for %s", account.login_id)
        return self._generic(outcome.expires_in_seconds)

    async def resend_otp(self, login_id: str) -> dict[str, Any]:
        return await self.request_reset(login_id)

    async def verify_otp(self, login_id: str, code: str) -> dict[str, Any]:
        account = await self._users.get_user_by_login_id(login_id)
        if account is None or account.status is UserStatus.DEACTIVATED:
            raise InvalidInputError("invalid_code", "Invalid or expired code.")

        await self._step.verify(account, code)
        token = self._tokens.issue(account.login_id)

        await self._audit.log(
            LoginAuditAction.PASSWORD_RESET_VERIFIED, "user_account", str(account.user_id),
            details={"login_id": account.login_id},
        )
        return {
            "success": True,
            "reset_token": token,
            "expires_in_seconds": self._tokens.ttl_seconds,
        }

    async def reset_password(self, login_id: str, token: str, new_password: str) -> dict[str, Any]:
        """
        Погасить токен, проверить пароль, заменить его у провайдера.

        Слабый пароль или отказ провайдера после погашения токена
        требуют нового прохода OTP.
        """
        match self._tokens.redeem(token, login_id):
            case RedeemResult.OK:
                pass
            case RedeemResult.MISMATCH | RedeemResult.INVALID | RedeemResult.EXPIRED:
                raise InvalidInputError("invalid_token", INVALID_TOKEN_MESSAGE)

        validate_password(new_password, self._password_min_length)

        account = await self._users.get_user_by_login_id(login_id)
        if account is None or account.status is UserStatus.DEACTIVATED:
            raise InvalidInputError("invalid_token", INVALID_TOKEN_MESSAGE)
        if account.status is UserStatus.LOCKED:
            raise AccountLockedError()
        if not account.is_provisioned:
            raise UpstreamError(
                "not_provisioned", "User is not provisioned in the identity provider."
            )

        try:
            await self._identity.complete_onboarding(
                account.identity_provider_user_id, account.email, new_password
            )
        except IdentityProviderError as exc:
            logger.warning("Provider rejected password reset for %s: %s", login_id, exc.error)
            raise exc.to_gateway_error(
                error="invalid_password" if exc.status_code == 400 else None,
                description="Failed to update password",
            ) from exc

        await self._audit.log(
            LoginAuditAction.PASSWORD_RESET_COMPLETED, "user_account", str(account.user_id),
            details={"login_id": account.login_id},
        )
        await events.emit_password_reset(str(account.user_id), account.login_id)
        logger.info("Password reset completed for %s", account.login_id)
        return {"success": True, "message": RESET_SUCCESS_MESSAGE}
