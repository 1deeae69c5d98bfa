"""
login_gateway/services/mfa_enrollment.py — Регистрация и проверка MFA.

Тонкая оркестрация MFA API провайдера по ``mfa_token``. Опросы push
(challenge / verify для oob) возвращают тот же словарь статусов, что и
step-up. Успешная проверка с указанным ``login_id`` отмечает
``mfa_enrolled`` у локальной учётной записи.
"""

from __future__ import annotations

import logging
from typing import Any

from login_gateway.adapters.identity_gateway import IdentityGateway, IdentityProviderError, PushPoll
from login_gateway.db.repositories import user_repo
from login_gateway.exceptions import InvalidInputError, UpstreamError
from login_gateway.models.enums import AuthenticatorType, PushStatus, UserStatus
from login_gateway.services.account_locks import account_lock

logger = logging.getLogger(__name__)


class MfaEnrollmentFlow:
    def __init__(self, identity: IdentityGateway, users=user_repo) -> None:
        self._identity = identity
        self._users = users

    async def list_enrollments(self, mfa_token: str) -> dict[str, Any]:
        try:
            authenticators = await self._identity.list_enrollments(mfa_token)
        except IdentityProviderError as exc:
            raise exc.to_gateway_error(description="Failed to list MFA enrollments") from exc
        return {
            "success": True,
            "authenticators": [a.model_dump() for a in authenticators],
        }

    async def associate(
        self, mfa_token: str, authenticator_type: AuthenticatorType
    ) -> dict[str, Any]:
        try:
            data = await self._identity.associate(mfa_token, authenticator_type)
        except IdentityProviderError as exc:
            raise exc.to_gateway_error(description="Failed to associate authenticator") from exc
        logger.info("MFA authenticator association started (%s)", authenticator_type.value)
        return {"success": True, **(data or {})}

    async def challenge(
        self, mfa_token: str, oob_code: str, login_id: str | None = None
    ) -> dict[str, Any]:
        """Опрос push во время регистрации Guardian."""
        poll = await self._identity.verify_mfa(
            mfa_token, AuthenticatorType.OOB, oob_code=oob_code
        )
        return await self._resolve(poll, AuthenticatorType.OOB, login_id)

    async def verify(
        self,
        mfa_token: str,
        authenticator_type: AuthenticatorType,
        otp: str | None = None,
        oob_code: str | None = None,
        login_id: str | None = None,
    ) -> dict[str, Any]:
        """TOTP-код либо опрос push (oob_code)."""
        if authenticator_type is AuthenticatorType.OTP and not otp:
            raise InvalidInputError("invalid_request", "otp is required for otp authenticators")
        if authenticator_type is AuthenticatorType.OOB and not oob_code:
            raise InvalidInputError("invalid_request", "oob_code is required for oob authenticators")
        poll = await self._identity.verify_mfa(
            mfa_token, authenticator_type, otp=otp, oob_code=oob_code
        )
        return await self._resolve(poll, authenticator_type, login_id)

    async def send_challenge(
        self,
        mfa_token: str,
        authenticator_type: AuthenticatorType,
        authenticator_id: str | None = None,
    ) -> dict[str, Any]:
        try:
            data = await self._identity.send_challenge(
                mfa_token, authenticator_type, authenticator_id
            )
        except IdentityProviderError as exc:
            raise exc.to_gateway_error(description="Failed to send MFA challenge") from exc
        return {"success": True, **(data or {})}

    async def verify_challenge(
        self,
        mfa_token: str,
        authenticator_type: AuthenticatorType,
        otp: str | None = None,
        oob_code: str | None = None,
        login_id: str | None = None,
    ) -> dict[str, Any]:
        """MFA-шаг последующих входов: та же проверка, что и при регистрации."""
        return await self.verify(mfa_token, authenticator_type, otp, oob_code, login_id)

    # ── Внутреннее ───────────────────────────────────────────────────────

    async def _resolve(
        self, poll: PushPoll, authenticator_type: AuthenticatorType, login_id: str | None
    ) -> dict[str, Any]:
        if poll.status is PushStatus.APPROVED:
            if login_id:
                await self._mark_enrolled(login_id)
            return {"success": True, **poll.to_response()}

        if authenticator_type is AuthenticatorType.OTP:
            if poll.error == "server_error":
                raise UpstreamError("server_error", "MFA verification failed")
            raise InvalidInputError(
                poll.error or "verification_failed",
                poll.error_description or "Invalid verification code",
            )
        return {"success": True, **poll.to_response()}

    async def _mark_enrolled(self, login_id: str) -> None:
        async with account_lock(login_id):
            account = await self._users.get_user_by_login_id(login_id)
            if account is None or account.status is UserStatus.DEACTIVATED:
                logger.warning("MFA verified for unknown or deactivated login id %s", login_id)
                return
            if account.mfa_enrolled:
                return
            account.mark_mfa_enrolled()
            await self._users.save_user(account)
        logger.info("MFA enrollment synced for %s", login_id)
