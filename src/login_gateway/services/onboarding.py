"""
═══════════════════════════════════════════════════════════════════════════════
Login Gateway — First-Time Registration (FTR)
═══════════════════════════════════════════════════════════════════════════════

Шаги онбординга выводятся из трёх флагов учётной записи:

    needs_email_verification → needs_password → needs_mfa → complete

Операции:
    • check / status          — текущие флаги (operator-facing, 404 допустим)
    • send_verification_otp   — OTP с назначением email_verification
    • verify_otp              — VERIFIED → email_verified
    • set_password            — пароль у провайдера → password_set
    • complete                — (mfa_enrolled) → уведомление провайдера → ACTIVE
"""

from __future__ import annotations

import logging
from typing import Any

from login_gateway import events
from login_gateway.adapters.identity_gateway import IdentityGateway, IdentityProviderError
from login_gateway.adapters.otp_gateway import OtpVerificationGateway
from login_gateway.db.repositories import user_repo
from login_gateway.exceptions import (
    AccountDeactivatedError,
    NotFoundError,
    PreconditionError,
    UpstreamError,
)
from login_gateway.models.enums import OtpPurpose, UserStatus
from login_gateway.models.user import UserAccount
from login_gateway.services.account_locks import account_lock
from login_gateway.services.audit_logger import LoginAuditAction, LoginAuditLogger, get_audit_logger
from login_gateway.services.otp_step import OtpGatedStep
from login_gateway.services.password_policy import validate_password

logger = logging.getLogger(__name__)


class OnboardingFlow:
    """FTR: email → пароль → MFA → активация."""

    def __init__(
        self,
        otp_gateway: OtpVerificationGateway,
        identity: IdentityGateway,
        users=user_repo,
        audit: LoginAuditLogger | None = None,
        password_min_length: int = 12,
    ) -> None:
        self._step = OtpGatedStep(otp_gateway, OtpPurpose.EMAIL_VERIFICATION)
        self._identity = identity
        self._users = users
        self._audit = audit or get_audit_logger()
        self._password_min_length = password_min_length

    async def _load(self, login_id: str) -> UserAccount:
        account = await self._users.get_user_by_login_id(login_id)
        if account is None:
            raise NotFoundError(
                description="User not found. Please contact your administrator."
            )
        return account

    async def _load_mutable(self, login_id: str) -> UserAccount:
        account = await self._load(login_id)
        if account.status is UserStatus.DEACTIVATED:
            raise AccountDeactivatedError()
        return account

    # ── Чтение ───────────────────────────────────────────────────────────

    async def check(self, login_id: str) -> dict[str, Any]:
        """Флаги и оставшиеся шаги."""
        account = await self._load(login_id)
        body: dict[str, Any] = {
            "success": True,
            "user_id": str(account.user_id),
            "email": account.email,
            "login_id": account.login_id,
            "first_name": account.first_name,
            "last_name": account.last_name,
            "email_verified": account.email_verified,
            "password_set": account.password_set,
            "mfa_enrolled": account.mfa_enrolled,
            "requires_email_verification": not account.email_verified,
            "requires_password_setup": not account.password_set,
            "requires_mfa_enrollment": not account.mfa_enrolled,
            "onboarding_complete": account.onboarding_complete,
            "next_step": account.onboarding_step.value,
            "status": account.status.value,
        }
        if account.is_provisioned:
            body["auth0_user_id"] = account.identity_provider_user_id
        logger.info(
            "FTR check for %s: email_verified=%s password_set=%s mfa_enrolled=%s",
            account.login_id, account.email_verified, account.password_set, account.mfa_enrolled,
        )
        return body

    async def status(self, login_id: str) -> dict[str, Any]:
        account = await self._load(login_id)
        return {
            "success": True,
            "login_id": account.login_id,
            "email_verified": account.email_verified,
            "password_set": account.password_set,
            "mfa_enrolled": account.mfa_enrolled,
            "status": account.status.value,
            "onboarding_complete": account.onboarding_complete,
            "next_step": account.onboarding_step.value,
        }

    # ── Email ────────────────────────────────────────────────────────────

    async def send_verification_otp(self, login_id: str) -> dict[str, Any]:
        account = await self._load_mutable(login_id)
        if account.email_verified:
            raise PreconditionError("already_verified", "Email is already verified.")
        outcome = await self._step.send(account)
        logger.info("Verification OTP sent for %s", account.login_id)
        return OtpGatedStep.sent_response(account, outcome)

    async def verify_otp(self, login_id: str, code: str) -> dict[str, Any]:
        async with account_lock(login_id):
            account = await self._load_mutable(login_id)
            await self._step.verify(account, code)
            account.mark_email_verified()
            account = await self._users.save_user(account)

        await self._audit.log(
            LoginAuditAction.EMAIL_VERIFIED, "user_account", str(account.user_id),
            details={"login_id": account.login_id},
        )
        logger.info("Email verified for %s", account.login_id)
        return {
            "success": True,
            "email_verified": True,
            "requires_password_setup": not account.password_set,
            "requires_mfa_enrollment": not account.mfa_enrolled,
        }

    # ── Пароль ───────────────────────────────────────────────────────────

    async def set_password(self, login_id: str, password: str) -> dict[str, Any]:
        """
        Установить первый пароль.

        Требует подтверждённый email, ещё не установленный пароль и привязку
        к провайдеру. Если провайдер сразу требует MFA — mfa_token отдаётся
        вызывающему, аутентификатор здесь не регистрируется.
        """
        async with account_lock(login_id):
            account = await self._load_mutable(login_id)
            if not account.email_verified:
                raise PreconditionError(
                    "email_not_verified",
                    "Please verify your email before setting a password.",
                )
            if account.password_set:
                raise PreconditionError("password_already_set", "Password has already been set.")
            if not account.is_provisioned:
                raise UpstreamError(
                    "not_provisioned", "User is not provisioned in the identity provider."
                )
            validate_password(password, self._password_min_length)

            try:
                result = await self._identity.complete_onboarding(
                    account.identity_provider_user_id, account.email, password
                )
            except IdentityProviderError as exc:
                logger.warning("Provider rejected password for %s: %s", login_id, exc.error)
                raise exc.to_gateway_error(description="Failed to set password") from exc

            account.set_password_established()
            account = await self._users.save_user(account)

        await self._audit.log(
            LoginAuditAction.PASSWORD_SET, "user_account", str(account.user_id),
            details={"login_id": account.login_id},
        )
        logger.info("Password set for %s", account.login_id)

        body: dict[str, Any] = {
            "success": True,
            "password_set": True,
            "requires_mfa_enrollment": not account.mfa_enrolled,
        }
        if result.mfa_required:
            body["mfa_required"] = True
            body["mfa_token"] = result.mfa_token
        if result.requires_login:
            body["requires_login"] = True
            body["login_hint"] = account.email
        return body

    # ── Завершение ───────────────────────────────────────────────────────

    async def complete(self, login_id: str, mfa_enrolled_hint: bool = False) -> dict[str, Any]:
        async with account_lock(login_id):
            account = await self._load_mutable(login_id)
            if not account.email_verified:
                raise PreconditionError("email_not_verified", "Please verify your email first.")
            if not account.password_set:
                raise PreconditionError("password_not_set", "Please set your password first.")
            if mfa_enrolled_hint and not account.mfa_enrolled:
                account.mark_mfa_enrolled()
            account.activate()

            if account.is_provisioned:
                try:
                    await self._identity.mark_onboarding_complete(
                        account.identity_provider_user_id
                    )
                except IdentityProviderError as exc:
                    logger.warning(
                        "Failed to mark onboarding complete at provider for %s: %s",
                        account.login_id, exc,
                    )

            account = await self._users.save_user(account)

        await self._audit.log(
            LoginAuditAction.ONBOARDING_COMPLETED, "user_account", str(account.user_id),
            details={"login_id": account.login_id, "mfa_enrolled_hint": mfa_enrolled_hint},
        )
        await events.emit_onboarding_completed(str(account.user_id), account.login_id)
        logger.info("✅ FTR completed for %s", account.login_id)
        return {
            "success": True,
            "onboarding_complete": True,
            "user_id": str(account.user_id),
            "status": account.status.value,
        }
