"""
login_gateway/services/authentication.py — Токены и вход через провайдера.

    exchange_code   — authorization code → токены
    refresh         — refresh_token → новые токены
    logout          — отзыв refresh_token (ошибка провайдера не мешает выходу)
    login           — пароль → токены либо MFA-challenge со списком аутентификаторов
    forgot_password — письмо сброса от провайдера; ответ всегда успешный
"""

from __future__ import annotations

import logging
from typing import Any

from login_gateway.adapters.identity_gateway import IdentityGateway, IdentityProviderError
from login_gateway.db.repositories import user_repo
from login_gateway.exceptions import AccountDeactivatedError, AccountLockedError
from login_gateway.models.enums import UserStatus

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, a password reset link will be sent."


class AuthenticationFlow:
    def __init__(self, identity: IdentityGateway, users=user_repo) -> None:
        self._identity = identity
        self._users = users

    async def exchange_code(self, code: str, redirect_uri: str) -> dict[str, Any]:
        try:
            tokens = await self._identity.exchange_authorization_code(code, redirect_uri)
        except IdentityProviderError as exc:
            logger.warning("Authorization code exchange failed: %s", exc.error)
            raise exc.to_gateway_error("exchange_failed", "Failed to exchange code") from exc
        return {"success": True, **tokens.to_response()}

    async def refresh(self, refresh_token: str) -> dict[str, Any]:
        try:
            tokens = await self._identity.refresh_access_token(refresh_token)
        except IdentityProviderError as exc:
            logger.warning("Token refresh failed: %s", exc.error)
            raise exc.to_gateway_error("refresh_failed", "Failed to refresh token") from exc
        return {"success": True, **tokens.to_response()}

    async def logout(self, refresh_token: str | None) -> dict[str, Any]:
        if refresh_token:
            try:
                await self._identity.revoke_token(refresh_token)
            except IdentityProviderError as exc:
                logger.warning("Token revocation failed: %s", exc)
        return {"success": True}

    async def login(self, username: str, password: str) -> dict[str, Any]:
        """
        Вход по паролю.

        Заблокированная или деактивированная локальная запись не доходит
        до провайдера. При требовании MFA возвращается mfa_token и список
        активных аутентификаторов для выбора способа подтверждения.
        """
        account = await self._users.get_user_by_login_id(username)
        if account is None:
            account = await self._users.get_user_by_email(username)
        if account is not None:
            if account.status is UserStatus.LOCKED:
                raise AccountLockedError()
            if account.status is UserStatus.DEACTIVATED:
                raise AccountDeactivatedError()
        login_name = account.email if account is not None else username

        try:
            grant = await self._identity.login(login_name, password)
        except IdentityProviderError as exc:
            logger.info("Login failed: %s", exc.error)
            raise exc.to_gateway_error(description="Invalid email or password") from exc

        if not grant.mfa_required:
            return {"success": True, **(grant.tokens.to_response() if grant.tokens else {})}

        try:
            authenticators = await self._identity.list_enrollments(grant.mfa_token)
        except IdentityProviderError as exc:
            logger.warning("Failed to list authenticators after login: %s", exc)
            authenticators = []
        return {
            "success": True,
            "mfa_required": True,
            "mfa_token": grant.mfa_token,
            "mfa_token_expires_at": grant.mfa_token_expires_at,
            "email": login_name,
            "authenticators": [a.model_dump() for a in authenticators if a.confirmed],
        }

    async def forgot_password(self, email: str) -> dict[str, Any]:
        try:
            await self._identity.send_password_reset_email(email)
        except IdentityProviderError as exc:
            logger.warning("Provider password reset email failed: %s", exc)
        return {"success": True, "message": FORGOT_PASSWORD_MESSAGE}
