"""
login_gateway/adapters/identity_gateway.py — Порт identity-провайдера.

Flow'ы не знают про HTTP и Auth0: они работают с ``IdentityGateway`` и
нормализованными значениями ниже. Реализация — ``auth0_client.Auth0IdentityGateway``.

Ошибки провайдера поднимаются как ``IdentityProviderError``; flow'ы
переводят их в собственный словарь ``GatewayError`` и никогда не
отдают наружу «как есть».
"""

from __future__ import annotations

from typing import Any, Protocol

from pydantic import ConfigDict

from login_gateway.exceptions import (
    AuthenticationError,
    GatewayError,
    InvalidInputError,
    UpstreamError,
)
from login_gateway.models.common import GatewayBase
from login_gateway.models.enums import AuthenticatorType, PushStatus

PASSWORD_HISTORY_PREFIX = "PasswordHistoryError:"


class IdentityProviderError(Exception):
    """Провайдер отказал или недоступен."""

    def __init__(
        self,
        error: str,
        error_description: str = "",
        status_code: int | None = None,
    ):
        self.error = error
        self.error_description = error_description
        self.status_code = status_code
        super().__init__(f"{error}: {error_description}" if error_description else error)

    @property
    def public_description(self) -> str:
        """Описание без внутренних префиксов провайдера."""
        return self.error_description.replace(PASSWORD_HISTORY_PREFIX, "").strip()

    def to_gateway_error(
        self, error: str | None = None, description: str | None = None
    ) -> GatewayError:
        """
        Перевод в словарь шлюза.

        Недоступность провайдера (нет ответа, 5xx) → 500; отказ в
        аутентификации (401/403) → 401; прочий отказ → 400 с очищенным
        описанием провайдера.
        """
        if self.status_code is None or self.status_code >= 500:
            return UpstreamError(
                error or "server_error",
                description or "Identity provider request failed",
            )
        if self.status_code in (401, 403):
            return AuthenticationError(
                self.error, self.public_description or description or "Authentication failed"
            )
        return InvalidInputError(
            error or self.error,
            self.public_description or description or "Request rejected by identity provider",
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Значения, которыми обмениваются flow'ы и провайдер
# ═══════════════════════════════════════════════════════════════════════════════

class _Value(GatewayBase):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class Authenticator(_Value):
    """MFA-аутентификатор пользователя у провайдера."""
    id: str
    type: str
    confirmed: bool = False
    name: str | None = None
    oob_channel: str | None = None

    @property
    def is_confirmed_push(self) -> bool:
        return self.type == "push" and self.confirmed


class TokenSet(_Value):
    """Токены, выданные провайдером."""
    access_token: str | None = None
    id_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    mfa_token: str | None = None
    mfa_token_expires_at: int | None = None

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class PasswordGrant(_Value):
    """Итог входа по паролю: токены либо требование MFA."""
    mfa_required: bool = False
    mfa_token: str | None = None
    mfa_token_expires_at: int | None = None
    tokens: TokenSet | None = None


class CredentialSetResult(_Value):
    """Итог установки пароля у провайдера (PATCH + повторный вход)."""
    requires_login: bool = False
    mfa_required: bool = False
    mfa_token: str | None = None
    tokens: TokenSet | None = None


class PushPoll(_Value):
    """Один опрос подтверждения (push или ввод кода)."""
    status: PushStatus
    error: str | None = None
    error_description: str | None = None
    tokens: TokenSet | None = None

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": self.status.value}
        if self.tokens is not None:
            body.update(self.tokens.to_response())
        if self.status is PushStatus.ERROR:
            body["error"] = self.error or "verification_failed"
            if self.error_description:
                body["error_description"] = self.error_description
        return body


# ═══════════════════════════════════════════════════════════════════════════════
# Порт
# ═══════════════════════════════════════════════════════════════════════════════

class IdentityGateway(Protocol):
    """Операции identity-провайдера, которые оркеструет шлюз."""

    # ── Токены ──
    async def exchange_authorization_code(self, code: str, redirect_uri: str) -> TokenSet: ...

    async def refresh_access_token(self, refresh_token: str) -> TokenSet: ...

    async def revoke_token(self, token: str) -> None: ...

    async def login(self, username: str, password: str) -> PasswordGrant: ...

    # ── Учётные данные и онбординг ──
    async def complete_onboarding(
        self, identity_provider_user_id: str, email: str, password: str
    ) -> CredentialSetResult: ...

    async def mark_onboarding_complete(self, identity_provider_user_id: str) -> None: ...

    async def send_password_reset_email(self, email: str) -> None: ...

    # ── Аутентификаторы пользователя (management API) ──
    async def list_user_authenticators(
        self, identity_provider_user_id: str
    ) -> list[Authenticator]: ...

    async def delete_authenticator(
        self, identity_provider_user_id: str, authenticator_id: str
    ) -> None: ...

    # ── MFA API (по mfa_token) ──
    async def list_enrollments(self, mfa_token: str) -> list[Authenticator]: ...

    async def associate(
        self, mfa_token: str, authenticator_type: AuthenticatorType
    ) -> dict[str, Any]: ...

    async def send_challenge(
        self,
        mfa_token: str,
        authenticator_type: AuthenticatorType,
        authenticator_id: str | None = None,
    ) -> dict[str, Any]: ...

    async def verify_mfa(
        self,
        mfa_token: str,
        authenticator_type: AuthenticatorType,
        otp: str | None = None,
        oob_code: str | None = None,
    ) -> PushPoll: ...

    # ── Step-up (push) ──
    async def start_push_challenge(self, mfa_token: str, message: str | None) -> str: ...

    async def poll_push_challenge(self, mfa_token: str, oob_code: str) -> PushPoll: ...
