"""
login_gateway/adapters/auth0_client.py — Клиент Auth0 (реализация IdentityGateway).

Используемые API:
    • ``/oauth/token``       — code exchange, refresh, password-realm, MFA grant'ы
    • ``/oauth/revoke``      — отзыв refresh-токена
    • ``/mfa/*``             — authenticators / associate / challenge (по mfa_token)
    • ``/api/v2/users/...``  — Management API (M2M-токен кешируется)
    • ``/dbconnections/change_password`` — письмо сброса пароля от провайдера

Любой отказ провайдера → ``IdentityProviderError``. Опросы push-подтверждений
не поднимают исключений: результат — ``PushPoll`` со статусом.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable
from urllib.parse import quote

import httpx

from login_gateway.adapters.identity_gateway import (
    Authenticator,
    CredentialSetResult,
    IdentityProviderError,
    PasswordGrant,
    PushPoll,
    TokenSet,
)
from login_gateway.config import GatewaySettings
from login_gateway.models.enums import AuthenticatorType, PushStatus

logger = logging.getLogger(__name__)

MFA_OOB_GRANT = "http://auth0.com/oauth/grant-type/mfa-oob"
MFA_OTP_GRANT = "http://auth0.com/oauth/grant-type/mfa-otp"
PASSWORD_REALM_GRANT = "http://auth0.com/oauth/grant-type/password-realm"

# M2M-токен обновляется за час до истечения
_MGMT_TOKEN_EARLY_REFRESH = 3600


def _snake(value: str) -> str:
    return value.strip().lower().replace(" ", "_")


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _user_path(identity_provider_user_id: str) -> str:
    return f"/api/v2/users/{quote(identity_provider_user_id, safe='')}"


class Auth0IdentityGateway:
    """IdentityGateway поверх Auth0 (httpx.AsyncClient)."""

    def __init__(
        self,
        settings: GatewaySettings,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=f"https://{settings.auth0_domain}",
            timeout=settings.auth0_timeout_seconds,
        )
        self._clock = clock
        self._mgmt_token: str | None = None
        self._mgmt_token_expires_at = 0.0
        self._mgmt_lock = asyncio.Lock()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ═══════════════════════════════════════════════════════════════════════
    # HTTP-примитивы
    # ═══════════════════════════════════════════════════════════════════════

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            return await self._client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Auth0 %s %s failed: %s", method, path, exc)
            raise IdentityProviderError("server_error", str(exc)) from exc

    @staticmethod
    def _error_from(response: httpx.Response) -> IdentityProviderError:
        data = _json_body(response)
        error = data.get("errorCode") or data.get("error") or "server_error"
        description = data.get("error_description") or data.get("message") or response.text
        return IdentityProviderError(_snake(str(error)), str(description), response.status_code)

    async def _call(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> Any:
        response = await self._request(method, path, json=json, token=token)
        if response.is_error:
            error = self._error_from(response)
            logger.warning(
                "Auth0 %s %s → %d %s", method, path, response.status_code, error.error
            )
            raise error
        if not response.content:
            return None
        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text

    def _client_body(self, body: dict[str, Any]) -> dict[str, Any]:
        return {
            "client_id": self._settings.auth0_client_id,
            "client_secret": self._settings.auth0_client_secret,
            **body,
        }

    def _mfa_token_expiry(self) -> int:
        return int(self._clock()) + self._settings.mfa_token_ttl_seconds

    def _tokens(self, data: dict[str, Any], mfa_token: str | None = None) -> TokenSet:
        return TokenSet(
            access_token=data.get("access_token"),
            id_token=data.get("id_token"),
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            mfa_token=mfa_token,
            mfa_token_expires_at=self._mfa_token_expiry() if mfa_token else None,
        )

    async def _management_token(self) -> str:
        """M2M-токен Management API (client_credentials, кешируется)."""
        async with self._mgmt_lock:
            if self._mgmt_token and self._clock() < self._mgmt_token_expires_at:
                return self._mgmt_token
            data = await self._call(
                "POST",
                "/oauth/token",
                json={
                    "grant_type": "client_credentials",
                    "client_id": self._settings.auth0_m2m_client_id,
                    "client_secret": self._settings.auth0_m2m_client_secret,
                    "audience": f"https://{self._settings.auth0_domain}/api/v2/",
                },
            )
            expires_in = int(data.get("expires_in", 86400))
            self._mgmt_token = data["access_token"]
            self._mgmt_token_expires_at = self._clock() + max(
                expires_in - _MGMT_TOKEN_EARLY_REFRESH, 60
            )
            logger.info("Auth0 management token refreshed")
            return self._mgmt_token

    # ═══════════════════════════════════════════════════════════════════════
    # Токены
    # ═══════════════════════════════════════════════════════════════════════

    async def exchange_authorization_code(self, code: str, redirect_uri: str) -> TokenSet:
        data = await self._call(
            "POST",
            "/oauth/token",
            json=self._client_body({
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            }),
        )
        return self._tokens(data)

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        data = await self._call(
            "POST",
            "/oauth/token",
            json=self._client_body({
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }),
        )
        return self._tokens(data)

    async def revoke_token(self, token: str) -> None:
        await self._call("POST", "/oauth/revoke", json=self._client_body({"token": token}))

    async def login(self, username: str, password: str) -> PasswordGrant:
        """Вход по паролю. ``mfa_required`` от провайдера — не ошибка, а требование MFA."""
        body: dict[str, Any] = {
            "grant_type": PASSWORD_REALM_GRANT,
            "username": username,
            "password": password,
            "realm": self._settings.auth0_db_connection,
            "scope": "openid profile email",
        }
        if self._settings.auth0_audience:
            body["audience"] = self._settings.auth0_audience
        response = await self._request("POST", "/oauth/token", json=self._client_body(body))
        if response.is_error:
            data = _json_body(response)
            if data.get("error") == "mfa_required":
                return PasswordGrant(
                    mfa_required=True,
                    mfa_token=data.get("mfa_token"),
                    mfa_token_expires_at=self._mfa_token_expiry(),
                )
            raise self._error_from(response)
        return PasswordGrant(tokens=self._tokens(response.json()))

    # ═══════════════════════════════════════════════════════════════════════
    # Учётные данные и онбординг
    # ═══════════════════════════════════════════════════════════════════════

    async def complete_onboarding(
        self, identity_provider_user_id: str, email: str, password: str
    ) -> CredentialSetResult:
        """Установить пароль и сразу войти, чтобы узнать, требуется ли MFA."""
        token = await self._management_token()
        await self._call(
            "PATCH",
            _user_path(identity_provider_user_id),
            json={"password": password},
            token=token,
        )
        logger.info("Password set at Auth0 for %s", identity_provider_user_id)

        try:
            grant = await self.login(email, password)
        except IdentityProviderError as exc:
            logger.info(
                "Login after password set failed for %s (%s) — login required",
                identity_provider_user_id, exc.error,
            )
            return CredentialSetResult(requires_login=True)
        if grant.mfa_required:
            return CredentialSetResult(mfa_required=True, mfa_token=grant.mfa_token)
        return CredentialSetResult(tokens=grant.tokens)

    async def mark_onboarding_complete(self, identity_provider_user_id: str) -> None:
        token = await self._management_token()
        await self._call(
            "PATCH",
            _user_path(identity_provider_user_id),
            json={"app_metadata": {"onboarding_complete": True}},
            token=token,
        )
        logger.info("Marked onboarding complete at Auth0 for %s", identity_provider_user_id)

    async def send_password_reset_email(self, email: str) -> None:
        await self._call(
            "POST",
            "/dbconnections/change_password",
            json={
                "client_id": self._settings.auth0_client_id,
                "email": email,
                "connection": self._settings.auth0_db_connection,
            },
        )

    # ═══════════════════════════════════════════════════════════════════════
    # Аутентификаторы пользователя (Management API)
    # ═══════════════════════════════════════════════════════════════════════

    async def list_user_authenticators(
        self, identity_provider_user_id: str
    ) -> list[Authenticator]:
        token = await self._management_token()
        data = await self._call(
            "GET", f"{_user_path(identity_provider_user_id)}/authenticators", token=token
        )
        return [
            Authenticator(
                id=item.get("id", ""),
                type=item.get("type", ""),
                confirmed=bool(item.get("confirmed", False)),
                name=item.get("name"),
            )
            for item in data or []
        ]

    async def delete_authenticator(
        self, identity_provider_user_id: str, authenticator_id: str
    ) -> None:
        """Удалить аутентификатор. 404 — уже удалён, считаем успехом."""
        token = await self._management_token()
        path = (
            f"{_user_path(identity_provider_user_id)}/authenticators/"
            f"{quote(authenticator_id, safe='')}"
        )
        response = await self._request("DELETE", path, token=token)
        if response.status_code == 404:
            logger.info(
                "Authenticator %s not found for %s (already deleted)",
                authenticator_id, identity_provider_user_id,
            )
            return
        if response.is_error:
            raise self._error_from(response)
        logger.info("Deleted authenticator %s for %s", authenticator_id, identity_provider_user_id)

    # ═══════════════════════════════════════════════════════════════════════
    # MFA API
    # ═══════════════════════════════════════════════════════════════════════

    async def list_enrollments(self, mfa_token: str) -> list[Authenticator]:
        data = await self._call("GET", "/mfa/authenticators", token=mfa_token)
        return [
            Authenticator(
                id=item.get("id", ""),
                type=item.get("authenticator_type", ""),
                confirmed=bool(item.get("active", False)),
                name=item.get("name"),
                oob_channel=item.get("oob_channel"),
            )
            for item in data or []
        ]

    async def associate(
        self, mfa_token: str, authenticator_type: AuthenticatorType
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"authenticator_types": [authenticator_type.value]}
        if authenticator_type is AuthenticatorType.OOB:
            body["oob_channels"] = ["auth0"]
        return await self._call(
            "POST", "/mfa/associate", json=self._client_body(body), token=mfa_token
        )

    async def send_challenge(
        self,
        mfa_token: str,
        authenticator_type: AuthenticatorType,
        authenticator_id: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "challenge_type": authenticator_type.value,
            "mfa_token": mfa_token,
        }
        if authenticator_id:
            body["authenticator_id"] = authenticator_id
        return await self._call("POST", "/mfa/challenge", json=self._client_body(body))

    async def verify_mfa(
        self,
        mfa_token: str,
        authenticator_type: AuthenticatorType,
        otp: str | None = None,
        oob_code: str | None = None,
    ) -> PushPoll:
        body: dict[str, Any] = {
            "grant_type": MFA_OOB_GRANT if authenticator_type is AuthenticatorType.OOB
            else MFA_OTP_GRANT,
            "mfa_token": mfa_token,
        }
        if oob_code:
            body["oob_code"] = oob_code
        if otp:
            body["otp"] = otp
        return await self._poll_grant(body)

    # ═══════════════════════════════════════════════════════════════════════
    # Step-up (push)
    # ═══════════════════════════════════════════════════════════════════════

    async def start_push_challenge(self, mfa_token: str, message: str | None) -> str:
        body: dict[str, Any] = {"challenge_type": "oob", "mfa_token": mfa_token}
        if message:
            body["authorization_details"] = [{"type": "transaction", "message": message}]
        data = await self._call("POST", "/mfa/challenge", json=self._client_body(body))
        oob_code = (data or {}).get("oob_code")
        if not oob_code:
            raise IdentityProviderError("stepup_start_failed", "Provider returned no oob_code")
        return oob_code

    async def poll_push_challenge(self, mfa_token: str, oob_code: str) -> PushPoll:
        return await self._poll_grant(
            {"grant_type": MFA_OOB_GRANT, "mfa_token": mfa_token, "oob_code": oob_code}
        )

    async def _poll_grant(self, body: dict[str, Any]) -> PushPoll:
        """Один запрос MFA-grant'а → PushPoll. Без повторов и ожидания."""
        try:
            response = await self._request("POST", "/oauth/token", json=self._client_body(body))
        except IdentityProviderError as exc:
            return PushPoll(
                status=PushStatus.ERROR,
                error=exc.error,
                error_description=exc.error_description,
            )
        if response.is_success:
            return PushPoll(
                status=PushStatus.APPROVED,
                tokens=self._tokens(response.json(), mfa_token=body["mfa_token"]),
            )
        error = self._error_from(response)
        return PushPoll(
            status=PushStatus.from_provider_error(error.error),
            error=error.error,
            error_description=error.error_description,
        )
