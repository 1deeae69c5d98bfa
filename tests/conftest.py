"""Test configuration and fixtures."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from login_gateway import memory_store
from login_gateway.adapters.identity_gateway import (
    Authenticator,
    CredentialSetResult,
    IdentityProviderError,
    PasswordGrant,
    PushPoll,
    TokenSet,
)
from login_gateway.adapters.otp_gateway import InMemoryOtpGateway
from login_gateway.models.enums import AuthenticatorType, OtpPurpose, PushStatus
from login_gateway.models.otp import OtpOutcome
from login_gateway.models.user import UserAccount
from login_gateway.services.audit_logger import LoginAuditLogger
from login_gateway.services.reset_tokens import ResetTokenStore
from login_gateway.services.stepup import PushOutcomeCache


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests that require external services",
    )


@pytest.fixture(autouse=True)
def memory_users():
    """Все тесты работают на in-memory хранилище учётных записей."""
    memory_store.activate_memory_store()
    memory_store.clear()
    yield
    memory_store.clear()


@pytest.fixture
def make_account():
    async def _make(**overrides: Any) -> UserAccount:
        data: dict[str, Any] = {
            "login_id": "jdoe",
            "email": "john@example.com",
            "first_name": "John",
            "last_name": "Doe",
            "identity_provider_user_id": "auth0|jdoe",
        }
        data.update(overrides)
        return await memory_store.create_user(UserAccount(**data))

    return _make


@pytest.fixture
def audit() -> LoginAuditLogger:
    return LoginAuditLogger()


# ═══════════════════════════════════════════════════════════════════════════════
# OTP
# ═══════════════════════════════════════════════════════════════════════════════

class Outbox:
    """Перехватывает доставку OTP: последний код на адрес."""

    def __init__(self) -> None:
        self.codes: dict[str, str] = {}
        self.deliveries: list[tuple[str, str | None]] = []

    async def deliver(
        self, email: str, display_name: str | None, code: str, expires_in: int
    ) -> None:
        self.codes[email] = code
        self.deliveries.append((email, display_name))

    def code_for(self, email: str) -> str:
        return self.codes[email.lower()]


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture
def otp_gateway(outbox: Outbox) -> InMemoryOtpGateway:
    return InMemoryOtpGateway(delivery=outbox.deliver)


class ScriptedOtpGateway:
    """OTP-шлюз с заранее заданными исходами."""

    def __init__(
        self,
        send: OtpOutcome | None = None,
        verify: OtpOutcome | None = None,
    ) -> None:
        self.send_outcome = send or OtpOutcome.sent(120)
        self.verify_outcome = verify or OtpOutcome.verified()
        self.sent: list[tuple[str, OtpPurpose]] = []
        self.verified: list[tuple[str, str, OtpPurpose]] = []

    async def send(
        self, destination: str, display_name: str | None, purpose: OtpPurpose
    ) -> OtpOutcome:
        self.sent.append((destination, purpose))
        return self.send_outcome

    async def verify(self, destination: str, code: str, purpose: OtpPurpose) -> OtpOutcome:
        self.verified.append((destination, code, purpose))
        return self.verify_outcome


@pytest.fixture
def scripted_otp() -> ScriptedOtpGateway:
    return ScriptedOtpGateway()


# ═══════════════════════════════════════════════════════════════════════════════
# Identity provider
# ═══════════════════════════════════════════════════════════════════════════════

class FakeIdentityGateway:
    """IdentityGateway в памяти: настраиваемые ответы + журнал вызовов."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.authenticators: dict[str, list[Authenticator]] = {}
        self.failing_deletes: set[str] = set()
        self.credential_result = CredentialSetResult(mfa_required=True, mfa_token="mfa-after-set")
        self.credential_error: IdentityProviderError | None = None
        self.grant = PasswordGrant(
            mfa_required=True, mfa_token="mfa-login", mfa_token_expires_at=1_900_000_000
        )
        self.login_error: IdentityProviderError | None = None
        self.enrollments = [
            Authenticator(id="push|1", type="oob", confirmed=True, oob_channel="auth0"),
            Authenticator(id="totp|1", type="otp", confirmed=False),
        ]
        self.polls: list[PushPoll] = []
        self.oob_code = "oob-123"
        self.mark_complete_error: IdentityProviderError | None = None
        self.revoke_error: IdentityProviderError | None = None

    # ── Токены ──
    async def exchange_authorization_code(self, code: str, redirect_uri: str) -> TokenSet:
        self.calls.append(("exchange", code, redirect_uri))
        if code == "bad":
            raise IdentityProviderError("invalid_grant", "Invalid authorization code", 403)
        return TokenSet(access_token="at", id_token="it", refresh_token="rt", expires_in=86400)

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        self.calls.append(("refresh", refresh_token))
        return TokenSet(access_token="at2", expires_in=86400)

    async def revoke_token(self, token: str) -> None:
        self.calls.append(("revoke", token))
        if self.revoke_error:
            raise self.revoke_error

    async def login(self, username: str, password: str) -> PasswordGrant:
        self.calls.append(("login", username))
        if self.login_error:
            raise self.login_error
        return self.grant

    # ── Учётные данные ──
    async def complete_onboarding(
        self, identity_provider_user_id: str, email: str, password: str
    ) -> CredentialSetResult:
        self.calls.append(("complete_onboarding", identity_provider_user_id, email))
        if self.credential_error:
            raise self.credential_error
        return self.credential_result

    async def mark_onboarding_complete(self, identity_provider_user_id: str) -> None:
        self.calls.append(("mark_onboarding_complete", identity_provider_user_id))
        if self.mark_complete_error:
            raise self.mark_complete_error

    async def send_password_reset_email(self, email: str) -> None:
        self.calls.append(("send_password_reset_email", email))

    # ── Management API ──
    async def list_user_authenticators(
        self, identity_provider_user_id: str
    ) -> list[Authenticator]:
        self.calls.append(("list_user_authenticators", identity_provider_user_id))
        return list(self.authenticators.get(identity_provider_user_id, []))

    async def delete_authenticator(
        self, identity_provider_user_id: str, authenticator_id: str
    ) -> None:
        self.calls.append(("delete_authenticator", identity_provider_user_id, authenticator_id))
        if authenticator_id in self.failing_deletes:
            raise IdentityProviderError("server_error", "boom", 500)

    # ── MFA API ──
    async def list_enrollments(self, mfa_token: str) -> list[Authenticator]:
        self.calls.append(("list_enrollments", mfa_token))
        return list(self.enrollments)

    async def associate(
        self, mfa_token: str, authenticator_type: AuthenticatorType
    ) -> dict[str, Any]:
        self.calls.append(("associate", mfa_token, authenticator_type))
        return {"authenticator_type": authenticator_type.value, "barcode_uri": "otpauth://x"}

    async def send_challenge(
        self,
        mfa_token: str,
        authenticator_type: AuthenticatorType,
        authenticator_id: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("send_challenge", mfa_token, authenticator_type, authenticator_id))
        return {"challenge_type": authenticator_type.value, "oob_code": self.oob_code}

    async def verify_mfa(
        self,
        mfa_token: str,
        authenticator_type: AuthenticatorType,
        otp: str | None = None,
        oob_code: str | None = None,
    ) -> PushPoll:
        self.calls.append(("verify_mfa", mfa_token, authenticator_type, otp, oob_code))
        return self._next_poll()

    # ── Step-up ──
    async def start_push_challenge(self, mfa_token: str, message: str | None) -> str:
        self.calls.append(("start_push_challenge", mfa_token, message))
        return self.oob_code

    async def poll_push_challenge(self, mfa_token: str, oob_code: str) -> PushPoll:
        self.calls.append(("poll_push_challenge", mfa_token, oob_code))
        return self._next_poll()

    def _next_poll(self) -> PushPoll:
        if self.polls:
            return self.polls.pop(0)
        return PushPoll(status=PushStatus.PENDING, error="authorization_pending")

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def identity() -> FakeIdentityGateway:
    return FakeIdentityGateway()


# ═══════════════════════════════════════════════════════════════════════════════
# HTTP
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def basic_auth() -> tuple[str, str]:
    from login_gateway.config import get_settings

    settings = get_settings()
    return settings.gateway_client_id, settings.gateway_client_secret


@pytest.fixture
def client(otp_gateway, identity):
    """TestClient без lifespan: БД и NATS не поднимаются."""
    from login_gateway import dependencies
    from login_gateway.main import app

    app.dependency_overrides[dependencies.get_otp_gateway] = lambda: otp_gateway
    app.dependency_overrides[dependencies.get_identity_gateway] = lambda: identity
    reset_store = ResetTokenStore()
    markers = ResetTokenStore(purpose="passkey_fallback", ttl_seconds=300)
    outcomes = PushOutcomeCache()
    app.dependency_overrides[dependencies.get_reset_token_store] = lambda: reset_store
    app.dependency_overrides[dependencies.get_passkey_marker_store] = lambda: markers
    app.dependency_overrides[dependencies.get_push_outcome_cache] = lambda: outcomes
    yield TestClient(app)
    app.dependency_overrides.clear()
