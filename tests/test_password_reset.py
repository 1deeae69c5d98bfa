"""Tests for the OTP-gated password reset flow."""

from __future__ import annotations

import pytest

from login_gateway.adapters.identity_gateway import IdentityProviderError
from login_gateway.exceptions import (
    AccountLockedError,
    InvalidInputError,
    OtpRejectedError,
    PreconditionError,
    UpstreamError,
)
from login_gateway.models.enums import LockType, UserStatus
from login_gateway.services.audit_logger import LoginAuditAction
from login_gateway.services.password_reset import (
    GENERIC_REQUEST_MESSAGE,
    INVALID_TOKEN_MESSAGE,
    RESET_SUCCESS_MESSAGE,
    PasswordResetFlow,
)
from login_gateway.services.reset_tokens import ResetTokenStore

STRONG_PASSWORD = "N3w!Passw0rd-x"


@pytest.fixture
def tokens() -> ResetTokenStore:
    return ResetTokenStore()


@pytest.fixture
def flow(otp_gateway, identity, tokens, audit) -> PasswordResetFlow:
    return PasswordResetFlow(otp_gateway, identity, tokens, audit=audit)


async def _reset_token(flow: PasswordResetFlow, outbox) -> str:
    await flow.request_reset("jdoe")
    body = await flow.verify_otp("jdoe", outbox.code_for("john@example.com"))
    return body["reset_token"]


class TestRequest:
    @pytest.mark.asyncio
    async def test_envelope_is_identical_for_unknown_and_known(
        self, flow, make_account, outbox
    ) -> None:
        await make_account(password_set=True)
        await make_account(
            login_id="gone", email="gone@example.com", password_set=True,
            status=UserStatus.DEACTIVATED,
        )
        known = await flow.request_reset("jdoe")
        unknown = await flow.request_reset("ghost")
        deactivated = await flow.request_reset("gone")

        assert known == unknown == deactivated == {
            "success": True,
            "message": GENERIC_REQUEST_MESSAGE,
            "expires_in_seconds": 120,
        }
        assert list(outbox.codes) == ["john@example.com"]

    @pytest.mark.asyncio
    async def test_locked_account(self, flow, make_account) -> None:
        await make_account(password_set=True, status=UserStatus.LOCKED, lock_type=LockType.BANK)
        with pytest.raises(AccountLockedError) as exc_info:
            await flow.request_reset("jdoe")
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_password_not_set(self, flow, make_account) -> None:
        await make_account()
        with pytest.raises(PreconditionError) as exc_info:
            await flow.request_reset("jdoe")
        assert exc_info.value.error == "invalid_state"

    @pytest.mark.asyncio
    async def test_resend_is_rate_limited(self, flow, make_account) -> None:
        await make_account(password_set=True)
        await flow.request_reset("jdoe")
        await flow.resend_otp("jdoe")
        await flow.resend_otp("jdoe")
        with pytest.raises(OtpRejectedError) as exc_info:
            await flow.resend_otp("jdoe")
        assert exc_info.value.status_code == 429
        assert exc_info.value.to_envelope()["retry_after_seconds"] >= 1


class TestVerify:
    @pytest.mark.asyncio
    async def test_issues_token(self, flow, make_account, outbox, audit) -> None:
        await make_account(password_set=True)
        await flow.request_reset("jdoe")
        body = await flow.verify_otp("jdoe", outbox.code_for("john@example.com"))
        assert body["success"] is True
        assert body["expires_in_seconds"] == 900
        assert len(body["reset_token"]) == 43
        assert audit.buffered[-1]["action"] == LoginAuditAction.PASSWORD_RESET_VERIFIED.value

    @pytest.mark.asyncio
    async def test_unknown_login_id(self, flow) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            await flow.verify_otp("ghost", "123456")
        assert exc_info.value.error == "invalid_code"


class TestReset:
    @pytest.mark.asyncio
    async def test_token_is_single_use(self, flow, make_account, outbox, identity) -> None:
        await make_account(password_set=True)
        token = await _reset_token(flow, outbox)

        body = await flow.reset_password("jdoe", token, STRONG_PASSWORD)
        assert body == {"success": True, "message": RESET_SUCCESS_MESSAGE}
        assert identity.count("complete_onboarding") == 1

        with pytest.raises(InvalidInputError) as exc_info:
            await flow.reset_password("jdoe", token, STRONG_PASSWORD)
        assert exc_info.value.error == "invalid_token"
        assert identity.count("complete_onboarding") == 1

    @pytest.mark.asyncio
    async def test_token_bound_to_login_id(self, flow, make_account, outbox, identity) -> None:
        await make_account(password_set=True)
        await make_account(login_id="other", email="other@example.com", password_set=True)
        token = await _reset_token(flow, outbox)

        with pytest.raises(InvalidInputError) as exc_info:
            await flow.reset_password("other", token, STRONG_PASSWORD)
        assert exc_info.value.error == "invalid_token"
        mismatch = exc_info.value.to_envelope()
        with pytest.raises(InvalidInputError) as exc_info:
            await flow.reset_password("other", "not-a-token", STRONG_PASSWORD)
        assert exc_info.value.to_envelope() == mismatch
        assert mismatch["error_description"] == INVALID_TOKEN_MESSAGE
        assert identity.count("complete_onboarding") == 0

        await flow.reset_password("jdoe", token, STRONG_PASSWORD)

    @pytest.mark.asyncio
    async def test_weak_password_burns_token(self, flow, make_account, outbox, identity) -> None:
        await make_account(password_set=True)
        token = await _reset_token(flow, outbox)
        with pytest.raises(InvalidInputError) as exc_info:
            await flow.reset_password("jdoe", token, "weak")
        assert exc_info.value.error == "invalid_password"
        with pytest.raises(InvalidInputError) as exc_info:
            await flow.reset_password("jdoe", token, STRONG_PASSWORD)
        assert exc_info.value.error == "invalid_token"
        assert identity.count("complete_onboarding") == 0

    @pytest.mark.asyncio
    async def test_locked_after_verify(self, flow, make_account, outbox) -> None:
        from login_gateway import memory_store

        await make_account(password_set=True)
        token = await _reset_token(flow, outbox)
        account = await memory_store.get_user_by_login_id("jdoe")
        account.lock(LockType.SECURITY, "ops")
        await memory_store.save_user(account)

        with pytest.raises(AccountLockedError):
            await flow.reset_password("jdoe", token, STRONG_PASSWORD)

    @pytest.mark.asyncio
    async def test_provider_rejection(self, flow, make_account, outbox, identity) -> None:
        await make_account(password_set=True)
        token = await _reset_token(flow, outbox)
        identity.credential_error = IdentityProviderError(
            "password_dictionary_error", "Password is too common", 400
        )
        with pytest.raises(InvalidInputError) as exc_info:
            await flow.reset_password("jdoe", token, STRONG_PASSWORD)
        assert exc_info.value.error == "invalid_password"
        assert exc_info.value.description == "Password is too common"

    @pytest.mark.asyncio
    async def test_provider_unavailable(self, flow, make_account, outbox, identity) -> None:
        await make_account(password_set=True)
        token = await _reset_token(flow, outbox)
        identity.credential_error = IdentityProviderError("server_error", "timeout")
        with pytest.raises(UpstreamError):
            await flow.reset_password("jdoe", token, STRONG_PASSWORD)
