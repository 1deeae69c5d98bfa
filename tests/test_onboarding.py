"""Tests for the first-time registration flow."""

from __future__ import annotations

import pytest

from login_gateway import memory_store
from login_gateway.adapters.identity_gateway import CredentialSetResult, IdentityProviderError
from login_gateway.exceptions import (
    AccountDeactivatedError,
    AuthenticationError,
    InvalidInputError,
    NotFoundError,
    OtpRejectedError,
    PreconditionError,
    UpstreamError,
)
from login_gateway.models.enums import UserStatus
from login_gateway.services.audit_logger import LoginAuditAction
from login_gateway.services.onboarding import OnboardingFlow

STRONG_PASSWORD = "Str0ng!Passw0rd"


@pytest.fixture
def flow(otp_gateway, identity, audit) -> OnboardingFlow:
    return OnboardingFlow(otp_gateway, identity, audit=audit)


async def _verify_email(flow: OnboardingFlow, outbox) -> None:
    await flow.send_verification_otp("jdoe")
    await flow.verify_otp("jdoe", outbox.code_for("john@example.com"))


class TestCheck:
    @pytest.mark.asyncio
    async def test_unknown_login_id(self, flow) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await flow.check("ghost")
        assert exc_info.value.status_code == 404
        assert exc_info.value.description == "User not found. Please contact your administrator."

    @pytest.mark.asyncio
    async def test_new_account(self, flow, make_account) -> None:
        await make_account()
        body = await flow.check("jdoe")
        assert body["success"] is True
        assert body["requires_email_verification"] is True
        assert body["requires_password_setup"] is True
        assert body["requires_mfa_enrollment"] is True
        assert body["next_step"] == "needs_email_verification"
        assert body["auth0_user_id"] == "auth0|jdoe"

    @pytest.mark.asyncio
    async def test_status(self, flow, make_account) -> None:
        await make_account(email_verified=True)
        body = await flow.status("jdoe")
        assert body["next_step"] == "needs_password"
        assert body["onboarding_complete"] is False


class TestEmailVerification:
    @pytest.mark.asyncio
    async def test_send_masks_email(self, flow, make_account) -> None:
        await make_account()
        body = await flow.send_verification_otp("jdoe")
        assert body == {"success": True, "email": "jo***@example.com", "expires_in_seconds": 120}

    @pytest.mark.asyncio
    async def test_verify_marks_email(self, flow, make_account, outbox, audit) -> None:
        await make_account()
        await flow.send_verification_otp("jdoe")
        body = await flow.verify_otp("jdoe", outbox.code_for("john@example.com"))
        assert body["email_verified"] is True
        assert body["requires_password_setup"] is True
        stored = await memory_store.get_user_by_login_id("jdoe")
        assert stored.email_verified
        assert audit.buffered[-1]["action"] == LoginAuditAction.EMAIL_VERIFIED.value

    @pytest.mark.asyncio
    async def test_wrong_code_leaves_flag(self, flow, make_account) -> None:
        await make_account()
        await flow.send_verification_otp("jdoe")
        with pytest.raises(OtpRejectedError) as exc_info:
            await flow.verify_otp("jdoe", "not-it")
        assert exc_info.value.error == "invalid_code"
        stored = await memory_store.get_user_by_login_id("jdoe")
        assert not stored.email_verified

    @pytest.mark.asyncio
    async def test_already_verified(self, flow, make_account) -> None:
        await make_account(email_verified=True)
        with pytest.raises(PreconditionError) as exc_info:
            await flow.send_verification_otp("jdoe")
        assert exc_info.value.error == "already_verified"

    @pytest.mark.asyncio
    async def test_deactivated(self, flow, make_account) -> None:
        await make_account(status=UserStatus.DEACTIVATED)
        with pytest.raises(AccountDeactivatedError):
            await flow.send_verification_otp("jdoe")


class TestSetPassword:
    @pytest.mark.asyncio
    async def test_requires_verified_email(self, flow, make_account, identity) -> None:
        await make_account()
        with pytest.raises(PreconditionError) as exc_info:
            await flow.set_password("jdoe", STRONG_PASSWORD)
        assert exc_info.value.error == "email_not_verified"
        assert identity.count("complete_onboarding") == 0

    @pytest.mark.asyncio
    async def test_policy_checked_before_provider(self, flow, make_account, identity) -> None:
        await make_account(email_verified=True)
        with pytest.raises(InvalidInputError) as exc_info:
            await flow.set_password("jdoe", "short")
        assert exc_info.value.error == "invalid_password"
        assert identity.count("complete_onboarding") == 0

    @pytest.mark.asyncio
    async def test_not_provisioned(self, flow, make_account) -> None:
        await make_account(email_verified=True, identity_provider_user_id=None)
        with pytest.raises(UpstreamError) as exc_info:
            await flow.set_password("jdoe", STRONG_PASSWORD)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_mfa_token_returned(self, flow, make_account, outbox) -> None:
        await make_account()
        await _verify_email(flow, outbox)
        body = await flow.set_password("jdoe", STRONG_PASSWORD)
        assert body["password_set"] is True
        assert body["mfa_required"] is True
        assert body["mfa_token"] == "mfa-after-set"
        assert body["requires_mfa_enrollment"] is True

    @pytest.mark.asyncio
    async def test_requires_login_hint(self, flow, make_account, identity) -> None:
        await make_account(email_verified=True)
        identity.credential_result = CredentialSetResult(requires_login=True)
        body = await flow.set_password("jdoe", STRONG_PASSWORD)
        assert body["requires_login"] is True
        assert body["login_hint"] == "john@example.com"

    @pytest.mark.asyncio
    async def test_second_attempt_rejected(self, flow, make_account) -> None:
        await make_account(email_verified=True)
        await flow.set_password("jdoe", STRONG_PASSWORD)
        with pytest.raises(PreconditionError) as exc_info:
            await flow.set_password("jdoe", STRONG_PASSWORD)
        assert exc_info.value.error == "password_already_set"

    @pytest.mark.asyncio
    async def test_provider_rejection_is_translated(self, flow, make_account, identity) -> None:
        await make_account(email_verified=True)
        identity.credential_error = IdentityProviderError(
            "password_history_error", "PasswordHistoryError: Password was used before", 400
        )
        with pytest.raises(InvalidInputError) as exc_info:
            await flow.set_password("jdoe", STRONG_PASSWORD)
        assert exc_info.value.description == "Password was used before"
        stored = await memory_store.get_user_by_login_id("jdoe")
        assert not stored.password_set

    @pytest.mark.asyncio
    async def test_provider_auth_failure(self, flow, make_account, identity) -> None:
        await make_account(email_verified=True)
        identity.credential_error = IdentityProviderError("unauthorized", "bad m2m", 401)
        with pytest.raises(AuthenticationError):
            await flow.set_password("jdoe", STRONG_PASSWORD)


class TestComplete:
    @pytest.mark.asyncio
    async def test_full_flow_activates(self, flow, make_account, outbox, identity, audit) -> None:
        await make_account()
        await _verify_email(flow, outbox)
        await flow.set_password("jdoe", STRONG_PASSWORD)

        body = await flow.complete("jdoe", mfa_enrolled_hint=True)
        assert body["onboarding_complete"] is True
        assert body["status"] == "ACTIVE"
        assert identity.count("mark_onboarding_complete") == 1
        stored = await memory_store.get_user_by_login_id("jdoe")
        assert stored.status is UserStatus.ACTIVE and stored.mfa_enrolled
        assert audit.buffered[-1]["action"] == LoginAuditAction.ONBOARDING_COMPLETED.value

    @pytest.mark.asyncio
    async def test_without_mfa_is_precondition(self, flow, make_account) -> None:
        await make_account(email_verified=True, password_set=True)
        with pytest.raises(PreconditionError) as exc_info:
            await flow.complete("jdoe")
        assert exc_info.value.error == "onboarding_incomplete"
        stored = await memory_store.get_user_by_login_id("jdoe")
        assert stored.status is UserStatus.PENDING_VERIFICATION

    @pytest.mark.asyncio
    async def test_password_required(self, flow, make_account) -> None:
        await make_account(email_verified=True)
        with pytest.raises(PreconditionError) as exc_info:
            await flow.complete("jdoe", mfa_enrolled_hint=True)
        assert exc_info.value.error == "password_not_set"

    @pytest.mark.asyncio
    async def test_provider_failure_does_not_block(self, flow, make_account, identity) -> None:
        await make_account(email_verified=True, password_set=True, mfa_enrolled=True)
        identity.mark_complete_error = IdentityProviderError("server_error", "down", 503)
        body = await flow.complete("jdoe")
        assert body["status"] == "ACTIVE"
