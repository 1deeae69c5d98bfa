"""Tests for MFA enrollment and verification."""

from __future__ import annotations

import pytest

from login_gateway import memory_store
from login_gateway.adapters.identity_gateway import PushPoll, TokenSet
from login_gateway.exceptions import InvalidInputError, UpstreamError
from login_gateway.models.enums import AuthenticatorType, PushStatus
from login_gateway.services.mfa_enrollment import MfaEnrollmentFlow


@pytest.fixture
def flow(identity) -> MfaEnrollmentFlow:
    return MfaEnrollmentFlow(identity)


def _approved() -> PushPoll:
    return PushPoll(
        status=PushStatus.APPROVED,
        tokens=TokenSet(access_token="at", id_token="it", expires_in=3600),
    )


class TestEnrollments:
    @pytest.mark.asyncio
    async def test_list(self, flow) -> None:
        body = await flow.list_enrollments("mfa-1")
        assert [a["id"] for a in body["authenticators"]] == ["push|1", "totp|1"]

    @pytest.mark.asyncio
    async def test_associate(self, flow, identity) -> None:
        body = await flow.associate("mfa-1", AuthenticatorType.OTP)
        assert body["success"] is True
        assert body["barcode_uri"] == "otpauth://x"

    @pytest.mark.asyncio
    async def test_send_challenge(self, flow, identity) -> None:
        body = await flow.send_challenge("mfa-1", AuthenticatorType.OOB, "push|1")
        assert body["oob_code"] == "oob-123"
        assert identity.calls[-1] == ("send_challenge", "mfa-1", AuthenticatorType.OOB, "push|1")


class TestVerify:
    @pytest.mark.asyncio
    async def test_otp_required(self, flow) -> None:
        with pytest.raises(InvalidInputError):
            await flow.verify("mfa-1", AuthenticatorType.OTP)

    @pytest.mark.asyncio
    async def test_oob_code_required(self, flow) -> None:
        with pytest.raises(InvalidInputError):
            await flow.verify("mfa-1", AuthenticatorType.OOB, otp="123456")

    @pytest.mark.asyncio
    async def test_approved_returns_tokens_and_syncs_flag(
        self, flow, identity, make_account
    ) -> None:
        await make_account(email_verified=True, password_set=True)
        identity.polls = [_approved()]
        body = await flow.verify("mfa-1", AuthenticatorType.OTP, otp="123456", login_id="jdoe")
        assert body["status"] == "approved"
        assert body["access_token"] == "at"
        stored = await memory_store.get_user_by_login_id("jdoe")
        assert stored.mfa_enrolled

    @pytest.mark.asyncio
    async def test_wrong_otp(self, flow, identity) -> None:
        identity.polls = [
            PushPoll(status=PushStatus.ERROR, error="invalid_grant", error_description="Invalid otp_code.")
        ]
        with pytest.raises(InvalidInputError) as exc_info:
            await flow.verify("mfa-1", AuthenticatorType.OTP, otp="000000")
        assert exc_info.value.error == "invalid_grant"

    @pytest.mark.asyncio
    async def test_provider_down_on_otp(self, flow, identity) -> None:
        identity.polls = [PushPoll(status=PushStatus.ERROR, error="server_error")]
        with pytest.raises(UpstreamError):
            await flow.verify_challenge("mfa-1", AuthenticatorType.OTP, otp="000000")

    @pytest.mark.asyncio
    async def test_push_pending_is_status(self, flow) -> None:
        body = await flow.challenge("mfa-1", "oob-1")
        assert body == {"success": True, "status": "pending"}

    @pytest.mark.asyncio
    async def test_unknown_login_id_does_not_fail(self, flow, identity) -> None:
        identity.polls = [_approved()]
        body = await flow.challenge("mfa-1", "oob-1", login_id="ghost")
        assert body["status"] == "approved"
