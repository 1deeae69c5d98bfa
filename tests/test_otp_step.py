"""Tests for the shared OTP-gated step."""

from __future__ import annotations

import pytest

from login_gateway.exceptions import OtpRejectedError
from login_gateway.models.enums import OtpPurpose
from login_gateway.models.otp import OtpOutcome
from login_gateway.models.user import UserAccount
from login_gateway.services.otp_step import OtpGatedStep, mask_email


@pytest.mark.parametrize(
    ("email", "masked"),
    [
        ("john@example.com", "jo***@example.com"),
        ("jo@example.com", "***@example.com"),
        ("j@example.com", "***@example.com"),
        ("not-an-email", "***"),
    ],
)
def test_mask_email(email: str, masked: str) -> None:
    assert mask_email(email) == masked


@pytest.fixture
def account() -> UserAccount:
    return UserAccount(login_id="jdoe", email="john@example.com", first_name="John")


class TestOtpGatedStep:
    @pytest.mark.asyncio
    async def test_send_passes_display_name_and_purpose(self, scripted_otp, account) -> None:
        step = OtpGatedStep(scripted_otp, OtpPurpose.GUARDIAN_RESET)
        outcome = await step.send(account)
        assert scripted_otp.sent == [("john@example.com", OtpPurpose.GUARDIAN_RESET)]
        assert OtpGatedStep.sent_response(account, outcome) == {
            "success": True,
            "email": "jo***@example.com",
            "expires_in_seconds": 120,
        }

    @pytest.mark.asyncio
    async def test_send_rejection(self, scripted_otp, account) -> None:
        scripted_otp.send_outcome = OtpOutcome.send_failed("smtp down")
        step = OtpGatedStep(scripted_otp, OtpPurpose.PASSWORD_RESET)
        with pytest.raises(OtpRejectedError) as exc_info:
            await step.send(account)
        assert exc_info.value.status_code == 500
        assert exc_info.value.error == "send_failed"

    @pytest.mark.asyncio
    async def test_verify_rejection_keeps_remaining(self, scripted_otp, account) -> None:
        scripted_otp.verify_outcome = OtpOutcome.invalid_code(1)
        step = OtpGatedStep(scripted_otp, OtpPurpose.PASSWORD_RESET)
        with pytest.raises(OtpRejectedError) as exc_info:
            await step.verify(account, "000000")
        assert exc_info.value.status_code == 400
        assert exc_info.value.to_envelope()["remaining_attempts"] == 1

    @pytest.mark.asyncio
    async def test_already_verified_is_rejected(self, scripted_otp, account) -> None:
        scripted_otp.verify_outcome = OtpOutcome.already_verified()
        step = OtpGatedStep(scripted_otp, OtpPurpose.PASSWORD_RESET)
        with pytest.raises(OtpRejectedError):
            await step.verify(account, "123456")
