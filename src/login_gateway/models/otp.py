"""
login_gateway/models/otp.py — Исход операции OTP-шлюза.

OtpOutcome — закрытый, не зависящий от назначения результат, общий
для всех четырёх OTP-gated flow'ов. ``http_status_for`` — тотальная
функция OtpStatus → HTTP-статус без ветки по умолчанию.
"""

from __future__ import annotations

from typing import assert_never

from pydantic import BaseModel, ConfigDict

from login_gateway.models.enums import OtpStatus


class OtpOutcome(BaseModel):
    """Результат send/verify OTP-шлюза."""

    model_config = ConfigDict(frozen=True)

    status: OtpStatus
    message: str
    retry_after_seconds: int | None = None
    remaining_attempts: int | None = None
    expires_in_seconds: int | None = None

    @property
    def is_success(self) -> bool:
        return self.status in (OtpStatus.SENT, OtpStatus.VERIFIED)

    # ── Фабрики ──────────────────────────────────────────────────────────

    @classmethod
    def sent(cls, expires_in_seconds: int) -> "OtpOutcome":
        return cls(
            status=OtpStatus.SENT,
            message="OTP sent successfully",
            expires_in_seconds=expires_in_seconds,
        )

    @classmethod
    def verified(cls) -> "OtpOutcome":
        return cls(status=OtpStatus.VERIFIED, message="OTP verified successfully")

    @classmethod
    def already_verified(cls) -> "OtpOutcome":
        return cls(status=OtpStatus.ALREADY_VERIFIED, message="OTP was already verified")

    @classmethod
    def invalid_code(cls, remaining_attempts: int | None = None) -> "OtpOutcome":
        if remaining_attempts is None:
            return cls(status=OtpStatus.INVALID_CODE, message="Invalid verification code")
        remaining = max(0, remaining_attempts)
        return cls(
            status=OtpStatus.INVALID_CODE,
            message=f"Invalid verification code. {remaining} attempt(s) remaining.",
            remaining_attempts=remaining,
        )

    @classmethod
    def expired(cls) -> "OtpOutcome":
        return cls(
            status=OtpStatus.EXPIRED,
            message="Verification code has expired. Please request a new code.",
        )

    @classmethod
    def max_attempts(cls) -> "OtpOutcome":
        return cls(
            status=OtpStatus.MAX_ATTEMPTS,
            message="Maximum verification attempts exceeded. Please request a new code.",
            remaining_attempts=0,
        )

    @classmethod
    def rate_limited(cls, retry_after_seconds: int) -> "OtpOutcome":
        return cls(
            status=OtpStatus.RATE_LIMITED,
            message=f"Too many requests. Please try again in {retry_after_seconds} seconds.",
            retry_after_seconds=retry_after_seconds,
        )

    @classmethod
    def send_failed(cls, reason: str) -> "OtpOutcome":
        return cls(
            status=OtpStatus.SEND_FAILED,
            message=f"Failed to send verification code: {reason}",
        )


def http_status_for(status: OtpStatus) -> int:
    """HTTP-статус для исхода OTP. Новый OtpStatus обязан появиться здесь."""
    match status:
        case OtpStatus.SENT | OtpStatus.VERIFIED:
            return 200
        case OtpStatus.RATE_LIMITED:
            return 429
        case (
            OtpStatus.INVALID_CODE
            | OtpStatus.EXPIRED
            | OtpStatus.MAX_ATTEMPTS
            | OtpStatus.ALREADY_VERIFIED
        ):
            return 400
        case OtpStatus.SEND_FAILED:
            return 500
        case _:
            assert_never(status)
