"""
login_gateway/services/otp_step.py — Общий OTP-gated шаг.

Все четыре OTP-flow'а (FTR, сброс пароля, сброс Guardian, passkey fallback)
устроены одинаково: предусловие → send/verify через OTP-шлюз → продолжение.
``OtpGatedStep`` берёт на себя send/verify и перевод неуспешного
``OtpOutcome`` в ``OtpRejectedError``; flow отвечает только за предусловие
и продолжение.
"""

from __future__ import annotations

import logging

from login_gateway.adapters.otp_gateway import OtpVerificationGateway
from login_gateway.exceptions import OtpRejectedError
from login_gateway.models.enums import OtpPurpose, OtpStatus
from login_gateway.models.otp import OtpOutcome
from login_gateway.models.user import UserAccount

logger = logging.getLogger(__name__)

MASK = "***"


def mask_email(email: str) -> str:
    """``john@example.com`` → ``jo***@example.com``; ``jo@x.io`` → ``***@x.io``."""
    local, sep, domain = email.partition("@")
    if not sep:
        return MASK
    if len(local) <= 2:
        return f"{MASK}@{domain}"
    return f"{local[:2]}{MASK}@{domain}"


class OtpGatedStep:
    """send/verify одного назначения OTP для учётной записи."""

    def __init__(self, otp_gateway: OtpVerificationGateway, purpose: OtpPurpose) -> None:
        self._otp = otp_gateway
        self.purpose = purpose

    async def send(self, account: UserAccount) -> OtpOutcome:
        """Отправить код на email учётной записи. Неуспех → OtpRejectedError."""
        outcome = await self._otp.send(account.email, account.display_name, self.purpose)
        if outcome.status is not OtpStatus.SENT:
            logger.warning(
                "OTP send (%s) for %s rejected: %s",
                self.purpose.value, account.login_id, outcome.status.value,
            )
            raise OtpRejectedError(outcome)
        return outcome

    async def verify(self, account: UserAccount, code: str) -> OtpOutcome:
        """Проверить код. Успех — только VERIFIED."""
        outcome = await self._otp.verify(account.email, code, self.purpose)
        if outcome.status is not OtpStatus.VERIFIED:
            logger.info(
                "OTP verify (%s) for %s: %s",
                self.purpose.value, account.login_id, outcome.status.value,
            )
            raise OtpRejectedError(outcome)
        return outcome

    @staticmethod
    def sent_response(account: UserAccount, outcome: OtpOutcome) -> dict:
        """Success-envelope отправки: маскированный email + срок жизни кода."""
        return {
            "success": True,
            "email": mask_email(account.email),
            "expires_in_seconds": outcome.expires_in_seconds,
        }
