"""
login_gateway/models/enums.py — Перечисления домена аутентификации.

Содержит enum'ы:
    • UserStatus / LockType — жизненный цикл учётной записи
    • UserType / IdentityProviderKind / Role — атрибуты пользователя
    • OnboardingStep — производный шаг FTR
    • OtpPurpose / OtpStatus — пространства имён и исходы OTP
    • AuthenticatorType / PushStatus — MFA и push-подтверждения
"""

from enum import Enum


class UserStatus(str, Enum):
    """Статус учётной записи."""
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    ACTIVE = "ACTIVE"
    LOCKED = "LOCKED"
    DEACTIVATED = "DEACTIVATED"


class LockType(str, Enum):
    """Кем/почему заблокирована учётная запись."""
    NONE = "NONE"
    BANK = "BANK"
    SELF = "SELF"
    SECURITY = "SECURITY"


class UserType(str, Enum):
    CLIENT_USER = "CLIENT_USER"
    INDIRECT_USER = "INDIRECT_USER"


class IdentityProviderKind(str, Enum):
    AUTH0 = "AUTH0"
    ANP = "ANP"


class Role(str, Enum):
    SECURITY_ADMIN = "SECURITY_ADMIN"
    SERVICE_ADMIN = "SERVICE_ADMIN"
    READER = "READER"
    CREATOR = "CREATOR"
    APPROVER = "APPROVER"


class OnboardingStep(str, Enum):
    """Следующий шаг онбординга, выводится из трёх флагов."""
    NEEDS_EMAIL_VERIFICATION = "needs_email_verification"
    NEEDS_PASSWORD = "needs_password"
    NEEDS_MFA = "needs_mfa"
    COMPLETE = "complete"


class OtpPurpose(str, Enum):
    """Назначение OTP-кода. Код одного назначения не проходит в другом."""
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"
    GUARDIAN_RESET = "guardian_reset"
    PASSKEY_FALLBACK = "passkey_fallback"


class OtpStatus(str, Enum):
    """Закрытое множество исходов OTP-шлюза (значение = код ошибки в envelope)."""
    SENT = "sent"
    VERIFIED = "verified"
    RATE_LIMITED = "rate_limited"
    INVALID_CODE = "invalid_code"
    EXPIRED = "expired"
    MAX_ATTEMPTS = "max_attempts"
    ALREADY_VERIFIED = "already_verified"
    SEND_FAILED = "send_failed"


class AuthenticatorType(str, Enum):
    """Тип MFA-аутентификатора в терминах Auth0 MFA API."""
    OTP = "otp"
    OOB = "oob"


class PushStatus(str, Enum):
    """Исход опроса push-подтверждения (step-up и регистрация Guardian)."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not PushStatus.PENDING

    @classmethod
    def from_provider_error(cls, error: str) -> "PushStatus":
        """Маппинг OAuth-кода ошибки провайдера на исход опроса."""
        if error in ("authorization_pending", "slow_down"):
            return cls.PENDING
        if error == "access_denied":
            return cls.REJECTED
        if error == "expired_token":
            return cls.EXPIRED
        return cls.ERROR
