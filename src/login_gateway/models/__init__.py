"""
login_gateway.models — Модели данных шлюза аутентификации.

Реэкспорт основных классов для удобства:
    from login_gateway.models import UserAccount, OtpOutcome
"""

from login_gateway.models.enums import (  # noqa: F401
    AuthenticatorType,
    IdentityProviderKind,
    LockType,
    OnboardingStep,
    OtpPurpose,
    OtpStatus,
    PushStatus,
    Role,
    UserStatus,
    UserType,
)
from login_gateway.models.otp import OtpOutcome, http_status_for  # noqa: F401
from login_gateway.models.user import UserAccount, UserCreate, UserRead  # noqa: F401
