"""
login_gateway/models/requests.py — Тела запросов login front-end и internal API.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import EmailStr, Field

from login_gateway.models.common import GatewayBase
from login_gateway.models.enums import AuthenticatorType, LockType

LoginId = Annotated[str, Field(min_length=1, max_length=255, examples=["jdoe"])]
OtpCode = Annotated[str, Field(min_length=4, max_length=10, examples=["123456"])]


# ── FTR ──────────────────────────────────────────────────────────────────

class LoginIdRequest(GatewayBase):
    login_id: LoginId


class OtpCodeRequest(GatewayBase):
    login_id: LoginId
    code: OtpCode


class SetPasswordRequest(GatewayBase):
    login_id: LoginId
    password: str = Field(..., min_length=1, max_length=512)


class CompleteRequest(GatewayBase):
    login_id: LoginId
    mfa_enrolled: bool = False


# ── Сброс пароля ─────────────────────────────────────────────────────────

class ResetPasswordRequest(GatewayBase):
    login_id: LoginId
    reset_token: str = Field(..., min_length=1, max_length=256)
    password: str = Field(..., min_length=1, max_length=512)


# ── Guardian / passkey fallback ──────────────────────────────────────────

class EmailRequest(GatewayBase):
    email: EmailStr


class EmailOtpRequest(GatewayBase):
    email: EmailStr
    code: OtpCode


class FallbackRedeemRequest(GatewayBase):
    email: EmailStr
    fallback_token: str = Field(..., min_length=1, max_length=256)


# ── Step-up ──────────────────────────────────────────────────────────────

class StepUpStartRequest(GatewayBase):
    mfa_token: str = Field(..., min_length=1)
    message: str | None = Field(default=None, max_length=1024)


class StepUpVerifyRequest(GatewayBase):
    mfa_token: str = Field(..., min_length=1)
    oob_code: str = Field(..., min_length=1)


class CredentialsRequest(GatewayBase):
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=512)


# ── MFA ──────────────────────────────────────────────────────────────────

class MfaTokenRequest(GatewayBase):
    mfa_token: str = Field(..., min_length=1)


class MfaAssociateRequest(GatewayBase):
    mfa_token: str = Field(..., min_length=1)
    authenticator_type: AuthenticatorType


class MfaChallengeRequest(GatewayBase):
    mfa_token: str = Field(..., min_length=1)
    oob_code: str = Field(..., min_length=1)
    login_id: str | None = None


class MfaVerifyRequest(GatewayBase):
    mfa_token: str = Field(..., min_length=1)
    authenticator_type: AuthenticatorType = AuthenticatorType.OTP
    otp: str | None = None
    oob_code: str | None = None
    login_id: str | None = None


class MfaSendChallengeRequest(GatewayBase):
    mfa_token: str = Field(..., min_length=1)
    authenticator_type: AuthenticatorType = AuthenticatorType.OOB
    authenticator_id: str | None = None


# ── Токены ───────────────────────────────────────────────────────────────

class CodeExchangeRequest(GatewayBase):
    code: str = Field(..., min_length=1)
    redirect_uri: str = Field(..., min_length=1)


class RefreshRequest(GatewayBase):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(GatewayBase):
    refresh_token: str | None = None


class LoginRequest(GatewayBase):
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=512)


# ── Internal (операторские) ──────────────────────────────────────────────

class ProvisionRequest(GatewayBase):
    identity_provider_user_id: str = Field(..., min_length=1, examples=["auth0|abc123"])
    actor: str = Field(..., min_length=1)
    force: bool = False


class LockRequest(GatewayBase):
    lock_type: LockType
    actor: str = Field(..., min_length=1)
    reason: str | None = None
    override: bool = False


class ActorRequest(GatewayBase):
    actor: str = Field(..., min_length=1)


class ActivateRequest(GatewayBase):
    actor: str = Field(..., min_length=1)
    override: bool = False


class DeactivateRequest(GatewayBase):
    actor: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
