"""
═══════════════════════════════════════════════════════════════════════════════
Login Gateway — Зависимости FastAPI (Dependency Injection)
═══════════════════════════════════════════════════════════════════════════════

• ``require_gateway_client`` — HTTP Basic-учётка login front-end
  (``GATEWAY_CLIENT_ID`` / ``GATEWAY_CLIENT_SECRET``) на всех /login/* и
  /internal/* роутерах.
• Провайдеры шлюзов и эфемерных хранилищ — singletons на процесс.
• Провайдеры flow'ов — собираются из них; в тестах подменяются через
  ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
import secrets
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from login_gateway.adapters.auth0_client import Auth0IdentityGateway
from login_gateway.adapters.identity_gateway import IdentityGateway
from login_gateway.adapters.otp_gateway import (
    InMemoryOtpGateway,
    OtpVerificationGateway,
    webhook_delivery,
)
from login_gateway.config import get_settings
from login_gateway.services.accounts import AccountAdministration
from login_gateway.services.authentication import AuthenticationFlow
from login_gateway.services.guardian_reset import GuardianResetFlow
from login_gateway.services.mfa_enrollment import MfaEnrollmentFlow
from login_gateway.services.onboarding import OnboardingFlow
from login_gateway.services.passkey_fallback import PasskeyFallbackFlow
from login_gateway.services.password_reset import PasswordResetFlow
from login_gateway.services.reset_tokens import ResetTokenStore
from login_gateway.services.stepup import PushOutcomeCache, StepUpFlow

logger = logging.getLogger(__name__)

_basic = HTTPBasic(auto_error=False)


async def require_gateway_client(
    credentials: HTTPBasicCredentials | None = Depends(_basic),
) -> str:
    """
    Проверяет Basic-учётку login front-end.

    Сравнение за постоянное время. Raises HTTPException(401) при
    отсутствии или несовпадении учётных данных.
    """
    settings = get_settings()
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Client credentials are required",
            headers={"WWW-Authenticate": "Basic"},
        )
    id_ok = secrets.compare_digest(
        credentials.username.encode(), settings.gateway_client_id.encode()
    )
    secret_ok = secrets.compare_digest(
        credentials.password.encode(), settings.gateway_client_secret.encode()
    )
    if not (id_ok and secret_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid client credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


# ═══════════════════════════════════════════════════════════════════════════════
# Шлюзы и хранилища (singletons)
# ═══════════════════════════════════════════════════════════════════════════════

@lru_cache
def get_otp_gateway() -> OtpVerificationGateway:
    """
    OTP-шлюз процесса.

    Коды уходят на ``OTP_DELIVERY_URL``. Без него в production send
    отвечает SEND_FAILED; вне production код пишется в лог.
    """
    settings = get_settings()
    delivery = None
    if settings.otp_delivery_url:
        delivery = webhook_delivery(
            settings.otp_delivery_url, timeout=settings.otp_delivery_timeout_seconds
        )
    elif settings.is_production:
        logger.error("OTP_DELIVERY_URL is not set, OTP sends will fail")
    return InMemoryOtpGateway(
        expiration_seconds=settings.otp_expiration_seconds,
        max_attempts=settings.otp_max_attempts,
        rate_limit_window_seconds=settings.otp_rate_limit_window_seconds,
        rate_limit_max_requests=settings.otp_rate_limit_max_requests,
        delivery=delivery,
        log_codes=not settings.is_production,
        max_records=settings.otp_max_records,
    )


@lru_cache
def get_identity_gateway() -> IdentityGateway:
    return Auth0IdentityGateway(get_settings())


@lru_cache
def get_reset_token_store() -> ResetTokenStore:
    settings = get_settings()
    return ResetTokenStore(
        purpose="password_reset",
        ttl_seconds=settings.reset_token_ttl_minutes * 60,
        max_records=settings.reset_token_max_records,
    )


@lru_cache
def get_passkey_marker_store() -> ResetTokenStore:
    settings = get_settings()
    return ResetTokenStore(
        purpose="passkey_fallback",
        ttl_seconds=settings.passkey_fallback_ttl_seconds,
        max_records=settings.reset_token_max_records,
    )


@lru_cache
def get_push_outcome_cache() -> PushOutcomeCache:
    return PushOutcomeCache(ttl_seconds=get_settings().stepup_outcome_ttl_seconds)


# ═══════════════════════════════════════════════════════════════════════════════
# Flow'ы
# ═══════════════════════════════════════════════════════════════════════════════

def get_onboarding_flow(
    otp: OtpVerificationGateway = Depends(get_otp_gateway),
    identity: IdentityGateway = Depends(get_identity_gateway),
) -> OnboardingFlow:
    return OnboardingFlow(
        otp, identity, password_min_length=get_settings().password_min_length
    )


def get_password_reset_flow(
    otp: OtpVerificationGateway = Depends(get_otp_gateway),
    identity: IdentityGateway = Depends(get_identity_gateway),
    tokens: ResetTokenStore = Depends(get_reset_token_store),
) -> PasswordResetFlow:
    settings = get_settings()
    return PasswordResetFlow(
        otp,
        identity,
        tokens,
        otp_expiration_seconds=settings.otp_expiration_seconds,
        password_min_length=settings.password_min_length,
    )


def get_guardian_reset_flow(
    otp: OtpVerificationGateway = Depends(get_otp_gateway),
    identity: IdentityGateway = Depends(get_identity_gateway),
) -> GuardianResetFlow:
    return GuardianResetFlow(otp, identity)


def get_passkey_fallback_flow(
    otp: OtpVerificationGateway = Depends(get_otp_gateway),
    markers: ResetTokenStore = Depends(get_passkey_marker_store),
) -> PasskeyFallbackFlow:
    return PasskeyFallbackFlow(otp, markers)


def get_stepup_flow(
    identity: IdentityGateway = Depends(get_identity_gateway),
    outcomes: PushOutcomeCache = Depends(get_push_outcome_cache),
) -> StepUpFlow:
    return StepUpFlow(identity, outcomes)


def get_mfa_flow(
    identity: IdentityGateway = Depends(get_identity_gateway),
) -> MfaEnrollmentFlow:
    return MfaEnrollmentFlow(identity)


def get_authentication_flow(
    identity: IdentityGateway = Depends(get_identity_gateway),
) -> AuthenticationFlow:
    return AuthenticationFlow(identity)


def get_account_administration() -> AccountAdministration:
    return AccountAdministration()
