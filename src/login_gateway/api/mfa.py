"""
login_gateway/api/mfa.py — Регистрация и проверка MFA (по mfa_token).
"""

from fastapi import APIRouter, Depends

from login_gateway.dependencies import get_mfa_flow, require_gateway_client
from login_gateway.models.requests import (
    MfaAssociateRequest,
    MfaChallengeRequest,
    MfaSendChallengeRequest,
    MfaTokenRequest,
    MfaVerifyRequest,
)
from login_gateway.services.mfa_enrollment import MfaEnrollmentFlow

router = APIRouter(
    prefix="/login/mfa",
    tags=["mfa"],
    dependencies=[Depends(require_gateway_client)],
)


@router.post("/enrollments", summary="Список аутентификаторов")
async def enrollments(body: MfaTokenRequest, flow: MfaEnrollmentFlow = Depends(get_mfa_flow)):
    return await flow.list_enrollments(body.mfa_token)


@router.post("/associate", summary="Начать регистрацию аутентификатора (otp | oob)")
async def associate(body: MfaAssociateRequest, flow: MfaEnrollmentFlow = Depends(get_mfa_flow)):
    return await flow.associate(body.mfa_token, body.authenticator_type)


@router.post("/challenge", summary="Опрос push во время регистрации")
async def challenge(body: MfaChallengeRequest, flow: MfaEnrollmentFlow = Depends(get_mfa_flow)):
    return await flow.challenge(body.mfa_token, body.oob_code, body.login_id)


@router.post("/verify", summary="Подтвердить регистрацию (TOTP-код или push)")
async def verify(body: MfaVerifyRequest, flow: MfaEnrollmentFlow = Depends(get_mfa_flow)):
    return await flow.verify(
        body.mfa_token, body.authenticator_type, body.otp, body.oob_code, body.login_id
    )


@router.post("/send-challenge", summary="Отправить MFA-challenge при входе")
async def send_challenge(
    body: MfaSendChallengeRequest, flow: MfaEnrollmentFlow = Depends(get_mfa_flow)
):
    return await flow.send_challenge(body.mfa_token, body.authenticator_type, body.authenticator_id)


@router.post("/verify-challenge", summary="Проверить MFA-challenge при входе")
async def verify_challenge(
    body: MfaVerifyRequest, flow: MfaEnrollmentFlow = Depends(get_mfa_flow)
):
    return await flow.verify_challenge(
        body.mfa_token, body.authenticator_type, body.otp, body.oob_code, body.login_id
    )
