"""
login_gateway/api/ftr.py — First-Time Registration (FTR).

POST /api/v1/login/ftr/check | send-otp | verify-otp | set-password | complete
GET  /api/v1/login/ftr/status/{login_id}
"""

from fastapi import APIRouter, Depends

from login_gateway.dependencies import get_onboarding_flow, require_gateway_client
from login_gateway.models.requests import (
    CompleteRequest,
    LoginIdRequest,
    OtpCodeRequest,
    SetPasswordRequest,
)
from login_gateway.services.onboarding import OnboardingFlow

router = APIRouter(
    prefix="/login/ftr",
    tags=["ftr"],
    dependencies=[Depends(require_gateway_client)],
)


@router.post("/check", summary="Флаги онбординга и оставшиеся шаги")
async def check(body: LoginIdRequest, flow: OnboardingFlow = Depends(get_onboarding_flow)):
    return await flow.check(body.login_id)


@router.get("/status/{login_id}", summary="Краткий статус FTR")
async def ftr_status(login_id: str, flow: OnboardingFlow = Depends(get_onboarding_flow)):
    return await flow.status(login_id)


@router.post("/send-otp", summary="Отправить код подтверждения email")
async def send_otp(body: LoginIdRequest, flow: OnboardingFlow = Depends(get_onboarding_flow)):
    return await flow.send_verification_otp(body.login_id)


@router.post("/verify-otp", summary="Подтвердить email кодом")
async def verify_otp(body: OtpCodeRequest, flow: OnboardingFlow = Depends(get_onboarding_flow)):
    return await flow.verify_otp(body.login_id, body.code)


@router.post("/set-password", summary="Установить первый пароль")
async def set_password(
    body: SetPasswordRequest, flow: OnboardingFlow = Depends(get_onboarding_flow)
):
    return await flow.set_password(body.login_id, body.password)


@router.post("/complete", summary="Завершить онбординг и активировать учётную запись")
async def complete(body: CompleteRequest, flow: OnboardingFlow = Depends(get_onboarding_flow)):
    return await flow.complete(body.login_id, body.mfa_enrolled)
