"""
login_gateway/api/guardian_reset.py — Сброс Guardian (push MFA) по OTP.
"""

from fastapi import APIRouter, Depends

from login_gateway.dependencies import get_guardian_reset_flow, require_gateway_client
from login_gateway.models.requests import EmailOtpRequest, EmailRequest
from login_gateway.services.guardian_reset import GuardianResetFlow

router = APIRouter(
    prefix="/login/mfa/reset-guardian",
    tags=["guardian-reset"],
    dependencies=[Depends(require_gateway_client)],
)


@router.post("/send-otp", summary="Отправить код для сброса Guardian")
async def send_otp(body: EmailRequest, flow: GuardianResetFlow = Depends(get_guardian_reset_flow)):
    return await flow.send_otp(body.email)


@router.post("/verify-otp", summary="Проверить код и удалить push-аутентификаторы")
async def verify_otp(
    body: EmailOtpRequest, flow: GuardianResetFlow = Depends(get_guardian_reset_flow)
):
    return await flow.verify_otp_and_reset(body.email, body.code)
