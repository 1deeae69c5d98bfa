"""
login_gateway/api/password_reset.py — Сброс пароля по OTP.

Ответ reset-request / resend-otp одинаков для неизвестного, деактивированного
и обычного пользователя.
"""

from fastapi import APIRouter, Depends

from login_gateway.dependencies import get_password_reset_flow, require_gateway_client
from login_gateway.models.requests import LoginIdRequest, OtpCodeRequest, ResetPasswordRequest
from login_gateway.services.password_reset import PasswordResetFlow

router = APIRouter(
    prefix="/login/password",
    tags=["password-reset"],
    dependencies=[Depends(require_gateway_client)],
)


@router.post("/reset-request", summary="Запросить код сброса пароля")
async def reset_request(
    body: LoginIdRequest, flow: PasswordResetFlow = Depends(get_password_reset_flow)
):
    return await flow.request_reset(body.login_id)


@router.post("/resend-otp", summary="Повторно отправить код сброса")
async def resend_otp(
    body: LoginIdRequest, flow: PasswordResetFlow = Depends(get_password_reset_flow)
):
    return await flow.resend_otp(body.login_id)


@router.post("/verify-otp", summary="Проверить код → одноразовый reset_token")
async def verify_otp(
    body: OtpCodeRequest, flow: PasswordResetFlow = Depends(get_password_reset_flow)
):
    return await flow.verify_otp(body.login_id, body.code)


@router.post("/reset", summary="Установить новый пароль по reset_token")
async def reset(
    body: ResetPasswordRequest, flow: PasswordResetFlow = Depends(get_password_reset_flow)
):
    return await flow.reset_password(body.login_id, body.reset_token, body.password)
