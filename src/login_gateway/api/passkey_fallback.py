"""
login_gateway/api/passkey_fallback.py — Вход по паролю при потере passkey.
"""

from fastapi import APIRouter, Depends

from login_gateway.dependencies import get_passkey_fallback_flow, require_gateway_client
from login_gateway.models.requests import EmailOtpRequest, EmailRequest, FallbackRedeemRequest
from login_gateway.services.passkey_fallback import PasskeyFallbackFlow

router = APIRouter(
    prefix="/login/passkey-fallback",
    tags=["passkey-fallback"],
    dependencies=[Depends(require_gateway_client)],
)


@router.post("/send-otp", summary="Отправить код passkey fallback")
async def send_otp(
    body: EmailRequest, flow: PasskeyFallbackFlow = Depends(get_passkey_fallback_flow)
):
    return await flow.send_otp(body.email)


@router.post("/verify-otp", summary="Проверить код → fallback_token")
async def verify_otp(
    body: EmailOtpRequest, flow: PasskeyFallbackFlow = Depends(get_passkey_fallback_flow)
):
    return await flow.verify_otp(body.email, body.code)


@router.post("/redeem", summary="Погасить fallback_token при входе по паролю")
async def redeem(
    body: FallbackRedeemRequest, flow: PasskeyFallbackFlow = Depends(get_passkey_fallback_flow)
):
    return await flow.redeem(body.email, body.fallback_token)
