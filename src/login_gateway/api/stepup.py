"""
login_gateway/api/stepup.py — Step-up авторизация (push + опрос).

Клиент повторяет /verify с backoff, пока status == "pending".
"""

from fastapi import APIRouter, Depends

from login_gateway.dependencies import get_stepup_flow, require_gateway_client
from login_gateway.models.requests import (
    CredentialsRequest,
    StepUpStartRequest,
    StepUpVerifyRequest,
)
from login_gateway.services.stepup import StepUpFlow

router = APIRouter(
    prefix="/login/stepup",
    tags=["stepup"],
    dependencies=[Depends(require_gateway_client)],
)


@router.post("/start", summary="Отправить push-запрос на подтверждение действия")
async def start(body: StepUpStartRequest, flow: StepUpFlow = Depends(get_stepup_flow)):
    return await flow.start(body.mfa_token, body.message)


@router.post("/verify", summary="Один опрос статуса push-подтверждения")
async def verify(body: StepUpVerifyRequest, flow: StepUpFlow = Depends(get_stepup_flow)):
    return await flow.verify(body.mfa_token, body.oob_code)


@router.post("/refresh-token", summary="Новый mfa_token по логину и паролю")
async def refresh_token(body: CredentialsRequest, flow: StepUpFlow = Depends(get_stepup_flow)):
    return await flow.refresh_token(body.email, body.password)
