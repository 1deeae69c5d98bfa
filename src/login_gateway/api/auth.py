"""
login_gateway/api/auth.py — Токены и вход через провайдера идентичности.

POST /api/v1/login/auth/token            — authorization code → токены
POST /api/v1/login/auth/refresh          — refresh_token → токены
POST /api/v1/login/auth/logout           — отзыв refresh_token
POST /api/v1/login/auth/login            — пароль → токены | MFA-challenge
POST /api/v1/login/auth/forgot-password  — письмо сброса от провайдера
"""

from fastapi import APIRouter, Depends

from login_gateway.dependencies import get_authentication_flow, require_gateway_client
from login_gateway.models.requests import (
    CodeExchangeRequest,
    EmailRequest,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
)
from login_gateway.services.authentication import AuthenticationFlow

router = APIRouter(
    prefix="/login/auth",
    tags=["auth"],
    dependencies=[Depends(require_gateway_client)],
)


@router.post("/token", summary="Обмен authorization code на токены")
async def token(
    body: CodeExchangeRequest, flow: AuthenticationFlow = Depends(get_authentication_flow)
):
    return await flow.exchange_code(body.code, body.redirect_uri)


@router.post("/refresh", summary="Обновить access token")
async def refresh(
    body: RefreshRequest, flow: AuthenticationFlow = Depends(get_authentication_flow)
):
    return await flow.refresh(body.refresh_token)


@router.post("/logout", summary="Выход с отзывом refresh token")
async def logout(
    body: LogoutRequest, flow: AuthenticationFlow = Depends(get_authentication_flow)
):
    return await flow.logout(body.refresh_token)


@router.post("/login", summary="Вход по логину и паролю")
async def login(body: LoginRequest, flow: AuthenticationFlow = Depends(get_authentication_flow)):
    """Если провайдер требует MFA — возвращает mfa_token и список аутентификаторов."""
    return await flow.login(body.username, body.password)


@router.post("/forgot-password", summary="Письмо сброса пароля от провайдера")
async def forgot_password(
    body: EmailRequest, flow: AuthenticationFlow = Depends(get_authentication_flow)
):
    return await flow.forgot_password(body.email)
