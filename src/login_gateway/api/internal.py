"""
login_gateway/api/internal.py — Операторские эндпоинты учётных записей.

Используются административными инструментами: заведение записи,
привязка к провайдеру, lock / unlock / activate / deactivate.
Защищены той же Basic-учёткой, что и /login/*.
"""

from fastapi import APIRouter, Depends, status

from login_gateway.dependencies import get_account_administration, require_gateway_client
from login_gateway.models.requests import (
    ActivateRequest,
    ActorRequest,
    DeactivateRequest,
    LockRequest,
    ProvisionRequest,
)
from login_gateway.models.user import UserCreate, UserRead
from login_gateway.services.accounts import AccountAdministration

router = APIRouter(
    prefix="/internal/users",
    tags=["internal"],
    dependencies=[Depends(require_gateway_client)],
)


@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="[Internal] Завести учётную запись",
)
async def create_user(
    body: UserCreate, admin: AccountAdministration = Depends(get_account_administration)
):
    return await admin.create_account(body)


@router.get("/{login_id}", response_model=UserRead, summary="[Internal] Учётная запись по login id")
async def get_user(
    login_id: str, admin: AccountAdministration = Depends(get_account_administration)
):
    return await admin.get_account(login_id)


@router.post(
    "/{login_id}/provision",
    response_model=UserRead,
    summary="[Internal] Привязать к пользователю провайдера",
)
async def provision_user(
    login_id: str,
    body: ProvisionRequest,
    admin: AccountAdministration = Depends(get_account_administration),
):
    return await admin.provision(
        login_id, body.identity_provider_user_id, body.actor, force=body.force
    )


@router.post("/{login_id}/lock", response_model=UserRead, summary="[Internal] Заблокировать")
async def lock_user(
    login_id: str,
    body: LockRequest,
    admin: AccountAdministration = Depends(get_account_administration),
):
    return await admin.lock(
        login_id, body.lock_type, body.actor, reason=body.reason, override=body.override
    )


@router.post("/{login_id}/unlock", response_model=UserRead, summary="[Internal] Разблокировать")
async def unlock_user(
    login_id: str,
    body: ActorRequest,
    admin: AccountAdministration = Depends(get_account_administration),
):
    return await admin.unlock(login_id, body.actor)


@router.post("/{login_id}/activate", response_model=UserRead, summary="[Internal] Активировать")
async def activate_user(
    login_id: str,
    body: ActivateRequest,
    admin: AccountAdministration = Depends(get_account_administration),
):
    """``override`` — активация без завершённого онбординга."""
    return await admin.activate(login_id, body.actor, override=body.override)


@router.post("/{login_id}/deactivate", response_model=UserRead, summary="[Internal] Деактивировать")
async def deactivate_user(
    login_id: str,
    body: DeactivateRequest,
    admin: AccountAdministration = Depends(get_account_administration),
):
    return await admin.deactivate(login_id, body.reason, body.actor)
