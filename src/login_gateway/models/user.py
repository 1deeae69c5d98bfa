"""
login_gateway/models/user.py — Учётная запись пользователя и её автомат состояний.

UserAccount — единственная сущность, которую мутируют flow'ы.
Все переходы — охраняемые мутации: недопустимый переход поднимает
ConflictError / PreconditionError, а не молча игнорируется.

Инварианты:
    • ACTIVE достижим только при трёх флагах прогресса или через
      административный override.
    • lock_type ≠ NONE ⇔ status = LOCKED.
    • unlock возвращает ACTIVE, если запись была ACTIVE до блокировки
      (в том числе после override); иначе статус выводится из флагов.
    • identity_provider_user_id после установки не перезаписывается
      (только явный ``reprovision``).
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import EmailStr, Field

from login_gateway.exceptions import ConflictError, InvalidInputError, PreconditionError
from login_gateway.models.common import GatewayBase
from login_gateway.models.enums import (
    IdentityProviderKind,
    LockType,
    OnboardingStep,
    Role,
    UserStatus,
    UserType,
)

_now = lambda: datetime.now(timezone.utc)  # noqa: E731


class UserAccount(GatewayBase):
    """Учётная запись, через которую проходят все flow'ы."""

    user_id: UUID = Field(default_factory=uuid4)
    login_id: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    first_name: str | None = None
    last_name: str | None = None
    user_type: UserType = UserType.INDIRECT_USER
    identity_provider: IdentityProviderKind = IdentityProviderKind.AUTH0
    identity_provider_user_id: str | None = None
    roles: set[Role] = Field(default_factory=lambda: {Role.READER})

    email_verified: bool = False
    password_set: bool = False
    mfa_enrolled: bool = False
    passkey_enrolled: bool = False

    status: UserStatus = UserStatus.PENDING_VERIFICATION
    lock_type: LockType = LockType.NONE
    lock_reason: str | None = None
    locked_by: str | None = None
    status_before_lock: UserStatus | None = None
    deactivation_reason: str | None = None

    created_at: datetime = Field(default_factory=_now)
    created_by: str = "system"
    updated_at: datetime = Field(default_factory=_now)

    # ── Производные свойства ─────────────────────────────────────────────

    @property
    def display_name(self) -> str | None:
        """Имя для письма с кодом: "Имя Фамилия", одно из них или None."""
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else None

    @property
    def is_provisioned(self) -> bool:
        return self.identity_provider_user_id is not None

    @property
    def onboarding_complete(self) -> bool:
        return self.email_verified and self.password_set and self.mfa_enrolled

    @property
    def onboarding_step(self) -> OnboardingStep:
        if not self.email_verified:
            return OnboardingStep.NEEDS_EMAIL_VERIFICATION
        if not self.password_set:
            return OnboardingStep.NEEDS_PASSWORD
        if not self.mfa_enrolled:
            return OnboardingStep.NEEDS_MFA
        return OnboardingStep.COMPLETE

    # ── Флаги прогресса ──────────────────────────────────────────────────

    def mark_email_verified(self) -> None:
        self._ensure_not_deactivated()
        self.email_verified = True
        self._touch()

    def set_password_established(self) -> None:
        self._ensure_not_deactivated()
        self.password_set = True
        self._touch()

    def mark_mfa_enrolled(self) -> None:
        self._ensure_not_deactivated()
        self.mfa_enrolled = True
        self._touch()

    def mark_passkey_enrolled(self) -> None:
        self._ensure_not_deactivated()
        self.passkey_enrolled = True
        self._touch()

    # ── Identity provider ────────────────────────────────────────────────

    def mark_provisioned(self, identity_provider_user_id: str) -> None:
        """Привязка к пользователю у провайдера. Повторная привязка — конфликт."""
        self._ensure_not_deactivated()
        if self.identity_provider_user_id == identity_provider_user_id:
            return
        if self.identity_provider_user_id is not None:
            raise ConflictError(
                "Account is already provisioned; use reprovision to rebind",
                error="already_provisioned",
            )
        self.identity_provider_user_id = identity_provider_user_id
        self._touch()

    def reprovision(self, identity_provider_user_id: str, actor: str) -> None:
        """Явная перепривязка к новому пользователю провайдера."""
        self._ensure_not_deactivated()
        if not actor:
            raise InvalidInputError("invalid_request", "Reprovisioning requires an actor")
        self.identity_provider_user_id = identity_provider_user_id
        self._touch()

    # ── Жизненный цикл ───────────────────────────────────────────────────

    def activate(self, override: bool = False, actor: str | None = None) -> None:
        """
        Перевод в ACTIVE.

        Идемпотентен, если все три флага выставлены. Без override при
        любом невыставленном флаге — PreconditionError. LOCKED активировать
        нельзя (сначала unlock); DEACTIVATED — только через override.
        """
        if self.status is UserStatus.LOCKED:
            raise ConflictError("Cannot activate a locked account. Unlock first.")
        if self.status is UserStatus.DEACTIVATED and not override:
            raise ConflictError("Account is deactivated", error="account_deactivated")
        if not override and not self.onboarding_complete:
            missing = [
                name
                for name, done in (
                    ("email_verified", self.email_verified),
                    ("password_set", self.password_set),
                    ("mfa_enrolled", self.mfa_enrolled),
                )
                if not done
            ]
            raise PreconditionError(
                "onboarding_incomplete",
                f"Cannot activate account: {', '.join(missing)} not complete",
            )
        if self.status is UserStatus.ACTIVE:
            return
        self.status = UserStatus.ACTIVE
        self.deactivation_reason = None
        self._touch()

    def lock(
        self,
        lock_type: LockType,
        actor: str,
        reason: str | None = None,
        override: bool = False,
    ) -> None:
        """Блокировка. Смена типа уже стоящей блокировки — только с override."""
        self._ensure_not_deactivated()
        if lock_type is LockType.NONE:
            raise InvalidInputError("invalid_lock_type", "Lock type NONE is not a lock")
        if self.status is UserStatus.LOCKED:
            if self.lock_type is lock_type:
                return
            if not override:
                raise ConflictError(
                    f"Account is already locked ({self.lock_type.value})",
                    error="already_locked",
                )
        else:
            self.status_before_lock = self.status
        self.status = UserStatus.LOCKED
        self.lock_type = lock_type
        self.lock_reason = reason
        self.locked_by = actor
        self._touch()

    def unlock(self, actor: str) -> None:
        """Снятие блокировки. На незаблокированной записи — конфликт."""
        if self.status is not UserStatus.LOCKED:
            raise ConflictError("Account is not locked", error="not_locked")
        was_active = self.status_before_lock is UserStatus.ACTIVE
        self.status = (
            UserStatus.ACTIVE
            if was_active or self.onboarding_complete
            else UserStatus.PENDING_VERIFICATION
        )
        self.status_before_lock = None
        self.lock_type = LockType.NONE
        self.lock_reason = None
        self.locked_by = actor
        self._touch()

    def deactivate(self, reason: str, actor: str | None = None) -> None:
        if self.status is UserStatus.DEACTIVATED:
            return
        self.status = UserStatus.DEACTIVATED
        self.lock_type = LockType.NONE
        self.lock_reason = None
        self.status_before_lock = None
        self.deactivation_reason = reason
        self._touch()

    # ── Внутреннее ───────────────────────────────────────────────────────

    def _ensure_not_deactivated(self) -> None:
        if self.status is UserStatus.DEACTIVATED:
            raise ConflictError("Account is deactivated", error="account_deactivated")

    def _touch(self) -> None:
        self.updated_at = _now()


class UserCreate(GatewayBase):
    """Схема для заведения учётной записи оператором."""
    login_id: str = Field(..., min_length=1, max_length=255, examples=["jdoe"])
    email: EmailStr = Field(..., examples=["john@example.com"])
    first_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    user_type: UserType = UserType.INDIRECT_USER
    identity_provider: IdentityProviderKind = IdentityProviderKind.AUTH0
    roles: set[Role] = Field(default_factory=lambda: {Role.READER}, min_length=1)
    created_by: str = Field(default="system")


class UserRead(GatewayBase):
    """Схема для возврата данных учётной записи."""
    user_id: UUID
    login_id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    identity_provider_user_id: str | None = None
    roles: list[Role] = Field(default_factory=list)
    email_verified: bool
    password_set: bool
    mfa_enrolled: bool
    passkey_enrolled: bool
    status: UserStatus
    lock_type: LockType
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_account(cls, account: UserAccount) -> "UserRead":
        data = account.model_dump()
        data["roles"] = sorted(account.roles, key=lambda r: r.value)
        return cls.model_validate(data)
