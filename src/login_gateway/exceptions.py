"""
═══════════════════════════════════════════════════════════════════════════════
Login Gateway — Иерархия доменных ошибок (Custom Exception Hierarchy)
═══════════════════════════════════════════════════════════════════════════════

Базовый класс ``GatewayError``. Каждое исключение несёт машиночитаемый
код ``error`` (lower_snake_case), человекочитаемое ``description`` и
HTTP-статус. Рендеринг в failure-envelope выполняется в
``login_gateway.main:gateway_error_handler``.
"""


class GatewayError(Exception):
    """
    Базовое исключение для всех ошибок шлюза.

    Атрибуты
    ────────
        error (str):        Машиночитаемый код (``invalid_token``, ``no_guardian``).
        description (str):  Описание ошибки. Передаётся клиенту в ``error_description``.
        status_code (int):  HTTP-статус ответа.
        details (dict):     Дополнительные поля envelope (``retry_after_seconds`` и т.д.).
    """

    status_code: int = 400

    def __init__(
        self,
        error: str,
        description: str = "",
        status_code: int | None = None,
        details: dict | None = None,
    ):
        self.error = error
        self.description = description
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(f"{error}: {description}" if description else error)

    def to_envelope(self) -> dict:
        """Failure-envelope: ``success=false`` + error + error_description."""
        body = {"success": False, "error": self.error}
        if self.description:
            body["error_description"] = self.description
        body.update(self.details)
        return body


class NotFoundError(GatewayError):
    """Сущность не найдена: 404 Not Found."""

    status_code = 404

    def __init__(self, error: str = "user_not_found", description: str = "User not found"):
        super().__init__(error, description)


class PreconditionError(GatewayError):
    """Шаг flow вызван не вовремя (email не подтверждён и т.п.): 400."""

    status_code = 400


class InvalidInputError(GatewayError):
    """Некорректный ввод (слабый пароль, битый код): 400."""

    status_code = 400


class AccountLockedError(GatewayError):
    """Учётная запись заблокирована: 403 Forbidden."""

    status_code = 403

    def __init__(self, description: str = "Your account is locked. Please contact support."):
        super().__init__("account_locked", description)


class AccountDeactivatedError(GatewayError):
    """Учётная запись деактивирована: 403 Forbidden."""

    status_code = 403

    def __init__(self, description: str = "This account has been deactivated."):
        super().__init__("account_deactivated", description)


class ConflictError(GatewayError):
    """Конфликт с текущим состоянием учётной записи: 409 Conflict."""

    status_code = 409

    def __init__(self, description: str, error: str = "invalid_transition"):
        super().__init__(error, description)


class AuthenticationError(GatewayError):
    """Ошибка аутентификации у identity-провайдера: 401 Unauthorized."""

    status_code = 401


class UpstreamError(GatewayError):
    """Сбой внешнего шлюза (OTP / identity provider): 500."""

    status_code = 500


class OtpRejectedError(GatewayError):
    """
    OTP-шлюз вернул неуспешный исход.

    Статус вычисляется тотальной функцией ``http_status_for`` по
    ``OtpStatus``; ``retry_after_seconds`` / ``remaining_attempts``
    переносятся в envelope.
    """

    def __init__(self, outcome):
        from login_gateway.models.otp import http_status_for

        details: dict = {}
        if outcome.retry_after_seconds is not None:
            details["retry_after_seconds"] = outcome.retry_after_seconds
        if outcome.remaining_attempts is not None:
            details["remaining_attempts"] = max(0, outcome.remaining_attempts)
        super().__init__(
            outcome.status.value,
            outcome.message,
            status_code=http_status_for(outcome.status),
            details=details,
        )
        self.outcome = outcome


__all__ = [
    "GatewayError",
    "NotFoundError",
    "PreconditionError",
    "InvalidInputError",
    "AccountLockedError",
    "AccountDeactivatedError",
    "ConflictError",
    "AuthenticationError",
    "UpstreamError",
    "OtpRejectedError",
]
