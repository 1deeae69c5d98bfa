"""
login_gateway — шлюз аутентификации банковской платформы.

Оркестрация онбординга (FTR), сброса пароля, сброса Guardian,
passkey fallback, step-up авторизации и MFA-регистрации поверх
внешнего OTP-шлюза и identity-провайдера (Auth0).
"""

__version__ = "0.4.0"
