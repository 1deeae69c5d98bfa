"""
login_gateway/models/common.py — Базовые типы домена шлюза.
"""

from pydantic import BaseModel


class GatewayBase(BaseModel):
    """Базовая Pydantic-модель для схем шлюза."""

    model_config = {"str_strip_whitespace": True}
