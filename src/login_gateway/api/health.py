"""
login_gateway/api/health.py — Health check эндпоинт.

GET /api/v1/health — доступность PostgreSQL и NATS.
"""

from fastapi import APIRouter

from login_gateway import events
from login_gateway.database import check_connection

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check Login Gateway")
async def health():
    """При недоступной БД сервис работает на in-memory хранилище (degraded)."""
    db_ok = await check_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "events": "connected" if events.is_connected() else "disconnected",
        "service": "login-gateway",
    }
