"""
═══════════════════════════════════════════════════════════════════════════════
Login Gateway — Главная точка входа микросервиса (Application Entry Point)
═══════════════════════════════════════════════════════════════════════════════

Фабрика приложения (Application Factory Pattern): login-роутеры
(FTR, сброс пароля, Guardian, passkey fallback, step-up, MFA, токены),
операторские /internal/users и единый конверт ошибок
``{"success": false, "error": ..., "error_description": ...}``.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from login_gateway import __version__
from login_gateway.config import get_settings
from login_gateway.database import close_pool, get_pool, is_pool_ready
from login_gateway.exceptions import GatewayError
from login_gateway.services.audit_logger import get_audit_logger

from login_gateway.api.auth import router as auth_router
from login_gateway.api.ftr import router as ftr_router
from login_gateway.api.guardian_reset import router as guardian_router
from login_gateway.api.health import router as health_router
from login_gateway.api.internal import router as internal_router
from login_gateway.api.mfa import router as mfa_router
from login_gateway.api.passkey_fallback import router as passkey_router
from login_gateway.api.password_reset import router as password_router
from login_gateway.api.stepup import router as stepup_router

# ═══════════════════════════════════════════════════════════════════════════════
# Настройка логирования
# ═══════════════════════════════════════════════════════════════════════════════
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Автоматическое применение SQL-миграций
# ═══════════════════════════════════════════════════════════════════════════════

async def _apply_migrations(pool) -> None:
    """Применяет SQL-миграции из ``login_gateway/db/migrations/``."""
    migrations_dir = Path(__file__).parent / "db" / "migrations"
    sql_files = sorted(migrations_dir.glob("*.sql")) if migrations_dir.is_dir() else []
    if not sql_files:
        logger.info("No SQL migration files found, skipping")
        return

    async with pool.acquire() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS _applied_migrations (
                filename TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ DEFAULT NOW()
            )
        """)

        rows = await conn.fetch("SELECT filename FROM _applied_migrations")
        applied = {row["filename"] for row in rows}

        for sql_file in sql_files:
            if sql_file.name in applied:
                continue

            logger.info("📄 Applying migration: %s", sql_file.name)
            async with conn.transaction():
                await conn.execute(sql_file.read_text(encoding="utf-8"))
                await conn.execute(
                    "INSERT INTO _applied_migrations (filename) VALUES ($1)",
                    sql_file.name,
                )
            logger.info("✅ Migration applied: %s", sql_file.name)

    logger.info("✅ Login migrations up to date (%d files checked)", len(sql_files))


# ═══════════════════════════════════════════════════════════════════════════════
# Lifespan: управление жизненным циклом
# ═══════════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
        1. Пул соединений к PostgreSQL; при недоступности — memory store.
        2. Миграции.
        3. NATS publisher.

    Shutdown:
        HTTP-клиент провайдера → NATS → пул БД.
    """
    settings = get_settings()
    logger.info("🚀 Login Gateway v%s starting (%s)...", __version__, settings.app_env)

    pool = None
    try:
        pool = await get_pool()
        logger.info("✅ Login database pool initialized")
    except Exception as e:
        logger.warning("⚠️  Login DB not available, activating memory store: %s", e)
        from login_gateway.memory_store import activate_memory_store
        activate_memory_store()

    if pool is not None:
        try:
            await _apply_migrations(pool)
        except Exception as e:
            logger.warning("⚠️  Migration apply failed (non-fatal): %s", e)
        await get_audit_logger().flush_buffer()

    from login_gateway.events import connect as nats_connect
    await nats_connect()

    yield

    from login_gateway.dependencies import get_identity_gateway
    if get_identity_gateway.cache_info().currsize:
        await get_identity_gateway().aclose()

    from login_gateway.events import disconnect as nats_disconnect
    try:
        await nats_disconnect()
    except Exception as e:
        logger.warning("NATS disconnect failed: %s", e)
    if is_pool_ready():
        await get_audit_logger().flush_buffer()
    await close_pool()
    logger.info("🛑 Login Gateway stopped")


# ═══════════════════════════════════════════════════════════════════════════════
# Фабрика приложения
# ═══════════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """Создаёт и конфигурирует Login Gateway FastAPI-приложение."""
    settings = get_settings()

    _is_production = settings.app_env == "production"

    app = FastAPI(
        redirect_slashes=False,
        title="Login Gateway",
        description=(
            "Login front-end gateway: first-time registration, OTP-gated "
            "password reset, Guardian reset, passkey fallback, push step-up "
            "and MFA enrollment on top of the identity provider."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url=None if _is_production else "/docs",
        redoc_url=None if _is_production else "/redoc",
        openapi_url=None if _is_production else "/api/v1/openapi.json",
    )

    # ── CORS middleware ──────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    )

    # ── Подключение API-роутеров ─────────────────────────────────────────
    v1_router = APIRouter(prefix="/api/v1")
    for router in (
        ftr_router,
        password_router,
        guardian_router,
        passkey_router,
        stepup_router,
        mfa_router,
        auth_router,
        internal_router,
        health_router,
    ):
        v1_router.include_router(router)
    app.include_router(v1_router)

    # ── Конверт ошибок ───────────────────────────────────────────────────
    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s → %s: %s", request.method, request.url.path, exc.error, exc.description)
        return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ())[1:])
        message = first.get("msg", "Invalid request")
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "invalid_request",
                "error_description": f"{field}: {message}" if field else message,
            },
        )

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
        error = "unauthorized" if exc.status_code == 401 else "http_error"
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": error, "error_description": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    # ── Корневой эндпоинт ────────────────────────────────────────────────
    @app.get("/")
    async def root():
        return {
            "name": "Login Gateway",
            "version": __version__,
            "docs": None if _is_production else "/docs",
            "api": {
                "v1": {
                    "health": "/api/v1/health",
                    "ftr": "/api/v1/login/ftr/check",
                    "password_reset": "/api/v1/login/password/reset-request",
                    "stepup": "/api/v1/login/stepup/start",
                    "internal": "/api/v1/internal/users",
                },
            },
        }

    return app


# ═══════════════════════════════════════════════════════════════════════════════
# Module-level singleton
# ═══════════════════════════════════════════════════════════════════════════════
app = create_app()


def main() -> None:
    """Запускает Login Gateway через Uvicorn."""
    settings = get_settings()
    logger.info("Starting Login Gateway on %s:%s", settings.api_host, settings.api_port)
    uvicorn.run(
        "login_gateway.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
