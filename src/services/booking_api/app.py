# src/services/booking_api/app.py
"""
FastAPI приложение Booking API.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.common.constants import TypeMsg
from src.common.exceptions import (
    AppException,
    app_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from src.common.logger import log_info, log_warning
from src.config import settings
from src.infra.database import close_db, get_db, init_db
from src.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
from src.infra.redis_client import close_redis, get_redis, init_redis
from src.services.booking_api import driver_routes, pricing_routes, routes
from src.services.booking_api.dependencies import close_dependencies, init_dependencies
from src.shared.models.common import HealthStatus


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Жизненный цикл приложения.
    PostgreSQL обязателен; без Redis работает fallback-поиск, без RabbitMQ события не публикуются.
    """
    await log_info("Booking API запускается...", type_msg=TypeMsg.INFO)

    await init_db()

    try:
        await init_redis()
    except Exception as e:
        await log_warning(f"Redis недоступен, поиск водителей через БД: {e}")

    try:
        await init_event_bus()
    except Exception as e:
        await log_warning(f"RabbitMQ недоступен, события не публикуются: {e}")

    await init_dependencies()

    yield

    await close_dependencies()
    await close_event_bus()
    await close_redis()
    await close_db()
    await log_info("Booking API остановлен", type_msg=TypeMsg.INFO)


# =============================================================================
# ПРИЛОЖЕНИЕ
# =============================================================================

app = FastAPI(
    title="Booking API",
    description="Бронирование поездок: тарификация, подбор водителей, жизненный цикл брони",
    version=settings.system.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(routes.router, prefix=settings.api.API_PREFIX)
app.include_router(driver_routes.router, prefix=settings.api.API_PREFIX)
app.include_router(pricing_routes.router, prefix=settings.api.API_PREFIX)


# =============================================================================
# HEALTH CHECK
# =============================================================================

@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса и его зависимостей."""
    deps = {
        "postgres": "healthy" if await get_db().health_check() else "unhealthy",
        "redis": "healthy" if await get_redis().health_check() else "unhealthy",
        "rabbitmq": "healthy" if await get_event_bus().health_check() else "unhealthy",
    }

    if deps["postgres"] != "healthy":
        overall = "unhealthy"
    elif all(state == "healthy" for state in deps.values()):
        overall = "healthy"
    else:
        overall = "degraded"

    return HealthStatus(
        service="booking_api",
        status=overall,
        version=settings.system.VERSION,
        dependencies=deps,
    )
