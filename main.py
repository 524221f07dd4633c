#!/usr/bin/env python3
# main.py
"""
Точка входа Booking API.
Инфраструктура (PostgreSQL, Redis, RabbitMQ) поднимается в lifespan приложения.
"""

from __future__ import annotations

import asyncio
import sys

import uvicorn

from src.common.constants import TypeMsg
from src.common.logger import log_info, setup_logging
from src.config import settings


async def run_api() -> None:
    """Запускает Booking API через uvicorn."""
    await log_info(
        f"Запуск Booking API на {settings.api.API_HOST}:{settings.api.API_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.services.booking_api.app:app",
        host=settings.api.API_HOST,
        port=settings.api.API_PORT,
        reload=settings.system.DEBUG,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Booking API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


def print_usage() -> None:
    print("""
Использование: python main.py

Переменные окружения:
    DB_PASSWORD, REDIS_PASSWORD, RABBITMQ_PASSWORD
    GOOGLE_MAPS_API_KEY      провайдер маршрутов (опционально)
    PUSH_ACCESS_TOKEN        push-шлюз (опционально)

Настройки читаются из config/config.json и .env
    """)


async def main() -> None:
    setup_logging()
    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION} ({settings.system.ENVIRONMENT})",
        type_msg=TypeMsg.INFO,
    )
    await run_api()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1].lower() in ("--help", "-h"):
        print_usage()
        sys.exit(0)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
