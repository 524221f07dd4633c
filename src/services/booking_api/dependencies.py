# src/services/booking_api/dependencies.py
"""
Зависимости Booking API.
HTTP-клиенты (push, маршруты) живут весь процесс; сервисы собираются на запрос.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends

from src.common.constants import TypeMsg
from src.common.logger import log_info
from src.core.bookings.repository import BookingRepository
from src.core.bookings.service import BookingService
from src.core.drivers.repository import DriverRepository
from src.core.drivers.service import DriverService
from src.core.earnings.repository import EarningsRepository
from src.core.geo.service import DirectionsService
from src.core.matching.service import GeoMatcher
from src.core.notifications.service import NotificationDispatcher
from src.core.pricing.calculator import FareCalculator
from src.infra.database import DatabaseManager, get_db
from src.infra.event_bus import EventBus, get_event_bus
from src.infra.push_client import PushClient, create_push_client
from src.infra.redis_client import RedisClient, get_redis


_push_client: Optional[PushClient] = None
_directions: Optional[DirectionsService] = None


async def init_dependencies() -> None:
    """Создаёт долгоживущие HTTP-клиенты."""
    global _push_client, _directions

    _push_client = create_push_client()
    _directions = DirectionsService()
    await log_info(
        f"Push-провайдер {'настроен' if _push_client.is_configured else 'не настроен'}, "
        f"маршруты {'настроены' if _directions.is_configured else 'не настроены'}",
        type_msg=TypeMsg.INFO,
    )


async def close_dependencies() -> None:
    global _push_client, _directions

    if _push_client is not None:
        await _push_client.close()
        _push_client = None
    if _directions is not None:
        await _directions.close()
        _directions = None


def get_database() -> DatabaseManager:
    return get_db()


def get_redis_client() -> RedisClient:
    return get_redis()


def get_bus() -> EventBus:
    return get_event_bus()


def get_fare_calculator() -> FareCalculator:
    return FareCalculator()


def get_push_client() -> Optional[PushClient]:
    return _push_client


def get_directions() -> Optional[DirectionsService]:
    return _directions


def get_geo_matcher(
    db: DatabaseManager = Depends(get_database),
    redis: RedisClient = Depends(get_redis_client),
) -> GeoMatcher:
    return GeoMatcher(redis, DriverRepository(db))


def get_booking_service(
    db: DatabaseManager = Depends(get_database),
    calculator: FareCalculator = Depends(get_fare_calculator),
    matcher: GeoMatcher = Depends(get_geo_matcher),
    event_bus: EventBus = Depends(get_bus),
    push_client: Optional[PushClient] = Depends(get_push_client),
    directions: Optional[DirectionsService] = Depends(get_directions),
) -> BookingService:
    return BookingService(
        db=db,
        bookings=BookingRepository(db),
        drivers=DriverRepository(db),
        earnings=EarningsRepository(db),
        calculator=calculator,
        matcher=matcher,
        dispatcher=NotificationDispatcher(push_client),
        event_bus=event_bus,
        directions=directions,
    )


def get_driver_service(
    db: DatabaseManager = Depends(get_database),
    redis: RedisClient = Depends(get_redis_client),
    matcher: GeoMatcher = Depends(get_geo_matcher),
    event_bus: EventBus = Depends(get_bus),
) -> DriverService:
    return DriverService(
        drivers=DriverRepository(db),
        earnings=EarningsRepository(db),
        redis=redis,
        event_bus=event_bus,
        matcher=matcher,
    )
