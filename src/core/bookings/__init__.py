# src/core/bookings/__init__.py
"""
Домен бронирований: модели, репозиторий, машина состояний и сервис.
"""

from src.core.bookings.models import (
    Booking,
    BookingCreate,
    BookingScheduleUpdate,
    BookingStatusPatch,
    BookingStopsUpdate,
)
from src.core.bookings.repository import BookingRepository
from src.core.bookings.state_machine import BookingStateMachine
from src.core.bookings.service import BookingService
from src.core.bookings.legacy import map_legacy_booking

__all__ = [
    "Booking",
    "BookingCreate",
    "BookingScheduleUpdate",
    "BookingStatusPatch",
    "BookingStopsUpdate",
    "BookingRepository",
    "BookingStateMachine",
    "BookingService",
    "map_legacy_booking",
]
