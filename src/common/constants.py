# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class BookingStatus(str, Enum):
    """Статусы бронирования."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingType(str, Enum):
    """Тип бронирования (дискриминант варианта)."""
    RIDE = "ride"
    AIRPORT = "airport"
    RENTAL = "rental"
    RESORT = "resort"
    PACKAGE = "package"


class TripClass(str, Enum):
    """Класс поездки."""
    CITY = "city"
    OUTSTATION = "outstation"


class VehicleClass(str, Enum):
    """Класс автомобиля для тарификации."""
    SEDAN = "sedan"
    SUV = "suv"
    LUXURY = "luxury"


class DriverStatus(str, Enum):
    """Статусы водителя."""
    PENDING_VERIFICATION = "pending_verification"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVE = "active"
    INACTIVE = "inactive"
    BUSY = "busy"
    OFFLINE = "offline"
    SUSPENDED = "suspended"


class PaymentStatus(str, Enum):
    """Статусы оплаты."""
    PENDING = "pending"
    PROCESSING = "processing"
    PARTIAL = "partial"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """Способы оплаты."""
    CASH = "cash"
    UPI = "upi"
    CARD = "card"


class EarningType(str, Enum):
    """Типы записей в журнале заработка водителя."""
    ADVANCE_PAYMENT = "advance_payment"
    TRIP_COMPLETION = "trip_completion"
    BONUS = "bonus"
    PENALTY = "penalty"


class EarningStatus(str, Enum):
    """Статусы записей журнала заработка."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CancelledBy(str, Enum):
    """Инициатор отмены."""
    USER = "user"
    DRIVER = "driver"
    ADMIN = "admin"


# Статусы, в которых водитель считается занятым поездкой
ACTIVE_DRIVER_BOOKING_STATUSES: tuple[BookingStatus, ...] = (
    BookingStatus.ACCEPTED,
    BookingStatus.CONFIRMED,
    BookingStatus.STARTED,
    BookingStatus.IN_PROGRESS,
)

TERMINAL_BOOKING_STATUSES: tuple[BookingStatus, ...] = (
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
)

# Водители с такими статусами не могут принимать заказы
BLOCKED_DRIVER_STATUSES: tuple[DriverStatus, ...] = (
    DriverStatus.PENDING_VERIFICATION,
    DriverStatus.REJECTED,
    DriverStatus.SUSPENDED,
)

DRIVERS_GEO_KEY = "drivers:locations"
