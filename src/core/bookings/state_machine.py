# src/core/bookings/state_machine.py
"""
Допустимые переходы статусов брони.
"""

from __future__ import annotations

from typing import Iterable

from src.common.constants import BookingStatus, TERMINAL_BOOKING_STATUSES
from src.common.exceptions import PreconditionFailedError

NON_TERMINAL_STATUSES: tuple[BookingStatus, ...] = tuple(
    status for status in BookingStatus if status not in TERMINAL_BOOKING_STATUSES
)


class BookingStateMachine:
    # Из каких статусов разрешена каждая операция
    OPERATION_SOURCES: dict[str, tuple[BookingStatus, ...]] = {
        "accept": (BookingStatus.PENDING,),
        "reject": (BookingStatus.PENDING, BookingStatus.ACCEPTED),
        "driver_cancel": (BookingStatus.ACCEPTED, BookingStatus.CONFIRMED),
        "confirm_payment": (BookingStatus.ACCEPTED,),
        "start": (BookingStatus.ACCEPTED, BookingStatus.CONFIRMED),
        "generate_otp": (BookingStatus.STARTED, BookingStatus.IN_PROGRESS),
        "complete": (BookingStatus.STARTED, BookingStatus.IN_PROGRESS),
        "delete": (BookingStatus.PENDING,),
        "cancel": NON_TERMINAL_STATUSES,
        "update": NON_TERMINAL_STATUSES,
    }

    @classmethod
    def sources(cls, operation: str) -> tuple[BookingStatus, ...]:
        return cls.OPERATION_SOURCES[operation]

    @classmethod
    def require(cls, operation: str, current: BookingStatus) -> tuple[BookingStatus, ...]:
        """
        Проверяет, что операция допустима в текущем статусе.

        Returns:
            Набор статусов-источников (для условного UPDATE)

        Raises:
            PreconditionFailedError: операция недопустима
        """
        allowed = cls.OPERATION_SOURCES[operation]
        if current not in allowed:
            raise PreconditionFailedError(
                f"Cannot {operation.replace('_', ' ')} a booking in status '{current.value}'",
                details={"status": current.value, "allowed": _values(allowed)},
            )
        return allowed


def _values(statuses: Iterable[BookingStatus]) -> list[str]:
    return [status.value for status in statuses]
