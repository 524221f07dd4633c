# src/core/bookings/repository.py
"""
Репозиторий бронирований.

Все изменения статуса выполняются условным UPDATE (compare-and-swap)
по ожидаемому набору статусов: None означает, что бронь уже ушла
из этого набора или не существует.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Optional, Sequence
from uuid import UUID

from asyncpg import Connection
from pydantic import BaseModel

from src.common.constants import ACTIVE_DRIVER_BOOKING_STATUSES, BookingStatus
from src.core.bookings.models import Booking
from src.infra.database import DatabaseManager, Executor

# Колонки, которые сервис может менять через update_if_status
_UPDATABLE_COLUMNS = frozenset({
    "status",
    "driver_id",
    "driver_name",
    "vehicle_name",
    "vehicle_number",
    "stops",
    "pickup_date",
    "pickup_time",
    "return_date",
    "is_round_trip",
    "payment",
    "accepted_at",
    "started_at",
    "completed_at",
    "cancelled_at",
    "cancellation_reason",
    "cancelled_by",
    "completion_otp",
    "otp_generated_at",
})

_INSERT_COLUMNS = (
    "user_id",
    "user_name",
    "user_phone",
    "vehicle_id",
    "source",
    "destination",
    "stops",
    "trip_class",
    "booking_type",
    "details",
    "vehicle_class",
    "pickup_date",
    "pickup_time",
    "return_date",
    "is_round_trip",
    "distance_km",
    "duration_minutes",
    "base_price",
    "service_charge",
    "driver_amount",
    "additional_charges",
    "total_price",
    "fare_breakdown",
    "payment",
)


def _to_db(value: Any) -> Any:
    """Приводит значение к типу, который понимает asyncpg (JSONB через кодек пула)."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list) and value and isinstance(value[0], BaseModel):
        return [item.model_dump(mode="json") for item in value]
    return value


def _to_booking(row: Any) -> Booking:
    return Booking.model_validate(dict(row))


def _status_values(statuses: Iterable[BookingStatus]) -> list[str]:
    return [status.value for status in statuses]


class BookingRepository:
    """Репозиторий броней."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def _executor(self, conn: Connection | None) -> Executor:
        return conn if conn is not None else self._db

    async def create(self, values: dict[str, Any]) -> Booking:
        """Вставляет новую бронь в статусе pending."""
        placeholders = ", ".join(f"${i}" for i in range(1, len(_INSERT_COLUMNS) + 1))
        row = await self._db.fetchrow(
            f"""
            INSERT INTO bookings ({", ".join(_INSERT_COLUMNS)})
            VALUES ({placeholders})
            RETURNING *
            """,
            *(_to_db(values.get(column)) for column in _INSERT_COLUMNS),
        )
        return _to_booking(row)

    async def get_by_id(self, booking_id: UUID, conn: Connection | None = None) -> Optional[Booking]:
        row = await self._executor(conn).fetchrow("SELECT * FROM bookings WHERE id = $1", booking_id)
        return _to_booking(row) if row else None

    async def list_paginated(
        self,
        status: BookingStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Booking], int]:
        """
        Returns:
            (страница броней, общее количество)
        """
        if status is None:
            total = await self._db.fetchval("SELECT COUNT(*) FROM bookings")
            rows = await self._db.fetch(
                "SELECT * FROM bookings ORDER BY created_at DESC LIMIT $1 OFFSET $2",
                limit,
                offset,
            )
        else:
            total = await self._db.fetchval("SELECT COUNT(*) FROM bookings WHERE status = $1", status.value)
            rows = await self._db.fetch(
                "SELECT * FROM bookings WHERE status = $1 ORDER BY created_at DESC LIMIT $2 OFFSET $3",
                status.value,
                limit,
                offset,
            )
        return [_to_booking(row) for row in rows], int(total or 0)

    async def list_by_user(self, user_id: UUID) -> list[Booking]:
        rows = await self._db.fetch(
            "SELECT * FROM bookings WHERE user_id = $1 ORDER BY created_at DESC",
            user_id,
        )
        return [_to_booking(row) for row in rows]

    async def list_by_driver(self, driver_id: UUID) -> list[Booking]:
        rows = await self._db.fetch(
            "SELECT * FROM bookings WHERE driver_id = $1 ORDER BY created_at DESC",
            driver_id,
        )
        return [_to_booking(row) for row in rows]

    async def list_open_in_box(
        self,
        statuses: Sequence[BookingStatus],
        min_lat: float,
        max_lat: float,
        min_lng: float,
        max_lng: float,
    ) -> list[Booking]:
        """Открытые брони, точка подачи которых попадает в прямоугольник."""
        rows = await self._db.fetch(
            """
            SELECT * FROM bookings
            WHERE status = ANY($1::text[])
              AND (source->>'latitude')::double precision BETWEEN $2 AND $3
              AND (source->>'longitude')::double precision BETWEEN $4 AND $5
            ORDER BY created_at DESC
            """,
            _status_values(statuses),
            min_lat,
            max_lat,
            min_lng,
            max_lng,
        )
        return [_to_booking(row) for row in rows]

    # =========================================================================
    # ПЕРЕХОДЫ СТАТУСОВ
    # =========================================================================

    async def lock_driver(self, driver_id: UUID, conn: Connection) -> None:
        """Блокировка на водителя до конца транзакции."""
        await conn.execute("SELECT pg_advisory_xact_lock(hashtextextended($1::text, 0))", str(driver_id))

    async def has_active_booking(
        self,
        driver_id: UUID,
        conn: Connection | None = None,
        exclude_booking_id: UUID | None = None,
    ) -> bool:
        found = await self._executor(conn).fetchval(
            """
            SELECT EXISTS (
                SELECT 1 FROM bookings
                WHERE driver_id = $1 AND status = ANY($2::text[])
                  AND ($3::uuid IS NULL OR id <> $3)
            )
            """,
            driver_id,
            _status_values(ACTIVE_DRIVER_BOOKING_STATUSES),
            exclude_booking_id,
        )
        return bool(found)

    async def update_if_status(
        self,
        booking_id: UUID,
        expected: Sequence[BookingStatus],
        changes: dict[str, Any],
        conn: Connection | None = None,
        expected_driver_id: UUID | None = None,
        expected_otp: str | None = None,
    ) -> Optional[Booking]:
        """
        Условно обновляет бронь.

        Args:
            booking_id: ID брони
            expected: Статусы, в которых бронь должна находиться
            changes: Новые значения колонок
            expected_driver_id: Дополнительно требовать назначенного водителя
            expected_otp: Дополнительно требовать совпадения кода завершения

        Returns:
            Обновлённая бронь или None, если условие не выполнено
        """
        unknown = set(changes) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Недопустимые колонки для обновления: {sorted(unknown)}")

        params: list[Any] = [booking_id, _status_values(expected)]
        assignments = []
        for column, value in changes.items():
            params.append(_to_db(value))
            assignments.append(f"{column} = ${len(params)}")
        assignments.append("updated_at = NOW()")

        conditions = ["id = $1", "status = ANY($2::text[])"]
        if expected_driver_id is not None:
            params.append(expected_driver_id)
            conditions.append(f"driver_id = ${len(params)}")
        if expected_otp is not None:
            params.append(expected_otp)
            conditions.append(f"completion_otp = ${len(params)}")

        row = await self._executor(conn).fetchrow(
            f"""
            UPDATE bookings SET {", ".join(assignments)}
            WHERE {" AND ".join(conditions)}
            RETURNING *
            """,
            *params,
        )
        return _to_booking(row) if row else None

    async def add_rejected_driver(
        self,
        booking_id: UUID,
        driver_id: UUID,
        expected: Sequence[BookingStatus],
    ) -> Optional[Booking]:
        """Добавляет водителя в список отказавшихся (без дубликатов)."""
        row = await self._db.fetchrow(
            """
            UPDATE bookings
            SET rejected_drivers = CASE
                    WHEN $3 = ANY(rejected_drivers) THEN rejected_drivers
                    ELSE array_append(rejected_drivers, $3)
                END,
                updated_at = NOW()
            WHERE id = $1 AND status = ANY($2::text[])
            RETURNING *
            """,
            booking_id,
            _status_values(expected),
            driver_id,
        )
        return _to_booking(row) if row else None

    async def delete_if_pending(self, booking_id: UUID) -> bool:
        deleted = await self._db.fetchval(
            "DELETE FROM bookings WHERE id = $1 AND status = $2 RETURNING id",
            booking_id,
            BookingStatus.PENDING.value,
        )
        return deleted is not None
