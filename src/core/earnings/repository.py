# src/core/earnings/repository.py
"""
Репозиторий журнала заработка (append-only).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from asyncpg import Connection

from src.common.constants import BookingStatus, EarningType
from src.core.earnings.models import DriverEarning, DriverEarningCreate
from src.infra.database import DatabaseManager, Executor

_EARNING_COLUMNS = """
    id, driver_id, booking_id, amount, earning_type, status, trip_details, created_at
"""


def _to_earning(row: Any) -> DriverEarning:
    return DriverEarning.model_validate(dict(row))


class EarningsRepository:
    """Репозиторий записей заработка."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def _executor(self, conn: Connection | None) -> Executor:
        return conn if conn is not None else self._db

    async def append(
        self,
        entry: DriverEarningCreate,
        conn: Connection | None = None,
    ) -> Optional[DriverEarning]:
        """
        Добавляет запись журнала.

        Returns:
            Созданная запись или None, если запись того же типа
            для этой брони уже существует
        """
        row = await self._executor(conn).fetchrow(
            f"""
            INSERT INTO driver_earnings (driver_id, booking_id, amount, earning_type, status, trip_details)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT DO NOTHING
            RETURNING {_EARNING_COLUMNS}
            """,
            entry.driver_id,
            entry.booking_id,
            entry.amount,
            entry.earning_type.value,
            entry.status.value,
            entry.trip_details.model_dump(),
        )
        return _to_earning(row) if row else None

    async def list_for_driver(
        self,
        driver_id: UUID,
        earning_type: EarningType | None = None,
        since: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DriverEarning], int]:
        """
        Возвращает страницу журнала, новые записи первыми.

        Returns:
            (записи, общее количество)
        """
        conditions = ["driver_id = $1"]
        params: list[Any] = [driver_id]
        if earning_type is not None:
            params.append(earning_type.value)
            conditions.append(f"earning_type = ${len(params)}")
        if since is not None:
            params.append(since)
            conditions.append(f"created_at >= ${len(params)}")
        where = " AND ".join(conditions)

        total = await self._db.fetchval(f"SELECT COUNT(*) FROM driver_earnings WHERE {where}", *params)
        rows = await self._db.fetch(
            f"""
            SELECT {_EARNING_COLUMNS} FROM driver_earnings
            WHERE {where}
            ORDER BY created_at DESC
            LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
            """,
            *params,
            limit,
            offset,
        )
        return [_to_earning(row) for row in rows], int(total or 0)

    async def list_for_booking(self, booking_id: UUID) -> list[DriverEarning]:
        rows = await self._db.fetch(
            f"SELECT {_EARNING_COLUMNS} FROM driver_earnings WHERE booking_id = $1 ORDER BY created_at",
            booking_id,
        )
        return [_to_earning(row) for row in rows]

    async def totals_by_type(self, driver_id: UUID) -> dict[EarningType, int]:
        """Суммы по типам записей (без отменённых)."""
        rows = await self._db.fetch(
            """
            SELECT earning_type, COALESCE(SUM(amount), 0) AS total
            FROM driver_earnings
            WHERE driver_id = $1 AND status <> 'cancelled'
            GROUP BY earning_type
            """,
            driver_id,
        )
        return {EarningType(row["earning_type"]): int(row["total"]) for row in rows}

    async def completed_trip_stats(self, driver_id: UUID) -> tuple[int, float]:
        """
        Returns:
            (количество завершённых броней, суммарная дистанция в км)
        """
        row = await self._db.fetchrow(
            """
            SELECT COUNT(*) AS trips, COALESCE(SUM(distance_km), 0) AS distance
            FROM bookings
            WHERE driver_id = $1 AND status = $2
            """,
            driver_id,
            BookingStatus.COMPLETED.value,
        )
        return int(row["trips"]), float(row["distance"])

    async def replay_totals(self, driver_id: UUID) -> tuple[int, int]:
        """
        Пересчитывает счётчики водителя по журналу.

        Поездки: записи trip_completion плюс завершённые брони без такой записи
        (остаток к выплате был нулевым).

        Returns:
            (total_earnings, total_trips)
        """
        row = await self._db.fetchrow(
            """
            SELECT
                (SELECT COALESCE(SUM(CASE WHEN earning_type = 'penalty' THEN -amount ELSE amount END), 0)
                   FROM driver_earnings
                  WHERE driver_id = $1 AND status <> 'cancelled') AS earnings,
                (SELECT COUNT(*) FROM driver_earnings
                  WHERE driver_id = $1 AND earning_type = 'trip_completion'
                    AND status <> 'cancelled') AS completion_entries,
                (SELECT COUNT(*) FROM bookings b
                  WHERE b.driver_id = $1 AND b.status = 'completed'
                    AND NOT EXISTS (
                        SELECT 1 FROM driver_earnings e
                        WHERE e.booking_id = b.id AND e.earning_type = 'trip_completion'
                    )) AS completed_without_entry
            """,
            driver_id,
        )
        earnings = max(0, int(row["earnings"]))
        trips = int(row["completion_entries"]) + int(row["completed_without_entry"])
        return earnings, trips
