# src/core/drivers/repository.py
"""
Репозиторий водителей.
Методы, участвующие в транзакциях, принимают необязательное соединение conn.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence
from uuid import UUID

from asyncpg import Connection

from src.common.constants import DriverStatus
from src.core.drivers.models import Driver
from src.infra.database import DatabaseManager, Executor

_DRIVER_COLUMNS = """
    id, name, phone, vehicle_type, vehicle_number, status,
    latitude, longitude, is_online, push_token, last_location_at,
    total_trips, total_earnings, rating, created_at, updated_at
"""


def _to_driver(row: Any) -> Driver:
    return Driver.model_validate(dict(row))


class DriverRepository:
    """Репозиторий водителей."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    def _executor(self, conn: Connection | None) -> Executor:
        return conn if conn is not None else self._db

    async def get_by_id(self, driver_id: UUID, conn: Connection | None = None) -> Optional[Driver]:
        row = await self._executor(conn).fetchrow(
            f"SELECT {_DRIVER_COLUMNS} FROM drivers WHERE id = $1",
            driver_id,
        )
        return _to_driver(row) if row else None

    async def update_location(
        self,
        driver_id: UUID,
        latitude: float,
        longitude: float,
    ) -> Optional[Driver]:
        """Сохраняет координаты и отметку времени; водитель считается онлайн."""
        row = await self._db.fetchrow(
            f"""
            UPDATE drivers
            SET latitude = $2, longitude = $3, is_online = TRUE,
                last_location_at = NOW(), updated_at = NOW()
            WHERE id = $1
            RETURNING {_DRIVER_COLUMNS}
            """,
            driver_id,
            latitude,
            longitude,
        )
        return _to_driver(row) if row else None

    async def update_push_token(self, driver_id: UUID, push_token: str) -> Optional[Driver]:
        row = await self._db.fetchrow(
            f"""
            UPDATE drivers SET push_token = $2, updated_at = NOW()
            WHERE id = $1
            RETURNING {_DRIVER_COLUMNS}
            """,
            driver_id,
            push_token,
        )
        return _to_driver(row) if row else None

    async def update_status(
        self,
        driver_id: UUID,
        status: DriverStatus,
        is_online: bool,
    ) -> Optional[Driver]:
        row = await self._db.fetchrow(
            f"""
            UPDATE drivers SET status = $2, is_online = $3, updated_at = NOW()
            WHERE id = $1
            RETURNING {_DRIVER_COLUMNS}
            """,
            driver_id,
            status.value,
            is_online,
        )
        return _to_driver(row) if row else None

    async def credit(
        self,
        driver_id: UUID,
        amount: int,
        trips: int = 0,
        conn: Connection | None = None,
    ) -> None:
        """Увеличивает счётчики заработка и поездок."""
        await self._executor(conn).execute(
            """
            UPDATE drivers
            SET total_earnings = total_earnings + $2,
                total_trips = total_trips + $3,
                updated_at = NOW()
            WHERE id = $1
            """,
            driver_id,
            amount,
            trips,
        )

    async def set_totals(self, driver_id: UUID, total_earnings: int, total_trips: int) -> Optional[Driver]:
        row = await self._db.fetchrow(
            f"""
            UPDATE drivers
            SET total_earnings = $2, total_trips = $3, updated_at = NOW()
            WHERE id = $1
            RETURNING {_DRIVER_COLUMNS}
            """,
            driver_id,
            total_earnings,
            total_trips,
        )
        return _to_driver(row) if row else None

    async def list_eligible(
        self,
        driver_ids: Sequence[UUID],
        statuses: Sequence[str],
    ) -> list[Driver]:
        """
        Возвращает водителей из списка с допустимым статусом и push-токеном.
        Порядок результата не гарантирован: сортирует вызывающий код.
        """
        if not driver_ids:
            return []
        rows = await self._db.fetch(
            f"""
            SELECT {_DRIVER_COLUMNS} FROM drivers
            WHERE id = ANY($1::uuid[])
              AND status = ANY($2::text[])
              AND push_token IS NOT NULL AND push_token <> ''
            """,
            list(driver_ids),
            list(statuses),
        )
        return [_to_driver(row) for row in rows]

    async def find_nearby_approximate(
        self,
        latitude: float,
        longitude: float,
        threshold: float,
        statuses: Sequence[str],
        limit: int,
    ) -> list[tuple[Driver, float]]:
        """
        Грубый поиск по сохранённым координатам без гео-индекса.

        Args:
            threshold: Квадрат радиуса в градусах

        Returns:
            Пары (водитель, квадрат расстояния в градусах), ближайшие первыми
        """
        rows = await self._db.fetch(
            f"""
            SELECT {_DRIVER_COLUMNS}, sq_dist FROM (
                SELECT {_DRIVER_COLUMNS},
                       POWER(latitude - $1, 2) + POWER(longitude - $2, 2) AS sq_dist
                FROM drivers
                WHERE latitude IS NOT NULL AND longitude IS NOT NULL
                  AND status = ANY($4::text[])
                  AND push_token IS NOT NULL AND push_token <> ''
            ) AS candidates
            WHERE sq_dist <= $3
            ORDER BY sq_dist ASC
            LIMIT $5
            """,
            latitude,
            longitude,
            threshold,
            list(statuses),
            limit,
        )
        result = []
        for row in rows:
            data = dict(row)
            sq_dist = float(data.pop("sq_dist"))
            result.append((Driver.model_validate(data), sq_dist))
        return result
