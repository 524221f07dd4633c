# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import asyncpg
import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "")
os.environ.setdefault("PUSH_ACCESS_TOKEN", "")

from src.common.constants import (  # noqa: E402
    ACTIVE_DRIVER_BOOKING_STATUSES,
    BookingStatus,
    DriverStatus,
)
from src.config.loader import BookingSettings, FareSettings, SearchSettings  # noqa: E402
from src.core.bookings.models import Booking, BookingCreate, BookingPoint  # noqa: E402
from src.core.bookings.repository import _UPDATABLE_COLUMNS, _to_db  # noqa: E402
from src.core.bookings.service import BookingService  # noqa: E402
from src.core.drivers.models import Driver  # noqa: E402
from src.core.earnings.models import DriverEarning, DriverEarningCreate  # noqa: E402
from src.core.notifications.service import DispatchSummary  # noqa: E402
from src.core.pricing.calculator import FareCalculator  # noqa: E402


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "PROJECT_NAME": "trip_booking_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "LOG_LEVEL": "DEBUG",
        "LOG_TO_FILE": False,
        "API_PREFIX": "/api/v1",
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "trip_booking_test",
        "DB_USER": "postgres",
        "DB_PASSWORD": "test_password",
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_NAMESPACE": "booking_test",
        "RABBITMQ_EXCHANGE": "booking.test",
        "VEHICLE_CLASSES": {
            "sedan": {"BASE_RATE_PER_KM": 12, "MIN_FARE": 500, "DRIVER_ALLOWANCE_PER_KM": 2},
        },
        "MAX_DISTANCE_KM": 1500.0,
        "MAX_DRIVERS_TO_NOTIFY": 5,
        "EXCLUDE_REJECTED_ON_REMATCH": True,
        "OTP_TTL_SECONDS": 300,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


@pytest.fixture
def fare_settings() -> FareSettings:
    return FareSettings()


@pytest.fixture
def search_settings() -> SearchSettings:
    return SearchSettings(MAX_DRIVERS_TO_NOTIFY=3)


@pytest.fixture
def booking_settings() -> BookingSettings:
    return BookingSettings()


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.geoadd = AsyncMock(return_value=1)
    redis.georem = AsyncMock(return_value=1)
    redis.geosearch = AsyncMock(return_value=[])
    redis.health_check = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.emit = AsyncMock(return_value=True)
    event_bus.publish = AsyncMock(return_value=True)
    event_bus.is_connected = True
    return event_bus


# =============================================================================
# IN-MEMORY РЕПОЗИТОРИИ
# =============================================================================

class FakeDatabase:
    """Заменяет DatabaseManager там, где нужна только транзакция."""

    def __init__(self) -> None:
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[object, None]:
        self.transactions += 1
        yield object()


class FakeBookingRepository:
    """
    Брони в памяти с теми же гарантиями, что у PostgreSQL:
    условный UPDATE по статусу и одна активная бронь на водителя.
    """

    def __init__(self) -> None:
        self.rows: dict[UUID, dict[str, Any]] = {}
        self.locked_drivers: list[UUID] = []

    def _model(self, row: dict[str, Any]) -> Booking:
        return Booking.model_validate(dict(row))

    async def create(self, values: dict[str, Any]) -> Booking:
        now = datetime.now(timezone.utc)
        row = {column: _to_db(value) for column, value in values.items()}
        row.update(
            id=uuid4(),
            status=BookingStatus.PENDING.value,
            driver_id=None,
            rejected_drivers=[],
            completion_otp=None,
            otp_generated_at=None,
            created_at=now,
            updated_at=now,
        )
        self.rows[row["id"]] = row
        return self._model(row)

    async def get_by_id(self, booking_id: UUID, conn: Any = None) -> Optional[Booking]:
        row = self.rows.get(booking_id)
        return self._model(row) if row else None

    async def list_paginated(
        self,
        status: BookingStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Booking], int]:
        rows = [r for r in self.rows.values() if status is None or r["status"] == status.value]
        return [self._model(r) for r in rows[offset:offset + limit]], len(rows)

    async def list_by_user(self, user_id: UUID) -> list[Booking]:
        return [self._model(r) for r in self.rows.values() if r["user_id"] == user_id]

    async def list_by_driver(self, driver_id: UUID) -> list[Booking]:
        return [self._model(r) for r in self.rows.values() if r["driver_id"] == driver_id]

    async def list_open_in_box(
        self,
        statuses: Sequence[BookingStatus],
        min_lat: float,
        max_lat: float,
        min_lng: float,
        max_lng: float,
    ) -> list[Booking]:
        allowed = {s.value for s in statuses}
        return [
            self._model(r)
            for r in self.rows.values()
            if r["status"] in allowed
            and min_lat <= r["source"]["latitude"] <= max_lat
            and min_lng <= r["source"]["longitude"] <= max_lng
        ]

    async def lock_driver(self, driver_id: UUID, conn: Any) -> None:
        self.locked_drivers.append(driver_id)

    def _driver_is_busy(self, driver_id: UUID, exclude_booking_id: UUID | None = None) -> bool:
        active = {s.value for s in ACTIVE_DRIVER_BOOKING_STATUSES}
        return any(
            r["driver_id"] == driver_id and r["status"] in active and r["id"] != exclude_booking_id
            for r in self.rows.values()
        )

    async def has_active_booking(
        self,
        driver_id: UUID,
        conn: Any = None,
        exclude_booking_id: UUID | None = None,
    ) -> bool:
        return self._driver_is_busy(driver_id, exclude_booking_id)

    async def update_if_status(
        self,
        booking_id: UUID,
        expected: Sequence[BookingStatus],
        changes: dict[str, Any],
        conn: Any = None,
        expected_driver_id: UUID | None = None,
        expected_otp: str | None = None,
    ) -> Optional[Booking]:
        unknown = set(changes) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Недопустимые колонки для обновления: {sorted(unknown)}")

        row = self.rows.get(booking_id)
        if row is None or row["status"] not in {s.value for s in expected}:
            return None
        if expected_driver_id is not None and row["driver_id"] != expected_driver_id:
            return None
        if expected_otp is not None and row["completion_otp"] != expected_otp:
            return None

        new_row = {**row, **{column: _to_db(value) for column, value in changes.items()}}
        active = {s.value for s in ACTIVE_DRIVER_BOOKING_STATUSES}
        if (
            new_row["driver_id"] is not None
            and new_row["status"] in active
            and self._driver_is_busy(new_row["driver_id"], exclude_booking_id=booking_id)
        ):
            raise asyncpg.UniqueViolationError("uq_bookings_driver_active")

        new_row["updated_at"] = datetime.now(timezone.utc)
        self.rows[booking_id] = new_row
        return self._model(new_row)

    async def add_rejected_driver(
        self,
        booking_id: UUID,
        driver_id: UUID,
        expected: Sequence[BookingStatus],
    ) -> Optional[Booking]:
        row = self.rows.get(booking_id)
        if row is None or row["status"] not in {s.value for s in expected}:
            return None
        if driver_id not in row["rejected_drivers"]:
            row["rejected_drivers"] = [*row["rejected_drivers"], driver_id]
        return self._model(row)

    async def delete_if_pending(self, booking_id: UUID) -> bool:
        row = self.rows.get(booking_id)
        if row is None or row["status"] != BookingStatus.PENDING.value:
            return False
        del self.rows[booking_id]
        return True


class FakeDriverRepository:
    """Водители в памяти; credit накапливает счётчики."""

    def __init__(self) -> None:
        self.drivers: dict[UUID, Driver] = {}

    def add(self, **overrides: Any) -> Driver:
        data = {
            "id": uuid4(),
            "name": "Ravi Kumar",
            "phone": f"+9198{len(self.drivers):08d}",
            "vehicle_type": "Toyota Innova",
            "vehicle_number": "KA01AB1234",
            "status": DriverStatus.ACTIVE,
            "latitude": 12.9716,
            "longitude": 77.5946,
            "is_online": True,
            "push_token": "ExponentPushToken[test]",
        }
        data.update(overrides)
        driver = Driver(**data)
        self.drivers[driver.id] = driver
        return driver

    async def get_by_id(self, driver_id: UUID, conn: Any = None) -> Optional[Driver]:
        return self.drivers.get(driver_id)

    async def credit(self, driver_id: UUID, amount: int, trips: int = 0, conn: Any = None) -> None:
        driver = self.drivers[driver_id]
        self.drivers[driver_id] = driver.model_copy(update={
            "total_earnings": driver.total_earnings + amount,
            "total_trips": driver.total_trips + trips,
        })


class FakeEarningsRepository:
    """Журнал в памяти с уникальностью (booking_id, earning_type)."""

    def __init__(self) -> None:
        self.entries: list[DriverEarning] = []

    async def append(self, entry: DriverEarningCreate, conn: Any = None) -> Optional[DriverEarning]:
        for existing in self.entries:
            if existing.booking_id == entry.booking_id and existing.earning_type == entry.earning_type:
                return None
        earning = DriverEarning(
            id=uuid4(),
            created_at=datetime.now(timezone.utc),
            **entry.model_dump(),
        )
        self.entries.append(earning)
        return earning


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def booking_repo() -> FakeBookingRepository:
    return FakeBookingRepository()


@pytest.fixture
def driver_repo() -> FakeDriverRepository:
    return FakeDriverRepository()


@pytest.fixture
def earnings_repo() -> FakeEarningsRepository:
    return FakeEarningsRepository()


@pytest.fixture
def mock_matcher() -> AsyncMock:
    matcher = AsyncMock()
    matcher.find_nearby_drivers = AsyncMock(return_value=[])
    return matcher


@pytest.fixture
def mock_dispatcher() -> MagicMock:
    dispatcher = MagicMock()
    dispatcher.notify_drivers = AsyncMock(return_value=DispatchSummary(drivers_notified=0, total_drivers=0))
    return dispatcher


@pytest.fixture
def booking_service(
    fake_db: FakeDatabase,
    booking_repo: FakeBookingRepository,
    driver_repo: FakeDriverRepository,
    earnings_repo: FakeEarningsRepository,
    fare_settings: FareSettings,
    mock_matcher: AsyncMock,
    mock_dispatcher: MagicMock,
    mock_event_bus: AsyncMock,
    booking_settings: BookingSettings,
    search_settings: SearchSettings,
) -> BookingService:
    """BookingService поверх in-memory репозиториев."""
    return BookingService(
        db=fake_db,
        bookings=booking_repo,
        drivers=driver_repo,
        earnings=earnings_repo,
        calculator=FareCalculator(fare_settings),
        matcher=mock_matcher,
        dispatcher=mock_dispatcher,
        event_bus=mock_event_bus,
        booking_settings=booking_settings,
        search_settings=search_settings,
    )


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def sample_booking_request() -> BookingCreate:
    """Поездка по городу на 120 км, седан."""
    return BookingCreate(
        user_id=uuid4(),
        user_name="Anita Sharma",
        user_phone="+919812345678",
        source=BookingPoint(address="MG Road, Bengaluru", latitude=12.9756, longitude=77.6050),
        destination=BookingPoint(address="Mysuru Palace", latitude=12.3052, longitude=76.6552),
        vehicle_class="sedan",
        pickup_date=date(2026, 11, 2),
        pickup_time="09:30",
        distance_km=120,
    )
