# src/core/drivers/service.py
"""
Операции водителя: местоположение, push-токен, статус, журнал заработка.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

from src.common.constants import DRIVERS_GEO_KEY, DriverStatus, EarningType, TypeMsg
from src.common.exceptions import NotFoundError, PreconditionFailedError
from src.common.logger import log_info, log_warning
from src.config.loader import SearchSettings
from src.core.drivers.models import Driver, DriverCandidate, DriverStats
from src.core.drivers.repository import DriverRepository
from src.core.earnings.models import DriverEarning, EarningPeriod
from src.core.earnings.repository import EarningsRepository
from src.core.matching.service import GeoMatcher
from src.infra.event_bus import EventBus, EventTypes
from src.infra.redis_client import RedisClient

_PERIOD_DAYS = {
    EarningPeriod.WEEK: 7,
    EarningPeriod.MONTH: 30,
    EarningPeriod.YEAR: 365,
}

_OFFLINE_STATUSES = (DriverStatus.INACTIVE, DriverStatus.OFFLINE)


class DriverService:
    """Сервис водителей."""

    def __init__(
        self,
        drivers: DriverRepository,
        earnings: EarningsRepository,
        redis: RedisClient,
        event_bus: EventBus,
        matcher: GeoMatcher,
        search: SearchSettings | None = None,
    ) -> None:
        if search is None:
            from src.config import settings
            search = settings.search
        self._drivers = drivers
        self._earnings = earnings
        self._redis = redis
        self._event_bus = event_bus
        self._matcher = matcher
        self._search = search

    async def get_driver(self, driver_id: UUID) -> Driver:
        driver = await self._drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFoundError("Driver", driver_id)
        return driver

    def _is_indexable(self, driver: Driver) -> bool:
        return driver.status.value in self._search.ELIGIBLE_DRIVER_STATUSES and driver.has_location

    async def _sync_geo_index(self, driver: Driver) -> None:
        """
        Держит гео-индекс в соответствии со статусом водителя.
        Недоступность Redis не мешает операции: поиск уйдёт в fallback по БД.
        """
        member = str(driver.id)
        try:
            if self._is_indexable(driver):
                await self._redis.geoadd(DRIVERS_GEO_KEY, driver.longitude, driver.latitude, member)
            else:
                await self._redis.georem(DRIVERS_GEO_KEY, member)
        except Exception as e:
            await log_warning(f"Не удалось обновить гео-индекс для водителя {member}: {e}")

    async def update_location(self, driver_id: UUID, latitude: float, longitude: float) -> Driver:
        """Сохраняет координаты и обновляет гео-индекс."""
        driver = await self._drivers.update_location(driver_id, latitude, longitude)
        if driver is None:
            raise NotFoundError("Driver", driver_id)

        await self._sync_geo_index(driver)
        await self._event_bus.emit(
            EventTypes.DRIVER_LOCATION_UPDATED,
            driver_id=str(driver.id),
            latitude=latitude,
            longitude=longitude,
        )
        return driver

    async def update_push_token(self, driver_id: UUID, push_token: str) -> Driver:
        driver = await self._drivers.update_push_token(driver_id, push_token)
        if driver is None:
            raise NotFoundError("Driver", driver_id)
        await log_info(f"Push-токен водителя {driver_id} обновлён", type_msg=TypeMsg.DEBUG)
        return driver

    async def update_status(self, driver_id: UUID, status: DriverStatus) -> Driver:
        """
        Самостоятельная смена статуса (active/inactive/busy/offline).

        Raises:
            NotFoundError: водитель не найден
            PreconditionFailedError: водитель не верифицирован или заблокирован
        """
        current = await self.get_driver(driver_id)
        if current.is_blocked:
            raise PreconditionFailedError(
                f"Driver status '{current.status.value}' cannot be changed by the driver",
                details={"status": current.status.value},
            )

        driver = await self._drivers.update_status(driver_id, status, is_online=status not in _OFFLINE_STATUSES)
        if driver is None:
            raise NotFoundError("Driver", driver_id)

        await self._sync_geo_index(driver)
        await self._event_bus.emit(
            EventTypes.DRIVER_STATUS_CHANGED,
            driver_id=str(driver.id),
            status=status.value,
        )
        return driver

    async def list_earnings(
        self,
        driver_id: UUID,
        earning_type: EarningType | None = None,
        period: EarningPeriod | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DriverEarning], int]:
        await self.get_driver(driver_id)
        since = None
        if period is not None:
            since = datetime.now(timezone.utc) - timedelta(days=_PERIOD_DAYS[period])
        return await self._earnings.list_for_driver(
            driver_id,
            earning_type=earning_type,
            since=since,
            limit=limit,
            offset=offset,
        )

    async def get_stats(self, driver_id: UUID) -> DriverStats:
        """Сводка: суммы из журнала (источник истины) и сохранённые счётчики."""
        driver = await self.get_driver(driver_id)
        by_type = await self._earnings.totals_by_type(driver_id)
        completed_trips, distance_km = await self._earnings.completed_trip_stats(driver_id)

        ledger_total = sum(
            -amount if earning_type == EarningType.PENALTY else amount
            for earning_type, amount in by_type.items()
        )
        return DriverStats(
            driver_id=driver.id,
            ledger_total=max(0, ledger_total),
            by_type=by_type,
            completed_trips=completed_trips,
            completed_distance_km=round(distance_km, 2),
            total_trips=driver.total_trips,
            total_earnings=driver.total_earnings,
            rating=driver.rating,
        )

    async def recompute_totals(self, driver_id: UUID) -> Driver:
        """Перезаписывает счётчики водителя значениями из журнала."""
        before = await self.get_driver(driver_id)
        total_earnings, total_trips = await self._earnings.replay_totals(driver_id)
        driver = await self._drivers.set_totals(driver_id, total_earnings, total_trips)
        if driver is None:
            raise NotFoundError("Driver", driver_id)

        if (before.total_earnings, before.total_trips) != (total_earnings, total_trips):
            await log_warning(
                f"Счётчики водителя {driver_id} расходились с журналом: "
                f"earnings {before.total_earnings} -> {total_earnings}, trips {before.total_trips} -> {total_trips}"
            )
        return driver

    async def find_nearby_drivers(
        self,
        latitude: float,
        longitude: float,
        radius_m: float | None = None,
    ) -> list[DriverCandidate]:
        return await self._matcher.find_nearby_drivers(latitude, longitude, radius_m)
