# src/core/matching/service.py
"""
Поиск ближайших водителей.
Основной путь: Redis GEO-индекс + фильтр по статусу в PostgreSQL.
Fallback при недоступности Redis: грубый поиск по координатам в PostgreSQL.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from src.common.constants import DRIVERS_GEO_KEY, TypeMsg
from src.common.logger import log_info, log_warning
from src.config.loader import SearchSettings
from src.core.drivers.models import DriverCandidate
from src.core.drivers.repository import DriverRepository
from src.core.geo.utils import METERS_PER_DEGREE, degree_threshold
from src.infra.redis_client import RedisClient


class GeoMatcher:
    """
    Сервис матчинга броней с водителями.

    Результат отсортирован по расстоянию (ближайшие первыми)
    и ограничен MAX_DRIVERS_TO_NOTIFY.
    """

    def __init__(
        self,
        redis: RedisClient,
        drivers: DriverRepository,
        search: SearchSettings | None = None,
    ) -> None:
        """
        Args:
            redis: Клиент Redis с гео-индексом водителей
            drivers: Репозиторий водителей
            search: Параметры поиска (из конфига если None)
        """
        if search is None:
            from src.config import settings
            search = settings.search
        self._redis = redis
        self._drivers = drivers
        self._search = search

    @property
    def default_radius_m(self) -> float:
        return self._search.DRIVER_SEARCH_RADIUS_M

    async def find_nearby_drivers(
        self,
        latitude: float,
        longitude: float,
        max_distance_m: float | None = None,
        exclude: Sequence[UUID] = (),
    ) -> list[DriverCandidate]:
        """
        Ищет подходящих водителей в радиусе от точки.

        Args:
            latitude: Широта точки подачи
            longitude: Долгота точки подачи
            max_distance_m: Радиус поиска в метрах
            exclude: Водители, которых не нужно возвращать

        Returns:
            Список кандидатов, ближайшие первыми
        """
        radius = max_distance_m if max_distance_m is not None else self._search.DRIVER_SEARCH_RADIUS_M
        limit = self._search.MAX_DRIVERS_TO_NOTIFY
        excluded = {str(driver_id) for driver_id in exclude}

        try:
            hits = await self._redis.geosearch(
                DRIVERS_GEO_KEY,
                longitude=longitude,
                latitude=latitude,
                radius=radius,
                unit="m",
                count=limit + len(excluded),
                sort="ASC",
            )
        except Exception as e:
            await log_warning(f"Гео-индекс недоступен, поиск по БД: {e}")
            return await self._find_in_database(latitude, longitude, radius, limit, excluded)

        candidates = await self._filter_eligible(hits, excluded)
        await log_info(
            f"Найдено {len(candidates)} водителей в радиусе {radius:g} м",
            type_msg=TypeMsg.DEBUG,
        )
        return candidates[:limit]

    async def _filter_eligible(
        self,
        hits: list[tuple[str, float]],
        excluded: set[str],
    ) -> list[DriverCandidate]:
        """Оставляет водителей с допустимым статусом и push-токеном, сохраняя порядок индекса."""
        ordered: list[tuple[UUID, float]] = []
        for member, distance in hits:
            if member in excluded:
                continue
            try:
                ordered.append((UUID(member), distance))
            except ValueError:
                await log_warning(f"Некорректный идентификатор в гео-индексе: {member}")

        if not ordered:
            return []

        drivers = await self._drivers.list_eligible(
            [driver_id for driver_id, _ in ordered],
            self._search.ELIGIBLE_DRIVER_STATUSES,
        )
        by_id = {driver.id: driver for driver in drivers}

        candidates = []
        for driver_id, distance in ordered:
            driver = by_id.get(driver_id)
            if driver is None:
                continue
            candidates.append(DriverCandidate(
                driver_id=driver.id,
                name=driver.name,
                push_token=driver.push_token,
                distance_m=round(distance, 1),
            ))
        return candidates

    async def _find_in_database(
        self,
        latitude: float,
        longitude: float,
        radius_m: float,
        limit: int,
        excluded: set[str],
    ) -> list[DriverCandidate]:
        rows = await self._drivers.find_nearby_approximate(
            latitude,
            longitude,
            degree_threshold(radius_m),
            self._search.ELIGIBLE_DRIVER_STATUSES,
            limit + len(excluded),
        )
        candidates = [
            DriverCandidate(
                driver_id=driver.id,
                name=driver.name,
                push_token=driver.push_token,
                distance_m=round((sq_dist ** 0.5) * METERS_PER_DEGREE, 1),
                approximate=True,
            )
            for driver, sq_dist in rows
            if str(driver.id) not in excluded
        ]
        return candidates[:limit]
