# tests/core/test_matching_service.py
"""
Тесты поиска ближайших водителей (src/core/matching/service.py).
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from src.common.constants import DRIVERS_GEO_KEY, DriverStatus
from src.config.loader import SearchSettings
from src.core.drivers.models import Driver
from src.core.geo.utils import degree_threshold
from src.core.matching.service import GeoMatcher


def _driver(**overrides) -> Driver:
    data = {
        "id": uuid4(),
        "name": "Driver",
        "phone": f"+91{uuid4().int % 10**10:010d}",
        "status": DriverStatus.ACTIVE,
        "push_token": "ExponentPushToken[x]",
    }
    data.update(overrides)
    return Driver(**data)


@pytest.fixture
def drivers() -> AsyncMock:
    repo = AsyncMock()
    repo.list_eligible = AsyncMock(return_value=[])
    repo.find_nearby_approximate = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def matcher(mock_redis, drivers, search_settings) -> GeoMatcher:
    return GeoMatcher(mock_redis, drivers, search_settings)


class TestGeoIndexSearch:
    """Основной путь через Redis GEO."""

    @pytest.mark.asyncio
    async def test_keeps_index_order(self, matcher, mock_redis, drivers) -> None:
        """Порядок по расстоянию из индекса сохраняется после фильтра в БД."""
        near, mid, far = _driver(), _driver(), _driver()
        mock_redis.geosearch.return_value = [(str(near.id), 150.0), (str(mid.id), 820.5), (str(far.id), 4000.0)]
        drivers.list_eligible.return_value = [far, near, mid]

        candidates = await matcher.find_nearby_drivers(12.97, 77.59)

        assert [c.driver_id for c in candidates] == [near.id, mid.id, far.id]
        assert [c.distance_m for c in candidates] == [150.0, 820.5, 4000.0]
        assert all(not c.approximate for c in candidates)

    @pytest.mark.asyncio
    async def test_queries_index_with_radius_and_limit(self, matcher, mock_redis) -> None:
        await matcher.find_nearby_drivers(12.97, 77.59, max_distance_m=2500)

        mock_redis.geosearch.assert_awaited_once_with(
            DRIVERS_GEO_KEY,
            longitude=77.59,
            latitude=12.97,
            radius=2500,
            unit="m",
            count=3,
            sort="ASC",
        )

    @pytest.mark.asyncio
    async def test_drops_ineligible_drivers(self, matcher, mock_redis, drivers) -> None:
        eligible, busy = _driver(), _driver()
        mock_redis.geosearch.return_value = [(str(busy.id), 10.0), (str(eligible.id), 20.0)]
        drivers.list_eligible.return_value = [eligible]

        candidates = await matcher.find_nearby_drivers(12.97, 77.59)

        assert [c.driver_id for c in candidates] == [eligible.id]
        assert drivers.list_eligible.await_args.args[1] == ["active"]

    @pytest.mark.asyncio
    async def test_excluded_drivers_are_skipped(self, matcher, mock_redis, drivers) -> None:
        excluded, kept = _driver(), _driver()
        mock_redis.geosearch.return_value = [(str(excluded.id), 10.0), (str(kept.id), 20.0)]
        drivers.list_eligible.return_value = [kept]

        candidates = await matcher.find_nearby_drivers(12.97, 77.59, exclude=[excluded.id])

        assert [c.driver_id for c in candidates] == [kept.id]
        assert mock_redis.geosearch.await_args.kwargs["count"] == 4
        assert drivers.list_eligible.await_args.args[0] == [kept.id]

    @pytest.mark.asyncio
    async def test_result_is_capped(self, matcher, mock_redis, drivers) -> None:
        pool = [_driver() for _ in range(5)]
        mock_redis.geosearch.return_value = [(str(d.id), float(i)) for i, d in enumerate(pool)]
        drivers.list_eligible.return_value = pool

        candidates = await matcher.find_nearby_drivers(12.97, 77.59)

        assert len(candidates) == 3

    @pytest.mark.asyncio
    async def test_empty_index_skips_database(self, matcher, drivers) -> None:
        assert await matcher.find_nearby_drivers(12.97, 77.59) == []
        drivers.list_eligible.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_member_is_ignored(self, matcher, mock_redis, drivers) -> None:
        driver = _driver()
        mock_redis.geosearch.return_value = [("not-a-uuid", 5.0), (str(driver.id), 10.0)]
        drivers.list_eligible.return_value = [driver]

        candidates = await matcher.find_nearby_drivers(12.97, 77.59)

        assert [c.driver_id for c in candidates] == [driver.id]


class TestDatabaseFallback:
    """Fallback при недоступном Redis."""

    @pytest.mark.asyncio
    async def test_falls_back_and_marks_approximate(self, matcher, mock_redis, drivers) -> None:
        driver = _driver()
        mock_redis.geosearch.side_effect = ConnectionError("redis down")
        drivers.find_nearby_approximate.return_value = [(driver, 0.0001)]

        with patch("src.core.matching.service.log_warning", new_callable=AsyncMock):
            candidates = await matcher.find_nearby_drivers(12.97, 77.59, max_distance_m=5000)

        assert len(candidates) == 1
        assert candidates[0].approximate is True
        assert candidates[0].distance_m == pytest.approx(1113.2, abs=0.1)
        args = drivers.find_nearby_approximate.await_args.args
        assert args[2] == pytest.approx(degree_threshold(5000))

    @pytest.mark.asyncio
    async def test_fallback_honours_exclude(self, matcher, mock_redis, drivers) -> None:
        excluded, kept = _driver(), _driver()
        mock_redis.geosearch.side_effect = RuntimeError("not connected")
        drivers.find_nearby_approximate.return_value = [(excluded, 0.0), (kept, 0.00001)]

        with patch("src.core.matching.service.log_warning", new_callable=AsyncMock):
            candidates = await matcher.find_nearby_drivers(12.97, 77.59, exclude=[excluded.id])

        assert [c.driver_id for c in candidates] == [kept.id]


class TestDefaults:
    def test_default_radius_from_settings(self, mock_redis, drivers) -> None:
        matcher = GeoMatcher(mock_redis, drivers, SearchSettings(DRIVER_SEARCH_RADIUS_M=7500))
        assert matcher.default_radius_m == 7500
