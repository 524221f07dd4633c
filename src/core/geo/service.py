# src/core/geo/service.py
"""
Провайдер маршрутов на базе Google Directions API.
Используется, когда клиент не прислал distance_km при создании брони.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from src.common.constants import TypeMsg
from src.common.logger import log_info, log_error


@dataclass(frozen=True)
class Location:
    """Геолокация."""
    latitude: float
    longitude: float

    def as_param(self) -> str:
        return f"{self.latitude},{self.longitude}"


@dataclass
class RouteInfo:
    """Информация о маршруте (суммарно по всем участкам)."""
    distance_km: float
    duration_minutes: int
    polyline: str = ""


class DirectionsService:
    """
    Расчёт маршрута через Google Directions API.

    Ошибки провайдера не пробрасываются: route() возвращает None,
    решение принимает вызывающий код.
    """

    DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"

    def __init__(
        self,
        api_key: str | None = None,
        language: str = "en",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if api_key is None:
            from src.config import settings
            api_key = settings.google_maps.GOOGLE_MAPS_API_KEY
            language = settings.google_maps.DIRECTIONS_LANGUAGE
            timeout = settings.google_maps.DIRECTIONS_TIMEOUT

        self._api_key = api_key
        self._language = language
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def close(self) -> None:
        await self._client.aclose()

    async def route(
        self,
        origin: Location,
        destination: Location,
        waypoints: Sequence[Location] = (),
    ) -> Optional[RouteInfo]:
        """
        Рассчитывает маршрут с промежуточными точками.

        Args:
            origin: Точка отправления
            destination: Точка назначения
            waypoints: Промежуточные остановки в порядке следования

        Returns:
            Информация о маршруте или None
        """
        if not self._api_key:
            await log_info("Google Maps API key не настроен", type_msg=TypeMsg.WARNING)
            return None

        params = {
            "origin": origin.as_param(),
            "destination": destination.as_param(),
            "mode": "driving",
            "key": self._api_key,
            "language": self._language,
        }
        if waypoints:
            params["waypoints"] = "|".join(point.as_param() for point in waypoints)

        try:
            response = await self._client.get(self.DIRECTIONS_URL, params=params)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            await log_error(f"Ошибка расчёта маршрута: {e}")
            return None

        if data.get("status") != "OK" or not data.get("routes"):
            await log_info(
                f"Маршрут не найден: {origin.as_param()} -> {destination.as_param()} ({data.get('status')})",
                type_msg=TypeMsg.WARNING,
            )
            return None

        route = data["routes"][0]
        legs = route.get("legs") or []
        distance_m = sum(leg["distance"]["value"] for leg in legs)
        duration_s = sum(leg["duration"]["value"] for leg in legs)

        return RouteInfo(
            distance_km=round(distance_m / 1000, 2),
            duration_minutes=round(duration_s / 60),
            polyline=route.get("overview_polyline", {}).get("points", ""),
        )
