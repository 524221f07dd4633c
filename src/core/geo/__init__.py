# src/core/geo/__init__.py
"""
Geo-модуль: маршруты через Google Directions API и расчёт расстояний.
"""

from src.core.geo.service import DirectionsService, Location, RouteInfo
from src.core.geo.utils import calculate_distance, degree_threshold

__all__ = [
    "DirectionsService",
    "Location",
    "RouteInfo",
    "calculate_distance",
    "degree_threshold",
]
