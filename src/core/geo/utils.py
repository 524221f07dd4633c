# src/core/geo/utils.py
"""
Геометрические функции без обращения к внешним сервисам.
"""

import math

EARTH_RADIUS_KM = 6371.0

# Метров в одном градусе широты (используется в грубом fallback-поиске)
METERS_PER_DEGREE = 111_320.0


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Вычисляет расстояние между двумя точками (в км) по формуле Haversine.
    """
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def degree_threshold(max_distance_m: float) -> float:
    """Квадрат радиуса в градусах для сравнения с (Δlat² + Δlng²)."""
    return (max_distance_m / METERS_PER_DEGREE) ** 2
