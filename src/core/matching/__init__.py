# src/core/matching/__init__.py
"""
Домен поиска водителей.
"""

from src.core.matching.service import GeoMatcher

__all__ = [
    "GeoMatcher",
]
