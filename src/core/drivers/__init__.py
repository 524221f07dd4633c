# src/core/drivers/__init__.py
"""
Домен водителей.
"""

from src.core.drivers.models import (
    Driver,
    DriverCandidate,
    DriverLocationUpdate,
    DriverPushTokenUpdate,
    DriverStats,
    DriverStatusUpdate,
)
from src.core.drivers.repository import DriverRepository
from src.core.drivers.service import DriverService

__all__ = [
    "Driver",
    "DriverCandidate",
    "DriverLocationUpdate",
    "DriverPushTokenUpdate",
    "DriverStats",
    "DriverStatusUpdate",
    "DriverRepository",
    "DriverService",
]
