# src/core/earnings/__init__.py
"""
Журнал заработка водителей.
"""

from src.core.earnings.models import (
    DriverEarning,
    DriverEarningCreate,
    EarningPeriod,
    EarningTripDetails,
)
from src.core.earnings.repository import EarningsRepository

__all__ = [
    "DriverEarning",
    "DriverEarningCreate",
    "EarningPeriod",
    "EarningTripDetails",
    "EarningsRepository",
]
