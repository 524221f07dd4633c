# src/core/earnings/models.py
"""
Модели журнала заработка водителей.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import EarningStatus, EarningType


class EarningPeriod(str, Enum):
    """Период выборки журнала."""
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class EarningTripDetails(BaseModel):
    """Снимок поездки на момент начисления."""

    source: Optional[str] = None
    destination: Optional[str] = None
    distance_km: Optional[float] = None
    customer_name: Optional[str] = None
    vehicle_type: Optional[str] = None
    booking_type: Optional[str] = None


class DriverEarningCreate(BaseModel):
    """Новая запись журнала."""

    driver_id: UUID
    booking_id: Optional[UUID] = None
    amount: int = Field(..., ge=0)
    earning_type: EarningType
    status: EarningStatus = EarningStatus.COMPLETED
    trip_details: EarningTripDetails = Field(default_factory=EarningTripDetails)


class DriverEarning(DriverEarningCreate):
    """Запись журнала заработка (не изменяется после вставки)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
