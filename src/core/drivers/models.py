# src/core/drivers/models.py
"""
Модели данных водителей.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.common.constants import BLOCKED_DRIVER_STATUSES, DriverStatus, EarningType


class Driver(BaseModel):
    """Модель водителя."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str = Field(..., description="Имя водителя")
    phone: str = Field(..., description="Номер телефона")
    vehicle_type: Optional[str] = Field(None, description="Марка/модель автомобиля")
    vehicle_number: Optional[str] = Field(None, description="Госномер")
    status: DriverStatus = Field(DriverStatus.PENDING_VERIFICATION, description="Статус водителя")

    # Геолокация (последняя известная)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_online: bool = False
    push_token: Optional[str] = None
    last_location_at: Optional[datetime] = None

    # Счётчики: меняются только жизненным циклом брони и пересчётом журнала
    total_trips: int = Field(0, ge=0)
    total_earnings: int = Field(0, ge=0)
    rating: float = Field(0.0, ge=0.0, le=5.0)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("rating", mode="before")
    @classmethod
    def rating_to_float(cls, v: Any) -> float:
        # NUMERIC приходит из asyncpg как Decimal
        return float(v) if v is not None else 0.0

    @property
    def is_blocked(self) -> bool:
        """Водитель не может принимать заказы."""
        return self.status in BLOCKED_DRIVER_STATUSES

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class DriverCandidate(BaseModel):
    """Кандидат для уведомления о новой брони."""

    driver_id: UUID
    name: str
    push_token: Optional[str] = None
    distance_m: Optional[float] = Field(None, description="Расстояние от точки подачи")
    approximate: bool = Field(False, description="Найден грубым fallback-поиском")


# =============================================================================
# ЗАПРОСЫ
# =============================================================================

class DriverLocationUpdate(BaseModel):
    """Обновление местоположения."""

    model_config = ConfigDict(extra="forbid")

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DriverPushTokenUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    push_token: str = Field(..., min_length=1, max_length=512)


class DriverStatusUpdate(BaseModel):
    """Самостоятельная смена статуса водителем."""

    model_config = ConfigDict(extra="forbid")

    status: DriverStatus

    @field_validator("status")
    @classmethod
    def only_self_service(cls, v: DriverStatus) -> DriverStatus:
        if v not in SELF_SERVICE_STATUSES:
            allowed = ", ".join(s.value for s in SELF_SERVICE_STATUSES)
            raise ValueError(f"status must be one of: {allowed}")
        return v


SELF_SERVICE_STATUSES: tuple[DriverStatus, ...] = (
    DriverStatus.ACTIVE,
    DriverStatus.INACTIVE,
    DriverStatus.BUSY,
    DriverStatus.OFFLINE,
)


# =============================================================================
# СТАТИСТИКА
# =============================================================================

class DriverStats(BaseModel):
    """Сводка по водителю: суммы из журнала заработка и сохранённые счётчики."""

    driver_id: UUID
    ledger_total: int = 0
    by_type: dict[EarningType, int] = Field(default_factory=dict)
    completed_trips: int = 0
    completed_distance_km: float = 0.0
    total_trips: int = 0
    total_earnings: int = 0
    rating: float = 0.0
