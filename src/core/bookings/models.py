# src/core/bookings/models.py
"""
Модели данных бронирований.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    computed_field,
    field_validator,
    model_validator,
)

from src.common.constants import (
    ACTIVE_DRIVER_BOOKING_STATUSES,
    TERMINAL_BOOKING_STATUSES,
    BookingStatus,
    BookingType,
    CancelledBy,
    PaymentMethod,
    PaymentStatus,
    TripClass,
)


class BookingPoint(BaseModel):
    """Точка маршрута."""

    name: Optional[str] = None
    address: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    @property
    def label(self) -> str:
        return self.address or self.name or ""


# =============================================================================
# ВАРИАНТЫ ТИПА БРОНИ (дискриминант booking_type)
# =============================================================================

class RideDetails(BaseModel):
    booking_type: Literal["ride"] = "ride"


class AirportDetails(BaseModel):
    booking_type: Literal["airport"] = "airport"
    direction: Literal["pickup", "drop"] = Field(..., description="Из аэропорта или в аэропорт")
    flight_number: Optional[str] = None
    airline: Optional[str] = None
    terminal: Optional[str] = None
    passengers: int = Field(1, ge=1, le=8)
    luggage: int = Field(0, ge=0)


class RentalDetails(BaseModel):
    booking_type: Literal["rental"] = "rental"
    hours: Optional[int] = Field(None, ge=1)
    rental_days: Optional[int] = Field(None, ge=1)
    km_limit: Optional[int] = Field(None, ge=1)
    package_name: Optional[str] = None


class ResortDetails(BaseModel):
    booking_type: Literal["resort"] = "resort"
    resort_id: str
    guests: int = Field(1, ge=1)
    nights: int = Field(1, ge=1)


class PackageDetails(BaseModel):
    booking_type: Literal["package"] = "package"
    package_id: str
    seats: int = Field(1, ge=1)


BookingDetails = Annotated[
    Union[RideDetails, AirportDetails, RentalDetails, ResortDetails, PackageDetails],
    Field(discriminator="booking_type"),
]


# =============================================================================
# ОПЛАТА И НАЧИСЛЕНИЯ
# =============================================================================

class AdditionalCharges(BaseModel):
    driver_allowance: int = Field(0, ge=0)
    parking_charges: int = Field(0, ge=0)
    waiting_charges: int = Field(0, ge=0)


class PaymentInfo(BaseModel):
    """Платёжная часть брони."""

    method: Optional[PaymentMethod] = None
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    amount: int = Field(0, ge=0, description="Уже оплачено")
    advance_amount: int = Field(0, ge=0)
    remaining_amount: int = Field(0, ge=0)
    paid_at: Optional[datetime] = None

    @property
    def advance_paid(self) -> bool:
        return self.status == PaymentStatus.PARTIAL and self.amount > 0


def validate_round_trip(is_round_trip: bool, pickup_date: date, return_date: Optional[date]) -> None:
    if not is_round_trip:
        return
    if return_date is None:
        raise ValueError("return_date is required for round trips")
    if return_date < pickup_date:
        raise ValueError("return_date must not be earlier than pickup_date")


# =============================================================================
# БРОНЬ
# =============================================================================

class Booking(BaseModel):
    """Модель брони."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    driver_id: Optional[UUID] = None
    vehicle_id: Optional[str] = None

    # Снимки данных участников
    user_name: Optional[str] = None
    user_phone: Optional[str] = None
    driver_name: Optional[str] = None
    vehicle_name: Optional[str] = None
    vehicle_number: Optional[str] = None

    # Маршрут
    source: BookingPoint
    destination: BookingPoint
    stops: list[BookingPoint] = Field(default_factory=list)

    trip_class: TripClass
    details: BookingDetails = Field(default_factory=RideDetails)
    vehicle_class: str = "sedan"

    # Расписание
    pickup_date: date
    pickup_time: str
    return_date: Optional[date] = None
    is_round_trip: bool = False

    # Стоимость (целые единицы валюты)
    distance_km: float
    duration_minutes: Optional[int] = None
    base_price: int
    service_charge: int
    driver_amount: int
    additional_charges: AdditionalCharges = Field(default_factory=AdditionalCharges)
    total_price: int
    fare_breakdown: Optional[dict] = None
    payment: PaymentInfo = Field(default_factory=PaymentInfo)

    status: BookingStatus = BookingStatus.PENDING
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None
    rejected_drivers: list[UUID] = Field(default_factory=list)

    # Код завершения никогда не попадает в ответы API
    completion_otp: Optional[str] = Field(None, exclude=True)
    otp_generated_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("stops", "rejected_drivers", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    @field_validator("payment", "additional_charges", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return {} if v is None else v

    @computed_field
    @property
    def booking_type(self) -> BookingType:
        return BookingType(self.details.booking_type)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_BOOKING_STATUSES

    @property
    def holds_driver(self) -> bool:
        return self.status in ACTIVE_DRIVER_BOOKING_STATUSES


# =============================================================================
# ЗАПРОСЫ
# =============================================================================

class BookingCreate(BaseModel):
    """Запрос на создание брони."""

    user_id: UUID
    user_name: Optional[str] = None
    user_phone: Optional[str] = None

    source: BookingPoint
    destination: BookingPoint
    stops: list[BookingPoint] = Field(default_factory=list)

    trip_class: Optional[TripClass] = None
    details: BookingDetails = Field(default_factory=RideDetails)
    vehicle_class: Optional[str] = None
    vehicle_id: Optional[str] = None

    pickup_date: date
    pickup_time: str = Field(..., min_length=1)
    return_date: Optional[date] = None
    is_round_trip: bool = False

    distance_km: Optional[float] = Field(None, description="Если не задано, берётся из провайдера маршрутов")
    duration_minutes: Optional[int] = Field(None, ge=0)
    payment_method: Optional[PaymentMethod] = None

    @model_validator(mode="after")
    def check_round_trip(self) -> "BookingCreate":
        validate_round_trip(self.is_round_trip, self.pickup_date, self.return_date)
        return self


class BookingStopsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    stops: list[BookingPoint]


class BookingScheduleUpdate(BaseModel):
    """Изменение расписания; правило туда-обратно проверяется после слияния с бронью."""

    model_config = ConfigDict(extra="forbid")

    pickup_date: Optional[date] = None
    pickup_time: Optional[str] = Field(None, min_length=1)
    return_date: Optional[date] = None
    is_round_trip: Optional[bool] = None

    @field_validator("pickup_date", "pickup_time", "is_round_trip", mode="before")
    @classmethod
    def not_null(cls, v: Any, info: ValidationInfo) -> Any:
        # NOT NULL в таблице: поле можно не передавать, но не обнулять
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @model_validator(mode="after")
    def not_empty(self) -> "BookingScheduleUpdate":
        if not self.model_fields_set:
            raise ValueError("at least one schedule field is required")
        return self


class BookingStatusPatch(BaseModel):
    """Тело PATCH /bookings/{id}: целевой статус и параметры перехода."""

    model_config = ConfigDict(extra="forbid")

    status: BookingStatus
    driver_id: Optional[UUID] = None
    otp: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=500)
    cancelled_by: Optional[CancelledBy] = None
    payment_method: Optional[PaymentMethod] = None
    amount: Optional[int] = Field(None, ge=0)
    transaction_id: Optional[str] = None


class DriverActionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    driver_id: UUID


class DriverCancelRequest(DriverActionRequest):
    reason: Optional[str] = Field(None, max_length=500)


class PaymentConfirmRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    method: PaymentMethod
    amount: int = Field(..., ge=0)
    transaction_id: Optional[str] = None


class CompleteTripRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    otp: str = Field(..., min_length=1, max_length=12)


class CancelBookingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: Optional[str] = Field(None, max_length=500)
    cancelled_by: CancelledBy = CancelledBy.USER


class NearbyBooking(BaseModel):
    """Открытая бронь рядом с водителем."""

    booking: Booking
    distance_from_driver_km: float
