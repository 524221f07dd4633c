# src/core/bookings/legacy.py
"""
Приведение старых форматов броней (аэропорт, аренда) к BookingCreate.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from src.common.exceptions import ValidationError
from src.core.bookings.models import (
    AirportDetails,
    BookingCreate,
    BookingPoint,
    RentalDetails,
)


class _LegacyModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LegacyCoordinates(_LegacyModel):
    latitude: float
    longitude: float


class LegacyAirportLocation(_LegacyModel):
    address: str
    coordinates: LegacyCoordinates


class LegacyAirportBooking(_LegacyModel):
    user_id: UUID = Field(..., alias="userId")
    direction: Literal["pickup", "drop"] = Field(..., alias="bookingType")
    passenger_name: str = Field(..., alias="passengerName")
    phone_number: str = Field(..., alias="phoneNumber")
    flight_number: str = Field(..., alias="flightNumber")
    airline: str
    terminal: Optional[str] = None
    pickup_location: LegacyAirportLocation = Field(..., alias="pickupLocation")
    drop_location: LegacyAirportLocation = Field(..., alias="dropLocation")
    scheduled_time: datetime = Field(..., alias="scheduledTime")
    vehicle_type: str = Field(..., alias="vehicleType")
    passengers: int = Field(1, ge=1, le=8)
    luggage: int = Field(0, ge=0)
    distance: Optional[float] = None
    payment_mode: Optional[str] = Field(None, alias="paymentMode")


class LegacyRentalLocation(_LegacyModel):
    name: str
    latitude: float
    longitude: float


class LegacyRentalBooking(_LegacyModel):
    user_id: UUID = Field(..., alias="userId")
    user_name: str = Field(..., alias="userName")
    user_phone: str = Field(..., alias="userPhone")
    vehicle_id: str = Field(..., alias="vehicleId")
    vehicle_type: str = Field(..., alias="vehicleType")
    vehicle_title: Optional[str] = Field(None, alias="vehicleTitle")
    rental_days: int = Field(..., alias="rentalDays", ge=1)
    km_limit: int = Field(..., alias="kmLimit", ge=1)
    scheduled_date: date = Field(..., alias="scheduledDate")
    scheduled_time: str = Field(..., alias="scheduledTime")
    pickup_location: LegacyRentalLocation = Field(..., alias="pickupLocation")


def _airport_point(location: LegacyAirportLocation) -> BookingPoint:
    return BookingPoint(
        address=location.address,
        latitude=location.coordinates.latitude,
        longitude=location.coordinates.longitude,
    )


def _map_airport(payload: dict[str, Any]) -> BookingCreate:
    legacy = LegacyAirportBooking.model_validate(payload)
    return BookingCreate(
        user_id=legacy.user_id,
        user_name=legacy.passenger_name,
        user_phone=legacy.phone_number,
        source=_airport_point(legacy.pickup_location),
        destination=_airport_point(legacy.drop_location),
        details=AirportDetails(
            direction=legacy.direction,
            flight_number=legacy.flight_number,
            airline=legacy.airline,
            terminal=legacy.terminal,
            passengers=legacy.passengers,
            luggage=legacy.luggage,
        ),
        vehicle_class=legacy.vehicle_type,
        pickup_date=legacy.scheduled_time.date(),
        pickup_time=legacy.scheduled_time.strftime("%H:%M"),
        distance_km=legacy.distance,
        payment_method=legacy.payment_mode,
    )


def _map_rental(payload: dict[str, Any]) -> BookingCreate:
    legacy = LegacyRentalBooking.model_validate(payload)
    # Аренда возвращается в точку подачи, цена считается по лимиту километров
    point = BookingPoint(
        name=legacy.pickup_location.name,
        address=legacy.pickup_location.name,
        latitude=legacy.pickup_location.latitude,
        longitude=legacy.pickup_location.longitude,
    )
    return BookingCreate(
        user_id=legacy.user_id,
        user_name=legacy.user_name,
        user_phone=legacy.user_phone,
        source=point,
        destination=point,
        details=RentalDetails(
            rental_days=legacy.rental_days,
            km_limit=legacy.km_limit,
            package_name=legacy.vehicle_title,
        ),
        vehicle_class=legacy.vehicle_type,
        vehicle_id=legacy.vehicle_id,
        pickup_date=legacy.scheduled_date,
        pickup_time=legacy.scheduled_time,
        distance_km=float(legacy.km_limit),
    )


LEGACY_MAPPERS: dict[str, Callable[[dict[str, Any]], BookingCreate]] = {
    "airport": _map_airport,
    "rental": _map_rental,
}


def map_legacy_booking(shape: str, payload: dict[str, Any]) -> BookingCreate:
    """
    Преобразует старый формат брони в канонический запрос.

    Raises:
        ValidationError: неизвестный формат или некорректные поля
    """
    mapper = LEGACY_MAPPERS.get(shape)
    if mapper is None:
        raise ValidationError(
            f"Unknown legacy booking shape '{shape}'. Supported: {', '.join(sorted(LEGACY_MAPPERS))}",
            field="shape",
        )
    try:
        return mapper(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg')}" if location else first.get("msg", "Invalid payload")
        raise ValidationError(message, field=location or None) from e
