# src/services/booking_api/routes.py
"""
HTTP-маршруты бронирований.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status

from src.common.constants import BookingStatus
from src.config import settings
from src.core.bookings.legacy import map_legacy_booking
from src.core.bookings.models import (
    Booking,
    BookingCreate,
    BookingScheduleUpdate,
    BookingStatusPatch,
    BookingStopsUpdate,
    CancelBookingRequest,
    CompleteTripRequest,
    DriverActionRequest,
    DriverCancelRequest,
    PaymentConfirmRequest,
)
from src.core.bookings.service import BookingService
from src.core.notifications.service import DispatchSummary
from src.services.booking_api.dependencies import get_booking_service
from src.shared.models.common import ApiResponse, PaginatedResponse, PaginationParams

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _dump(booking: Booking) -> dict[str, Any]:
    return booking.model_dump(mode="json")


def _dispatch_meta(dispatch: DispatchSummary) -> dict[str, Any]:
    return {
        "drivers_notified": dispatch.drivers_notified,
        "total_drivers": dispatch.total_drivers,
    }


# =============================================================================
# СОЗДАНИЕ
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: BookingCreate,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    booking, dispatch = await service.create_booking(request)
    return ApiResponse.ok(
        data=_dump(booking),
        message="Booking created successfully",
        meta=_dispatch_meta(dispatch),
    )


@router.post("/legacy/{shape}", status_code=status.HTTP_201_CREATED)
async def create_legacy_booking(
    shape: str,
    payload: dict[str, Any] = Body(...),
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    """Создание брони из старого формата (airport, rental)."""
    request = map_legacy_booking(shape, payload)
    booking, dispatch = await service.create_booking(request)
    return ApiResponse.ok(
        data=_dump(booking),
        message="Booking created successfully",
        meta=_dispatch_meta(dispatch),
    )


# =============================================================================
# ЧТЕНИЕ
# =============================================================================

@router.get("")
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    pagination = PaginationParams(page=page, page_size=page_size)
    items, total = await service.list_bookings(status_filter, pagination.limit, pagination.offset)
    result = PaginatedResponse.create([_dump(item) for item in items], total, pagination)
    return ApiResponse.ok(data=result.model_dump(mode="json"))


@router.get("/user/{user_id}")
async def list_user_bookings(
    user_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    bookings = await service.list_user_bookings(user_id)
    return ApiResponse.ok(data=[_dump(item) for item in bookings], meta={"count": len(bookings)})


@router.get("/driver/{driver_id}")
async def list_driver_bookings(
    driver_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    bookings = await service.list_driver_bookings(driver_id)
    return ApiResponse.ok(data=[_dump(item) for item in bookings], meta={"count": len(bookings)})


@router.get("/nearby/{driver_id}")
async def find_nearby_bookings(
    driver_id: UUID,
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0, le=500),
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    nearby = await service.find_nearby_bookings(driver_id, lat, lng, radius_km)
    return ApiResponse.ok(
        data=[item.model_dump(mode="json") for item in nearby],
        meta={"count": len(nearby)},
    )


@router.get("/{booking_id}")
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    return ApiResponse.ok(data=_dump(await service.get_booking(booking_id)))


# =============================================================================
# ИЗМЕНЕНИЕ
# =============================================================================

@router.patch("/{booking_id}")
async def update_booking_status(
    booking_id: UUID,
    patch: BookingStatusPatch,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    booking = await service.apply_status_change(booking_id, patch)
    return ApiResponse.ok(data=_dump(booking), message=f"Booking status updated to {booking.status.value}")


@router.patch("/{booking_id}/stops")
async def update_booking_stops(
    booking_id: UUID,
    patch: BookingStopsUpdate,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    return ApiResponse.ok(data=_dump(await service.update_stops(booking_id, patch)), message="Stops updated")


@router.patch("/{booking_id}/schedule")
async def update_booking_schedule(
    booking_id: UUID,
    patch: BookingScheduleUpdate,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    return ApiResponse.ok(data=_dump(await service.update_schedule(booking_id, patch)), message="Schedule updated")


@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    await service.delete_booking(booking_id)
    return ApiResponse.ok(message="Booking deleted")


# =============================================================================
# ПЕРЕХОДЫ
# =============================================================================

@router.post("/{booking_id}/accept")
async def accept_booking(
    booking_id: UUID,
    request: DriverActionRequest,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    booking = await service.accept_booking(booking_id, request.driver_id)
    return ApiResponse.ok(data=_dump(booking), message="Booking accepted")


@router.post("/{booking_id}/reject")
async def reject_booking(
    booking_id: UUID,
    request: DriverActionRequest,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    booking = await service.reject_booking(booking_id, request.driver_id)
    return ApiResponse.ok(data=_dump(booking), message="Booking rejected")


@router.post("/{booking_id}/driver-cancel")
async def driver_cancel_booking(
    booking_id: UUID,
    request: DriverCancelRequest,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    booking, dispatch = await service.driver_cancel_booking(booking_id, request.driver_id, request.reason)
    return ApiResponse.ok(
        data=_dump(booking),
        message="Booking released back to pending",
        meta=_dispatch_meta(dispatch),
    )


@router.post("/{booking_id}/payment")
async def confirm_advance_payment(
    booking_id: UUID,
    request: PaymentConfirmRequest,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    booking = await service.confirm_advance_payment(
        booking_id,
        request.method,
        request.amount,
        request.transaction_id,
    )
    return ApiResponse.ok(data=_dump(booking), message="Advance payment confirmed")


@router.post("/{booking_id}/start")
async def start_trip(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    return ApiResponse.ok(data=_dump(await service.start_trip(booking_id)), message="Trip started")


@router.post("/{booking_id}/generate-otp")
async def generate_completion_otp(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    booking, otp = await service.generate_completion_otp(booking_id)
    data: dict[str, Any] = {
        "booking_id": str(booking.id),
        "expires_in_seconds": settings.booking.OTP_TTL_SECONDS,
    }
    if settings.booking.OTP_IN_RESPONSE:
        data["otp"] = otp
    return ApiResponse.ok(data=data, message="Completion OTP generated")


@router.post("/{booking_id}/complete")
async def complete_trip(
    booking_id: UUID,
    request: CompleteTripRequest,
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    booking = await service.complete_trip(booking_id, request.otp)
    return ApiResponse.ok(data=_dump(booking), message="Trip completed")


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: UUID,
    request: CancelBookingRequest = Body(default_factory=CancelBookingRequest),
    service: BookingService = Depends(get_booking_service),
) -> ApiResponse:
    booking = await service.cancel_booking(booking_id, request.reason, request.cancelled_by)
    return ApiResponse.ok(data=_dump(booking), message="Booking cancelled")
