# src/services/booking_api/driver_routes.py
"""
HTTP-маршруты водителей: координаты, push-токен, статус, заработок.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from src.common.constants import EarningType
from src.core.drivers.models import DriverLocationUpdate, DriverPushTokenUpdate, DriverStatusUpdate
from src.core.drivers.service import DriverService
from src.core.earnings.models import EarningPeriod
from src.services.booking_api.dependencies import get_driver_service
from src.shared.models.common import ApiResponse, PaginatedResponse, PaginationParams

router = APIRouter(prefix="/drivers", tags=["Drivers"])


@router.get("/nearby")
async def find_nearby_drivers(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_m: Optional[float] = Query(None, gt=0),
    service: DriverService = Depends(get_driver_service),
) -> ApiResponse:
    """Диагностика подбора: кого бы уведомили для этой точки."""
    candidates = await service.find_nearby_drivers(lat, lng, radius_m)
    return ApiResponse.ok(
        data=[c.model_dump(mode="json") for c in candidates],
        meta={"count": len(candidates)},
    )


@router.get("/{driver_id}")
async def get_driver(
    driver_id: UUID,
    service: DriverService = Depends(get_driver_service),
) -> ApiResponse:
    driver = await service.get_driver(driver_id)
    return ApiResponse.ok(data=driver.model_dump(mode="json"))


@router.post("/{driver_id}/location")
async def update_location(
    driver_id: UUID,
    request: DriverLocationUpdate,
    service: DriverService = Depends(get_driver_service),
) -> ApiResponse:
    driver = await service.update_location(driver_id, request.latitude, request.longitude)
    return ApiResponse.ok(data=driver.model_dump(mode="json"), message="Location updated")


@router.put("/{driver_id}/push-token")
async def update_push_token(
    driver_id: UUID,
    request: DriverPushTokenUpdate,
    service: DriverService = Depends(get_driver_service),
) -> ApiResponse:
    driver = await service.update_push_token(driver_id, request.push_token)
    return ApiResponse.ok(data=driver.model_dump(mode="json"), message="Push token updated")


@router.patch("/{driver_id}/status")
async def update_status(
    driver_id: UUID,
    request: DriverStatusUpdate,
    service: DriverService = Depends(get_driver_service),
) -> ApiResponse:
    driver = await service.update_status(driver_id, request.status)
    return ApiResponse.ok(data=driver.model_dump(mode="json"), message=f"Status updated to {driver.status.value}")


@router.get("/{driver_id}/earnings")
async def list_earnings(
    driver_id: UUID,
    earning_type: Optional[EarningType] = Query(None, alias="type"),
    period: Optional[EarningPeriod] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: DriverService = Depends(get_driver_service),
) -> ApiResponse:
    pagination = PaginationParams(page=page, page_size=page_size)
    items, total = await service.list_earnings(
        driver_id,
        earning_type=earning_type,
        period=period,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    result = PaginatedResponse.create([item.model_dump(mode="json") for item in items], total, pagination)
    return ApiResponse.ok(data=result.model_dump(mode="json"))


@router.get("/{driver_id}/stats")
async def get_stats(
    driver_id: UUID,
    service: DriverService = Depends(get_driver_service),
) -> ApiResponse:
    stats = await service.get_stats(driver_id)
    return ApiResponse.ok(data=stats.model_dump(mode="json"))


@router.post("/{driver_id}/stats/recompute")
async def recompute_stats(
    driver_id: UUID,
    service: DriverService = Depends(get_driver_service),
) -> ApiResponse:
    driver = await service.recompute_totals(driver_id)
    return ApiResponse.ok(
        data={"total_trips": driver.total_trips, "total_earnings": driver.total_earnings},
        message="Driver totals recomputed from ledger",
    )
