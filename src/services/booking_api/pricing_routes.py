# src/services/booking_api/pricing_routes.py
"""
Расчёт стоимости без создания брони.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from src.core.pricing.calculator import FareCalculator
from src.services.booking_api.dependencies import get_fare_calculator
from src.shared.models.common import ApiResponse

router = APIRouter(prefix="/pricing", tags=["Pricing"])


class FareQuoteRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    distance_km: Optional[float] = Field(None, description="Расстояние маршрута, км")
    vehicle_class: Optional[str] = Field(None, description="sedan, suv, luxury")
    is_round_trip: bool = False


@router.post("/calculate")
async def calculate_fare(
    request: FareQuoteRequest,
    calculator: FareCalculator = Depends(get_fare_calculator),
) -> ApiResponse:
    distance_km = calculator.validate_distance(request.distance_km)
    breakdown = calculator.compute_fare(distance_km, request.vehicle_class, request.is_round_trip)
    return ApiResponse.ok(data=breakdown.model_dump(mode="json"))
