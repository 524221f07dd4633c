# src/core/pricing/calculator.py
"""
Калькулятор стоимости поездки.
Чистые функции без I/O: тарифы берутся из FareSettings.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, Field

from src.common.constants import TripClass, VehicleClass
from src.common.exceptions import ValidationError
from src.config.loader import FareSettings, VehicleClassRates


def _dec(value: float | int) -> Decimal:
    return Decimal(str(value))


def round_half_up(value: float | Decimal) -> int:
    """Округление до целого, .5 всегда вверх."""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class FareBreakdown(BaseModel):
    """Детализация стоимости (все суммы в целых единицах валюты)."""

    base_fare: int = Field(..., ge=0)
    driver_allowance: int = Field(..., ge=0)
    toll_charges: int = Field(..., ge=0)
    taxes: int = Field(..., ge=0)
    subtotal: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    vehicle_class: VehicleClass
    distance_km: float
    is_round_trip: bool = False
    currency: str = "INR"


class FareCalculator:
    """
    Расчёт стоимости по классу автомобиля и расстоянию.

    Порядок:
        base = d * rate, allowance = d * allowance_rate,
        toll = ceil(d / step) * charge;
        туда-обратно удваивает все три компонента до применения минимума;
        base = max(base, min_fare);
        subtotal = round(base + allowance + toll) по неокруглённым слагаемым;
        taxes = round(subtotal * tax_rate).
    """

    def __init__(self, fares: FareSettings | None = None) -> None:
        if fares is None:
            from src.config import settings
            fares = settings.fares
        self._fares = fares

    @property
    def max_distance_km(self) -> float:
        return self._fares.MAX_DISTANCE_KM

    def resolve_vehicle_class(self, vehicle_class: str | VehicleClass | None) -> VehicleClass:
        """Неизвестный класс заменяется классом по умолчанию."""
        value = vehicle_class.value if isinstance(vehicle_class, VehicleClass) else vehicle_class
        if value in self._fares.VEHICLE_CLASSES:
            try:
                return VehicleClass(value)
            except ValueError:
                pass
        return VehicleClass(self._fares.DEFAULT_VEHICLE_CLASS)

    def _rates(self, vehicle_class: VehicleClass) -> VehicleClassRates:
        return self._fares.VEHICLE_CLASSES[vehicle_class.value]

    def validate_distance(self, distance_km: float | None) -> float:
        """
        Проверяет 0 < distance_km <= MAX_DISTANCE_KM.

        Raises:
            ValidationError: расстояние вне допустимого диапазона
        """
        if distance_km is None:
            raise ValidationError("distance_km is required", field="distance_km")
        if distance_km <= 0:
            raise ValidationError("distance_km must be greater than 0", field="distance_km")
        if distance_km > self._fares.MAX_DISTANCE_KM:
            raise ValidationError(
                f"distance_km must not exceed {self._fares.MAX_DISTANCE_KM:g}",
                field="distance_km",
            )
        return float(distance_km)

    def compute_fare(
        self,
        distance_km: float,
        vehicle_class: str | VehicleClass | None = None,
        is_round_trip: bool = False,
    ) -> FareBreakdown:
        """
        Рассчитывает детализацию стоимости.

        Args:
            distance_km: Расстояние в одну сторону (уже провалидированное)
            vehicle_class: Класс автомобиля
            is_round_trip: Поездка туда-обратно

        Returns:
            FareBreakdown
        """
        resolved = self.resolve_vehicle_class(vehicle_class)
        rates = self._rates(resolved)

        distance = _dec(distance_km)
        base = distance * _dec(rates.BASE_RATE_PER_KM)
        allowance = distance * _dec(rates.DRIVER_ALLOWANCE_PER_KM)
        steps = math.ceil(distance_km / self._fares.TOLL_STEP_KM)
        toll = Decimal(steps) * _dec(self._fares.TOLL_CHARGE_PER_STEP)

        if is_round_trip:
            base *= 2
            allowance *= 2
            toll *= 2

        base = max(base, _dec(rates.MIN_FARE))

        # Сумма берётся от неокруглённых компонентов, поля ниже только для показа
        subtotal = round_half_up(base + allowance + toll)
        taxes = round_half_up(Decimal(subtotal) * _dec(self._fares.TAX_RATE))

        return FareBreakdown(
            base_fare=round_half_up(base),
            driver_allowance=round_half_up(allowance),
            toll_charges=round_half_up(toll),
            taxes=taxes,
            subtotal=subtotal,
            total=subtotal + taxes,
            vehicle_class=resolved,
            distance_km=distance_km,
            is_round_trip=is_round_trip,
            currency=self._fares.CURRENCY,
        )

    def service_charge(self, distance_km: float) -> int:
        """Комиссия платформы: фиксированная ставка за км."""
        return round_half_up(distance_km * self._fares.SERVICE_CHARGE_PER_KM)

    def driver_amount(self, total_price: int, service_charge: int) -> int:
        return max(0, total_price - service_charge)

    def default_trip_class(self, distance_km: float) -> TripClass:
        if distance_km > self._fares.OUTSTATION_THRESHOLD_KM:
            return TripClass.OUTSTATION
        return TripClass.CITY
