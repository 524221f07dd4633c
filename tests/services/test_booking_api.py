# tests/services/test_booking_api.py
"""
Тесты HTTP-слоя Booking API (TestClient, сервисы подменены через dependency_overrides).
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.common.exceptions import NotFoundError
from src.config import settings
from src.core.drivers.models import DriverCandidate
from src.core.pricing.calculator import FareCalculator
import src.services.booking_api.app as app_module
from src.services.booking_api.app import app
from src.services.booking_api.dependencies import (
    get_booking_service,
    get_driver_service,
    get_fare_calculator,
)

PREFIX = settings.api.API_PREFIX


@pytest.fixture
def driver_service() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def client(booking_service, driver_service, fare_settings):
    app.dependency_overrides[get_booking_service] = lambda: booking_service
    app.dependency_overrides[get_driver_service] = lambda: driver_service
    app.dependency_overrides[get_fare_calculator] = lambda: FareCalculator(fare_settings)
    # Без контекстного менеджера: lifespan (БД, Redis, RabbitMQ) не запускается
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def booking_payload() -> dict:
    return {
        "user_id": str(uuid4()),
        "user_name": "Anita Sharma",
        "source": {"address": "MG Road, Bengaluru", "latitude": 12.9756, "longitude": 77.6050},
        "destination": {"address": "Mysuru Palace", "latitude": 12.3052, "longitude": 76.6552},
        "vehicle_class": "sedan",
        "pickup_date": "2026-11-02",
        "pickup_time": "09:30",
        "distance_km": 120,
    }


class TestCreateAndRead:
    """Создание и чтение броней."""

    def test_create_returns_201_with_dispatch_meta(self, client, booking_payload) -> None:
        response = client.post(f"{PREFIX}/bookings", json=booking_payload)

        body = response.json()
        assert response.status_code == 201
        assert body["success"] is True
        assert body["message"] == "Booking created successfully"
        assert body["data"]["total_price"] == 2218
        assert body["data"]["status"] == "pending"
        assert "completion_otp" not in body["data"]
        assert body["meta"] == {"drivers_notified": 0, "total_drivers": 0}

    def test_body_validation_is_400(self, client, booking_payload) -> None:
        booking_payload["source"]["latitude"] = 120

        response = client.post(f"{PREFIX}/bookings", json=booking_payload)

        assert response.status_code == 400
        assert response.json()["error_code"] == "ERR_VALIDATION"
        assert response.json()["message"].startswith("source.latitude")

    def test_distance_over_limit(self, client, booking_payload) -> None:
        booking_payload["distance_km"] = 2500

        response = client.post(f"{PREFIX}/bookings", json=booking_payload)

        assert response.status_code == 400
        assert response.json()["message"] == "distance_km must not exceed 2000"

    def test_unknown_booking_is_404(self, client) -> None:
        response = client.get(f"{PREFIX}/bookings/{uuid4()}")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Booking not found"
        assert body["error_code"] == "ERR_NOT_FOUND"

    def test_list_paginated(self, client, booking_payload) -> None:
        for _ in range(3):
            client.post(f"{PREFIX}/bookings", json=booking_payload)

        response = client.get(f"{PREFIX}/bookings", params={"status": "pending", "page_size": 2})

        data = response.json()["data"]
        assert data["total"] == 3
        assert data["total_pages"] == 2
        assert len(data["items"]) == 2

    def test_legacy_airport(self, client, driver_repo) -> None:
        payload = {
            "userId": str(uuid4()),
            "bookingType": "drop",
            "passengerName": "Anita",
            "phoneNumber": "+919812345678",
            "flightNumber": "6E 512",
            "airline": "IndiGo",
            "pickupLocation": {"address": "Indiranagar", "coordinates": {"latitude": 12.97, "longitude": 77.64}},
            "dropLocation": {"address": "BLR Airport", "coordinates": {"latitude": 13.19, "longitude": 77.70}},
            "scheduledTime": "2026-11-03T05:45:00",
            "vehicleType": "sedan",
            "distance": 40,
        }

        response = client.post(f"{PREFIX}/bookings/legacy/airport", json=payload)

        data = response.json()["data"]
        assert response.status_code == 201
        assert data["booking_type"] == "airport"
        # 40 км дешевле минимального тарифа седана: 500 + 80 + 200, налог 140
        assert data["total_price"] == 920

        accepted = client.post(
            f"{PREFIX}/bookings/{data['id']}/accept",
            json={"driver_id": str(driver_repo.add().id)},
        )
        # Аванс для аэропорта 25%
        assert accepted.json()["data"]["payment"]["advance_amount"] == 230


class TestLifecycle:
    """Полный путь брони через HTTP."""

    def test_accept_pay_start_complete(self, client, booking_payload, driver_repo, earnings_repo) -> None:
        driver = driver_repo.add()
        booking_id = client.post(f"{PREFIX}/bookings", json=booking_payload).json()["data"]["id"]

        accepted = client.post(f"{PREFIX}/bookings/{booking_id}/accept", json={"driver_id": str(driver.id)})
        assert accepted.json()["data"]["status"] == "accepted"
        assert accepted.json()["data"]["payment"]["advance_amount"] == 444

        paid = client.post(f"{PREFIX}/bookings/{booking_id}/payment", json={"method": "upi", "amount": 444})
        assert paid.json()["data"]["status"] == "confirmed"

        started = client.post(f"{PREFIX}/bookings/{booking_id}/start")
        assert started.json()["data"]["status"] == "started"

        with patch.object(settings.booking, "OTP_IN_RESPONSE", True):
            otp_response = client.post(f"{PREFIX}/bookings/{booking_id}/generate-otp")
        otp_data = otp_response.json()["data"]
        assert otp_data["expires_in_seconds"] == 600

        wrong = client.post(f"{PREFIX}/bookings/{booking_id}/complete", json={"otp": "x"})
        assert wrong.status_code == 400
        assert wrong.json()["message"] == "Invalid completion OTP"

        completed = client.post(f"{PREFIX}/bookings/{booking_id}/complete", json={"otp": otp_data["otp"]})
        assert completed.status_code == 200
        assert completed.json()["data"]["status"] == "completed"
        assert sum(e.amount for e in earnings_repo.entries) == 2098
        assert driver_repo.drivers[driver.id].total_trips == 1

    def test_busy_driver_is_409(self, client, booking_payload, driver_repo) -> None:
        driver = driver_repo.add()
        first = client.post(f"{PREFIX}/bookings", json=booking_payload).json()["data"]["id"]
        second = client.post(f"{PREFIX}/bookings", json=booking_payload).json()["data"]["id"]
        client.post(f"{PREFIX}/bookings/{first}/accept", json={"driver_id": str(driver.id)})

        response = client.post(f"{PREFIX}/bookings/{second}/accept", json={"driver_id": str(driver.id)})

        assert response.status_code == 409
        assert response.json()["error_code"] == "ERR_CONFLICT"

    def test_start_pending_is_400(self, client, booking_payload) -> None:
        booking_id = client.post(f"{PREFIX}/bookings", json=booking_payload).json()["data"]["id"]

        response = client.post(f"{PREFIX}/bookings/{booking_id}/start")

        assert response.status_code == 400
        assert response.json()["error_code"] == "ERR_PRECONDITION"

    @pytest.mark.parametrize(
        "body",
        [
            {"pickup_date": None},
            {"pickup_time": None},
            {"is_round_trip": None},
            {"pickup_date": None, "is_round_trip": True, "return_date": "2026-12-01"},
        ],
    )
    def test_null_schedule_fields_are_400(self, client, booking_payload, body) -> None:
        booking_id = client.post(f"{PREFIX}/bookings", json=booking_payload).json()["data"]["id"]

        response = client.patch(f"{PREFIX}/bookings/{booking_id}/schedule", json=body)

        assert response.status_code == 400
        assert response.json()["error_code"] == "ERR_VALIDATION"
        stored = client.get(f"{PREFIX}/bookings/{booking_id}").json()["data"]
        assert stored["pickup_date"] == "2026-11-02"
        assert stored["pickup_time"] == "09:30"
        assert stored["is_round_trip"] is False

    def test_cancel_without_body(self, client, booking_payload) -> None:
        booking_id = client.post(f"{PREFIX}/bookings", json=booking_payload).json()["data"]["id"]

        response = client.post(f"{PREFIX}/bookings/{booking_id}/cancel")

        assert response.json()["data"]["status"] == "cancelled"
        assert response.json()["data"]["cancelled_by"] == "user"


class TestDriversAndPricing:
    def test_pricing_calculate(self, client) -> None:
        response = client.post(f"{PREFIX}/pricing/calculate", json={"distance_km": 120, "vehicle_class": "sedan"})

        data = response.json()["data"]
        assert (data["base_fare"], data["driver_allowance"], data["toll_charges"]) == (1440, 240, 200)
        assert data["total"] == 2218

    def test_pricing_requires_distance(self, client) -> None:
        response = client.post(f"{PREFIX}/pricing/calculate", json={})
        assert response.status_code == 400
        assert response.json()["message"] == "distance_km is required"

    def test_nearby_drivers(self, client, driver_service) -> None:
        candidate = DriverCandidate(driver_id=uuid4(), name="Ravi", distance_m=350.0)
        driver_service.find_nearby_drivers.return_value = [candidate]

        response = client.get(f"{PREFIX}/drivers/nearby", params={"lat": 12.97, "lng": 77.59})

        assert response.json()["meta"] == {"count": 1}
        driver_service.find_nearby_drivers.assert_awaited_once_with(12.97, 77.59, None)

    def test_driver_not_found(self, client, driver_service) -> None:
        driver_service.get_driver.side_effect = NotFoundError("Driver", "x")
        assert client.get(f"{PREFIX}/drivers/{uuid4()}").status_code == 404

    def test_unexpected_error_is_500_envelope(self, client, driver_service) -> None:
        driver_service.get_stats.side_effect = RuntimeError("pool exhausted")

        response = client.get(f"{PREFIX}/drivers/{uuid4()}/stats")

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Internal server error", "error_code": "ERR_INTERNAL"}


class TestHealth:
    @pytest.mark.parametrize(
        "postgres, redis, rabbitmq, expected",
        [
            (True, True, True, "healthy"),
            (True, False, True, "degraded"),
            (False, True, True, "unhealthy"),
        ],
    )
    def test_overall_status(self, client, postgres, redis, rabbitmq, expected) -> None:
        db, cache, bus = AsyncMock(), AsyncMock(), AsyncMock()
        db.health_check.return_value = postgres
        cache.health_check.return_value = redis
        bus.health_check.return_value = rabbitmq

        with patch.object(app_module, "get_db", return_value=db), \
                patch.object(app_module, "get_redis", return_value=cache), \
                patch.object(app_module, "get_event_bus", return_value=bus):
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == expected
        assert response.json()["service"] == "booking_api"
