# tests/common/test_exceptions.py
"""
Тесты доменных исключений и обработчиков ошибок.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError

from src.common.exceptions import (
    AppException,
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
    app_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)


@pytest.fixture
def request_mock() -> MagicMock:
    request = MagicMock()
    request.method = "POST"
    request.url.path = "/api/v1/bookings"
    return request


def _body(response) -> dict:
    return json.loads(response.body)


class TestExceptions:
    """Коды и статусы исключений."""

    @pytest.mark.parametrize(
        "exc, status_code, error_code",
        [
            (ValidationError("bad"), 400, "ERR_VALIDATION"),
            (NotFoundError("Booking", "b-1"), 404, "ERR_NOT_FOUND"),
            (PreconditionFailedError("nope"), 400, "ERR_PRECONDITION"),
            (ConflictError("busy"), 409, "ERR_CONFLICT"),
            (AppException("boom"), 500, "ERR_INTERNAL"),
        ],
    )
    def test_status_codes(self, exc, status_code, error_code) -> None:
        assert exc.status_code == status_code
        assert exc.error_code == error_code

    def test_not_found_message(self) -> None:
        exc = NotFoundError("Driver", 42)
        assert exc.message == "Driver not found"
        assert exc.details == {"resource": "Driver", "id": "42"}

    def test_validation_field_detail(self) -> None:
        assert ValidationError("bad", field="distance_km").details == {"field": "distance_km"}
        assert ValidationError("bad").details == {}


class TestHandlers:
    """Единый конверт ошибок."""

    @pytest.mark.asyncio
    async def test_app_exception(self, request_mock) -> None:
        with patch("src.common.exceptions.log_warning", new_callable=AsyncMock):
            response = await app_exception_handler(request_mock, ConflictError("Driver busy", details={"driver_id": "d-1"}))

        assert response.status_code == 409
        assert _body(response) == {
            "success": False,
            "message": "Driver busy",
            "error_code": "ERR_CONFLICT",
            "details": {"driver_id": "d-1"},
        }

    @pytest.mark.asyncio
    async def test_empty_details_omitted(self, request_mock) -> None:
        with patch("src.common.exceptions.log_warning", new_callable=AsyncMock):
            response = await app_exception_handler(request_mock, PreconditionFailedError("nope"))

        assert "details" not in _body(response)

    @pytest.mark.asyncio
    async def test_request_validation_is_400(self, request_mock) -> None:
        exc = RequestValidationError([
            {"loc": ("body", "source", "latitude"), "msg": "Input should be less than or equal to 90", "type": "less_than_equal"},
        ])

        response = await validation_exception_handler(request_mock, exc)

        body = _body(response)
        assert response.status_code == 400
        assert body["error_code"] == "ERR_VALIDATION"
        assert body["message"] == "source.latitude: Input should be less than or equal to 90"

    @pytest.mark.asyncio
    async def test_http_exception(self, request_mock) -> None:
        response = await http_exception_handler(request_mock, HTTPException(status_code=405, detail="Method Not Allowed"))

        assert response.status_code == 405
        assert _body(response)["error_code"] == "ERR_HTTP_405"

    @pytest.mark.asyncio
    async def test_unexpected_error_hides_details(self, request_mock) -> None:
        with patch("src.common.exceptions.log_error", new_callable=AsyncMock) as mock_error:
            response = await generic_exception_handler(request_mock, RuntimeError("pool exhausted"))

        assert response.status_code == 500
        assert _body(response) == {"success": False, "message": "Internal server error", "error_code": "ERR_INTERNAL"}
        mock_error.assert_awaited_once()
