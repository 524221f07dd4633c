# src/common/exceptions.py
"""
Доменные исключения и обработчики ошибок FastAPI.

Каждое исключение знает свой HTTP-статус; обработчики приводят ответ
к единому конверту {"success": false, "message": ...}.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.common.logger import log_error, log_warning


class AppException(Exception):
    """Базовое исключение приложения."""

    def __init__(
        self,
        message: str,
        error_code: str = "ERR_INTERNAL",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Отсутствующие или некорректные входные данные."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"field": field} if field else None,
        )


class NotFoundError(AppException):
    """Запрошенная сущность не найдена."""

    def __init__(self, resource: str, resource_id: Any = None) -> None:
        super().__init__(
            message=f"{resource} not found",
            error_code="ERR_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": str(resource_id) if resource_id is not None else None},
        )


class PreconditionFailedError(AppException):
    """Переход недопустим в текущем состоянии (статус, OTP и т.п.)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            error_code="ERR_PRECONDITION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class ConflictError(AppException):
    """Конфликт с другим активным ресурсом (водитель уже занят)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT",
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


# =============================================================================
# ОБРАБОТЧИКИ
# =============================================================================

def _envelope(message: str, error_code: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message, "error_code": error_code}
    if details:
        body["details"] = details
    return body


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Обработчик доменных исключений."""
    await log_warning(f"{request.method} {request.url.path}: {exc.error_code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(exc.message, exc.error_code, exc.details),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Ошибки валидации тела/параметров запроса -> 400 с сообщением по первому полю."""
    errors = exc.errors()
    message = "Validation error"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))

    safe_errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in errors
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope(message, "ERR_VALIDATION", {"errors": safe_errors}),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTPException из FastAPI/Starlette в едином конверте."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(str(exc.detail), f"ERR_HTTP_{exc.status_code}"),
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Необработанные исключения: детали только в логе."""
    await log_error(
        f"Необработанная ошибка {request.method} {request.url.path}: {type(exc).__name__}: {exc}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope("Internal server error", "ERR_INTERNAL"),
    )
