# src/shared/models/common.py
"""
Конверт ответа Booking API и модели постраничной выдачи.
"""

from __future__ import annotations

from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, Field, computed_field


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Каждый ответ API: {success, data?, message?, meta?}."""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    meta: Optional[dict[str, Any]] = None

    @classmethod
    def ok(
        cls,
        data: Any = None,
        message: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> "ApiResponse":
        return cls(success=True, data=data, message=message, meta=meta)


class PaginationParams(BaseModel):
    """page/page_size из query-строки, пересчитанные в LIMIT/OFFSET."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    @property
    def limit(self) -> int:
        return self.page_size

    @property
    def offset(self) -> int:
        return self.page_size * (self.page - 1)


class PaginatedResponse(BaseModel, Generic[T]):
    """Страница списка вместе с общим числом записей."""

    items: list[T]
    total: int
    page: int
    page_size: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        return -(-self.total // self.page_size)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @classmethod
    def create(cls, items: list[T], total: int, pagination: PaginationParams) -> "PaginatedResponse[T]":
        return cls(items=items, total=total, page=pagination.page, page_size=pagination.page_size)


class HealthStatus(BaseModel):
    """Ответ /health: общий статус и состояние каждой зависимости."""

    service: str
    status: Literal["healthy", "degraded", "unhealthy"] = "healthy"
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
