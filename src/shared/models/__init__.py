# src/shared/models/__init__.py
"""
Общие Pydantic-модели ответов API.
"""

from src.shared.models.common import (
    ApiResponse,
    PaginationParams,
    PaginatedResponse,
    HealthStatus,
)

__all__ = [
    "ApiResponse",
    "PaginationParams",
    "PaginatedResponse",
    "HealthStatus",
]
