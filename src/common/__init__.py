# src/common/__init__.py
"""
Общие утилиты, константы, исключения и логгер.
"""

from src.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from src.common.constants import TypeMsg
from src.common.exceptions import (
    AppException,
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
    "AppException",
    "ConflictError",
    "NotFoundError",
    "PreconditionFailedError",
    "ValidationError",
]
