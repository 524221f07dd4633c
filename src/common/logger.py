# src/common/logger.py
"""
Структурированное логирование сервиса бронирований.

Каждая запись несёт extra_data: поля вызывающего кода (функция, модуль,
файл, строка) плюс доменный контекст (booking_id, driver_id и т.п.).
Вывод: консоль (цветной или JSON формат), общий файл и error.log
с ротацией по размеру.
"""

from __future__ import annotations

import inspect
import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from src.common.constants import TypeMsg


DEFAULT_LOGGER_NAME = "trip_booking"

# Файловые хендлеры разделяются всеми логгерами процесса
_GLOBAL_FILE_HANDLER: logging.Handler | None = None
_GLOBAL_ERROR_HANDLER: logging.Handler | None = None

_LOGGING_INITIALIZED: bool = False

_loggers: dict[str, logging.Logger] = {}

_LEVEL_METHODS: dict[TypeMsg, str] = {
    TypeMsg.DEBUG: "debug",
    TypeMsg.INFO: "info",
    TypeMsg.WARNING: "warning",
    TypeMsg.ERROR: "error",
    TypeMsg.CRITICAL: "critical",
}

_NOISY_LOGGERS = ("asyncpg", "redis", "aio_pika", "aiormq", "httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """Одна JSON-запись на строку, для сборщиков логов."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Человекочитаемый вывод для терминала."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[90m"

    def _origin(self, extra_data: dict[str, Any] | None) -> str:
        if not extra_data or not extra_data.get("caller_function"):
            return ""
        where = (
            f"{extra_data.get('caller_module')}.{extra_data.get('caller_function')}() "
            f"{extra_data.get('caller_file')}:{extra_data.get('caller_line')}"
        )
        return f" {self.DIM}[{where}]{self.RESET}"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.DIM)
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            f" {color}[{record.levelname}]{self.RESET}",
            self._origin(getattr(record, "extra_data", None)),
            f" {record.getMessage()}",
        ]
        if record.exc_info:
            parts.append("\n" + self.formatException(record.exc_info))
        return "".join(parts)


def _read_logging_settings() -> dict[str, Any]:
    """Настройки логирования из конфига; при любой проблеме значения по умолчанию."""
    defaults: dict[str, Any] = {
        "level": "DEBUG",
        "format": "colored",
        "to_file": False,
        "file_path": "logs/app.log",
        "max_bytes": 10485760,
        "backup_count": 5,
    }
    try:
        # Ленивый импорт: loader сам пишет в лог
        from src.config import settings

        section = settings.logging
        values = {
            "level": section.LOG_LEVEL,
            "format": section.LOG_FORMAT,
            "to_file": section.LOG_TO_FILE,
            "file_path": section.LOG_FILE_PATH,
            "max_bytes": section.LOG_MAX_BYTES,
            "backup_count": section.LOG_BACKUP_COUNT,
        }
    except Exception:
        return defaults

    # settings может быть подменён MagicMock в тестах
    return {
        key: values[key] if isinstance(values[key], type(default)) else default
        for key, default in defaults.items()
    }


def _file_handler(path: Path, cfg: dict[str, Any], formatter: logging.Formatter) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=cfg["max_bytes"],
        backupCount=cfg.get("backup_count", 5),
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def _attach_file_handlers(logger: logging.Logger, cfg: dict[str, Any], formatter: logging.Formatter) -> None:
    global _GLOBAL_FILE_HANDLER, _GLOBAL_ERROR_HANDLER

    log_path = Path(cfg["file_path"])
    # Несколько процессов на одном хосте пишут в разные файлы
    service_name = os.getenv("SERVICE_NAME")
    if service_name:
        log_path = log_path.with_name(f"{log_path.stem}_{service_name}{log_path.suffix}")

    if _GLOBAL_FILE_HANDLER is None:
        _GLOBAL_FILE_HANDLER = _file_handler(log_path, cfg, formatter)
    if _GLOBAL_ERROR_HANDLER is None:
        _GLOBAL_ERROR_HANDLER = _file_handler(log_path.with_name("error.log"), cfg, formatter)
        _GLOBAL_ERROR_HANDLER.setLevel(logging.ERROR)

    logger.addHandler(_GLOBAL_FILE_HANDLER)
    logger.addHandler(_GLOBAL_ERROR_HANDLER)


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """
    Возвращает настроенный логгер (кэшируется по имени).

    Args:
        name: Имя логгера

    Returns:
        Логгер с консольным и, если включено, файловыми хендлерами
    """
    cached = _loggers.get(name)
    if cached is not None:
        return cached

    cfg = _read_logging_settings()
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, cfg["level"].upper(), logging.DEBUG))

    if not logger.handlers:
        formatter: logging.Formatter = JsonFormatter() if cfg["format"] == "json" else ColoredFormatter()
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        logger.addHandler(console)
        if cfg["to_file"]:
            _attach_file_handlers(logger, cfg, formatter)
        logger.propagate = False

    _loggers[name] = logger
    return logger


def setup_logging() -> None:
    """Создаёт логгер приложения и приглушает библиотеки. Повторный вызов ничего не делает."""
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED:
        return
    _LOGGING_INITIALIZED = True

    get_logger(DEFAULT_LOGGER_NAME)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)


def _get_caller_info(depth: int = 2) -> dict[str, Any]:
    """
    Описывает фрейм, расположенный на depth уровней выше этой функции.

    depth=2: вызывающий код той функции, что вызвала _get_caller_info.
    """
    frame = inspect.currentframe()
    target = frame
    try:
        for _ in range(depth):
            if target is None:
                return {}
            target = target.f_back
        if target is None:
            return {}

        frame_info = inspect.getframeinfo(target)
        module = inspect.getmodule(target)
        return {
            "caller_function": target.f_code.co_name,
            "caller_module": module.__name__ if module else "unknown",
            "caller_file": Path(frame_info.filename).name if frame_info.filename else "unknown",
            "caller_line": frame_info.lineno,
        }
    except Exception:
        return {}
    finally:
        # Фреймы держат локальные переменные живыми
        del frame
        del target


def _emit(
    type_msg: TypeMsg,
    message: str,
    logger_name: str,
    extra: dict[str, Any] | None,
    exc_info: bool = False,
) -> None:
    # Стек: _get_caller_info <- _emit <- log_* <- вызывающий код
    record_extra = {"extra_data": {**_get_caller_info(3), **(extra or {})}}
    logger = get_logger(logger_name)
    method = getattr(logger, _LEVEL_METHODS.get(type_msg, "info"))
    if exc_info:
        method(message, extra=record_extra, exc_info=True)
    else:
        method(message, extra=record_extra)


async def log_info(
    message: str,
    *,
    type_msg: TypeMsg = TypeMsg.INFO,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Пишет сообщение с уровнем, заданным type_msg.

    Args:
        message: Сообщение
        type_msg: Уровень сообщения
        logger_name: Имя логгера
        extra: Доменный контекст записи
    """
    _emit(type_msg, message, logger_name, extra)


async def log_debug(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    _emit(TypeMsg.DEBUG, message, logger_name, extra)


async def log_warning(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    _emit(TypeMsg.WARNING, message, logger_name, extra)


async def log_error(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
    exc_info: bool = False,
) -> None:
    """
    Пишет ошибку; exc_info=True добавляет трейсбек текущего исключения.
    """
    _emit(TypeMsg.ERROR, message, logger_name, extra, exc_info=exc_info)
