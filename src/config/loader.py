# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Секреты и адреса инфраструктуры переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (CONFIG_PATH имеет приоритет)."""
    override = os.getenv("CONFIG_PATH")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "trip_booking"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_FORMAT: str = "colored"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_MAX_BYTES: int = 10485760
    LOG_BACKUP_COUNT: int = 5


class ApiSettings(BaseModel):
    """Настройки HTTP API."""
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_PREFIX: str = "/api/v1"
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])


class GoogleMapsSettings(BaseModel):
    """Настройки Google Maps API (маршруты)."""
    GOOGLE_MAPS_API_KEY: str = ""
    DIRECTIONS_LANGUAGE: str = "en"
    DIRECTIONS_TIMEOUT: float = 10.0

    @field_validator("GOOGLE_MAPS_API_KEY", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает API ключ из переменных окружения."""
        if not v:
            return os.getenv("GOOGLE_MAPS_API_KEY", "")
        return v


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "trip_booking"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "booking"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ (шина доменных событий)."""
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "booking.events"

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class PushSettings(BaseModel):
    """Настройки push-шлюза."""
    PUSH_ENABLED: bool = False
    PUSH_GATEWAY_URL: str = "https://exp.host/--/api/v2/push/send"
    PUSH_ACCESS_TOKEN: str = ""
    PUSH_TIMEOUT: float = 10.0

    @field_validator("PUSH_ACCESS_TOKEN", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает токен доступа из переменных окружения."""
        if not v:
            return os.getenv("PUSH_ACCESS_TOKEN", "")
        return v

    @property
    def is_configured(self) -> bool:
        return self.PUSH_ENABLED and bool(self.PUSH_GATEWAY_URL)


class VehicleClassRates(BaseModel):
    """Тариф класса автомобиля."""
    BASE_RATE_PER_KM: float
    MIN_FARE: float
    DRIVER_ALLOWANCE_PER_KM: float


def _default_vehicle_classes() -> dict[str, VehicleClassRates]:
    return {
        "sedan": VehicleClassRates(BASE_RATE_PER_KM=12, MIN_FARE=500, DRIVER_ALLOWANCE_PER_KM=2),
        "suv": VehicleClassRates(BASE_RATE_PER_KM=16, MIN_FARE=800, DRIVER_ALLOWANCE_PER_KM=2.5),
        "luxury": VehicleClassRates(BASE_RATE_PER_KM=24, MIN_FARE=1500, DRIVER_ALLOWANCE_PER_KM=3),
    }


class FareSettings(BaseModel):
    """Настройки тарифов."""
    VEHICLE_CLASSES: dict[str, VehicleClassRates] = Field(default_factory=_default_vehicle_classes)
    DEFAULT_VEHICLE_CLASS: str = "sedan"
    TOLL_STEP_KM: float = 200.0
    TOLL_CHARGE_PER_STEP: int = 200
    TAX_RATE: float = 0.18
    MAX_DISTANCE_KM: float = 2000.0
    SERVICE_CHARGE_PER_KM: float = 1.0
    OUTSTATION_THRESHOLD_KM: float = 100.0
    CURRENCY: str = "INR"


class SearchSettings(BaseModel):
    """Настройки поиска водителей."""
    DRIVER_SEARCH_RADIUS_M: float = 10000.0
    MAX_DRIVERS_TO_NOTIFY: int = 50
    ELIGIBLE_DRIVER_STATUSES: list[str] = Field(default_factory=lambda: ["active"])
    EXCLUDE_REJECTED_ON_REMATCH: bool = False


class BookingSettings(BaseModel):
    """Настройки жизненного цикла бронирования."""
    ADVANCE_PERCENT_DEFAULT: float = 20.0
    ADVANCE_PERCENT_BY_TYPE: dict[str, float] = Field(default_factory=lambda: {"airport": 25.0})
    OTP_LENGTH: int = 4
    OTP_TTL_SECONDS: int = 600
    OTP_IN_RESPONSE: bool = True
    NEARBY_BOOKINGS_RADIUS_KM: float = 30.0


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    system: SystemSettings = Field(default_factory=SystemSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    google_maps: GoogleMapsSettings = Field(default_factory=GoogleMapsSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    push: PushSettings = Field(default_factory=PushSettings)
    fares: FareSettings = Field(default_factory=FareSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    booking: BookingSettings = Field(default_factory=BookingSettings)

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты и хосты переопределяются из переменных окружения.
        """
        data = load_config_json(path)
        environment = os.getenv("ENVIRONMENT", data.get("ENVIRONMENT", "development"))

        vehicle_classes = data.get("VEHICLE_CLASSES")

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "trip_booking"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", True),
                ENVIRONMENT=environment,
            ),
            logging=LoggingSettings(
                LOG_LEVEL=os.getenv("LOG_LEVEL", data.get("LOG_LEVEL", "DEBUG")),
                LOG_FORMAT=data.get("LOG_FORMAT", "colored"),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
                LOG_BACKUP_COUNT=data.get("LOG_BACKUP_COUNT", 5),
            ),
            api=ApiSettings(
                API_HOST=os.getenv("API_HOST", data.get("API_HOST", "0.0.0.0")),
                API_PORT=int(os.getenv("API_PORT", data.get("API_PORT", 8000))),
                API_PREFIX=data.get("API_PREFIX", "/api/v1"),
                CORS_ORIGINS=data.get("CORS_ORIGINS", ["*"]),
            ),
            google_maps=GoogleMapsSettings(
                GOOGLE_MAPS_API_KEY=os.getenv("GOOGLE_MAPS_API_KEY", data.get("GOOGLE_MAPS_API_KEY", "")),
                DIRECTIONS_LANGUAGE=data.get("DIRECTIONS_LANGUAGE", "en"),
                DIRECTIONS_TIMEOUT=data.get("DIRECTIONS_TIMEOUT", 10.0),
            ),
            database=DatabaseSettings(
                DB_HOST=os.getenv("DB_HOST", data.get("DB_HOST", "localhost")),
                DB_PORT=int(os.getenv("DB_PORT", data.get("DB_PORT", 5432))),
                DB_NAME=os.getenv("DB_NAME", data.get("DB_NAME", "trip_booking")),
                DB_USER=os.getenv("DB_USER", data.get("DB_USER", "postgres")),
                DB_PASSWORD=os.getenv("DB_PASSWORD", data.get("DB_PASSWORD", "")),
                DB_MIN_POOL_SIZE=data.get("DB_MIN_POOL_SIZE", 5),
                DB_MAX_POOL_SIZE=data.get("DB_MAX_POOL_SIZE", 20),
                DB_COMMAND_TIMEOUT=data.get("DB_COMMAND_TIMEOUT", 60),
            ),
            redis=RedisSettings(
                REDIS_HOST=os.getenv("REDIS_HOST", data.get("REDIS_HOST", "localhost")),
                REDIS_PORT=int(os.getenv("REDIS_PORT", data.get("REDIS_PORT", 6379))),
                REDIS_DB=data.get("REDIS_DB", 0),
                REDIS_PASSWORD=os.getenv("REDIS_PASSWORD", data.get("REDIS_PASSWORD", "")),
                REDIS_NAMESPACE=data.get("REDIS_NAMESPACE", "booking"),
                REDIS_MAX_CONNECTIONS=data.get("REDIS_MAX_CONNECTIONS", 50),
            ),
            rabbitmq=RabbitMQSettings(
                RABBITMQ_HOST=os.getenv("RABBITMQ_HOST", data.get("RABBITMQ_HOST", "localhost")),
                RABBITMQ_PORT=int(os.getenv("RABBITMQ_PORT", data.get("RABBITMQ_PORT", 5672))),
                RABBITMQ_USER=os.getenv("RABBITMQ_USER", data.get("RABBITMQ_USER", "guest")),
                RABBITMQ_PASSWORD=os.getenv("RABBITMQ_PASSWORD", data.get("RABBITMQ_PASSWORD", "guest")),
                RABBITMQ_VHOST=data.get("RABBITMQ_VHOST", "/"),
                RABBITMQ_EXCHANGE=data.get("RABBITMQ_EXCHANGE", "booking.events"),
            ),
            push=PushSettings(
                PUSH_ENABLED=data.get("PUSH_ENABLED", False),
                PUSH_GATEWAY_URL=os.getenv("PUSH_GATEWAY_URL", data.get("PUSH_GATEWAY_URL", "https://exp.host/--/api/v2/push/send")),
                PUSH_ACCESS_TOKEN=os.getenv("PUSH_ACCESS_TOKEN", data.get("PUSH_ACCESS_TOKEN", "")),
                PUSH_TIMEOUT=data.get("PUSH_TIMEOUT", 10.0),
            ),
            fares=FareSettings(
                VEHICLE_CLASSES=vehicle_classes if vehicle_classes else _default_vehicle_classes(),
                DEFAULT_VEHICLE_CLASS=data.get("DEFAULT_VEHICLE_CLASS", "sedan"),
                TOLL_STEP_KM=data.get("TOLL_STEP_KM", 200.0),
                TOLL_CHARGE_PER_STEP=data.get("TOLL_CHARGE_PER_STEP", 200),
                TAX_RATE=data.get("TAX_RATE", 0.18),
                MAX_DISTANCE_KM=data.get("MAX_DISTANCE_KM", 2000.0),
                SERVICE_CHARGE_PER_KM=data.get("SERVICE_CHARGE_PER_KM", 1.0),
                OUTSTATION_THRESHOLD_KM=data.get("OUTSTATION_THRESHOLD_KM", 100.0),
                CURRENCY=data.get("CURRENCY", "INR"),
            ),
            search=SearchSettings(
                DRIVER_SEARCH_RADIUS_M=data.get("DRIVER_SEARCH_RADIUS_M", 10000.0),
                MAX_DRIVERS_TO_NOTIFY=data.get("MAX_DRIVERS_TO_NOTIFY", 50),
                ELIGIBLE_DRIVER_STATUSES=data.get("ELIGIBLE_DRIVER_STATUSES", ["active"]),
                EXCLUDE_REJECTED_ON_REMATCH=data.get("EXCLUDE_REJECTED_ON_REMATCH", False),
            ),
            booking=BookingSettings(
                ADVANCE_PERCENT_DEFAULT=data.get("ADVANCE_PERCENT_DEFAULT", 20.0),
                ADVANCE_PERCENT_BY_TYPE=data.get("ADVANCE_PERCENT_BY_TYPE", {"airport": 25.0}),
                OTP_LENGTH=data.get("OTP_LENGTH", 4),
                OTP_TTL_SECONDS=data.get("OTP_TTL_SECONDS", 600),
                # В production код отдаётся только по отдельному каналу
                OTP_IN_RESPONSE=data.get("OTP_IN_RESPONSE", environment.lower() != "production"),
                NEARBY_BOOKINGS_RADIUS_KM=data.get("NEARBY_BOOKINGS_RADIUS_KM", 30.0),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением config.json подгружает .env (если есть).
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
