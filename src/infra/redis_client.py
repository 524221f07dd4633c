# src/infra/redis_client.py
"""
Клиент Redis для гео-индекса свободных водителей.

Индекс хранится как GEO-набор (ZSET под капотом): member = driver_id.
Источник истины по статусам водителей остаётся в PostgreSQL.
"""

from __future__ import annotations

from typing import Any

import redis.asyncio as redis

from src.common.logger import get_logger, log_error, log_info
from src.common.constants import TypeMsg

logger = get_logger("redis")


class RedisClient:
    """
    Singleton поверх redis.asyncio.Redis.
    Ключи снаружи передаются без префикса: namespace добавляется здесь.
    """

    _instance: RedisClient | None = None
    _client: redis.Redis | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client = None
        self._namespace = "booking"

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("RedisClient.connect() ещё не вызывался")
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _make_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def connect(
        self,
        url: str,
        max_connections: int = 50,
        namespace: str | None = None,
    ) -> None:
        """Создаёт пул и проверяет его PING; при ошибке клиент остаётся неподключённым."""
        if self._client is not None:
            return
        if namespace:
            self._namespace = namespace

        client = redis.from_url(url, max_connections=max_connections, decode_responses=True)
        await client.ping()
        self._client = client
        await log_info(f"Redis готов, namespace={self._namespace}", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        await log_info("Redis отключён", type_msg=TypeMsg.INFO)

    async def geoadd(self, key: str, longitude: float, latitude: float, member: str) -> int:
        """
        Ставит или переносит точку member. Порядок аргументов как в Redis: долгота, широта.

        Returns:
            1 для нового участника, 0 при обновлении позиции
        """
        return await self.client.geoadd(self._make_key(key), (longitude, latitude, member))

    async def geosearch(
        self,
        key: str,
        longitude: float,
        latitude: float,
        radius: float,
        unit: str = "m",
        count: int | None = None,
        sort: str = "ASC",
    ) -> list[tuple[str, float]]:
        """
        GEOSEARCH FROMLONLAT BYRADIUS WITHDIST.

        Returns:
            Пары (member, расстояние в unit), ближайшие первыми при sort="ASC"
        """
        rows: list[Any] = await self.client.geosearch(
            self._make_key(key),
            longitude=longitude,
            latitude=latitude,
            radius=radius,
            unit=unit,
            sort=sort,
            count=count,
            withdist=True,
        )
        return [(str(member), float(distance)) for member, distance in rows]

    async def georem(self, key: str, member: str) -> int:
        # Отдельной команды GEOREM нет
        return await self.client.zrem(self._make_key(key), member)

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception as e:
            await log_error(f"Redis не отвечает: {e}")
            return False


def get_redis() -> RedisClient:
    return RedisClient()


async def init_redis() -> None:
    """Подключение по settings.redis."""
    from src.config import settings

    cfg = settings.redis
    await get_redis().connect(
        url=cfg.url,
        max_connections=cfg.REDIS_MAX_CONNECTIONS,
        namespace=cfg.REDIS_NAMESPACE,
    )
    await log_info(f"Redis: {cfg.REDIS_HOST}:{cfg.REDIS_PORT}/{cfg.REDIS_DB}", type_msg=TypeMsg.INFO)


async def close_redis() -> None:
    await get_redis().disconnect()
