# src/infra/push_client.py
"""
HTTP-клиент push-шлюза (Expo-совместимый batch API).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from src.common.logger import log_info
from src.common.constants import TypeMsg


@dataclass(frozen=True)
class PushMessage:
    """Одно push-сообщение на одно устройство."""
    to: str
    title: str
    body: str
    data: dict[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return {
            "to": self.to,
            "title": self.title,
            "body": self.body,
            "data": self.data,
            "sound": "default",
            "priority": "high",
        }


@dataclass(frozen=True)
class PushBatchResult:
    success_count: int
    failure_count: int


class PushClient:
    """
    Отправка пачки сообщений одним POST-запросом.

    Ответ шлюза: {"data": [{"status": "ok" | "error", ...}, ...]}
    в том же порядке, что и отправленные сообщения.
    """

    def __init__(
        self,
        gateway_url: str,
        access_token: str = "",
        timeout: float = 10.0,
        enabled: bool = True,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.gateway_url = gateway_url
        self.enabled = enabled
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self.client = http_client or httpx.AsyncClient(timeout=timeout, headers=headers)

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.gateway_url)

    async def close(self) -> None:
        await self.client.aclose()

    async def send_batch(self, messages: list[PushMessage]) -> PushBatchResult:
        """
        Отправляет сообщения одним запросом.

        Raises:
            httpx.HTTPError: ошибка сети или статус ответа >= 400
        """
        if not messages:
            return PushBatchResult(success_count=0, failure_count=0)

        response = await self.client.post(
            self.gateway_url,
            json=[message.to_payload() for message in messages],
        )
        response.raise_for_status()

        tickets = response.json().get("data") or []
        success = sum(1 for ticket in tickets if ticket.get("status") == "ok")
        result = PushBatchResult(success_count=success, failure_count=len(messages) - success)

        await log_info(
            f"Push-пакет отправлен: {result.success_count} ок, {result.failure_count} ошибок",
            type_msg=TypeMsg.DEBUG,
        )
        return result


def create_push_client() -> PushClient:
    """Создаёт клиент по настройкам из конфигурации."""
    from src.config import settings

    return PushClient(
        gateway_url=settings.push.PUSH_GATEWAY_URL,
        access_token=settings.push.PUSH_ACCESS_TOKEN,
        timeout=settings.push.PUSH_TIMEOUT,
        enabled=settings.push.PUSH_ENABLED,
    )
