# src/core/notifications/service.py
"""
Рассылка push-уведомлений водителям о новой брони.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.core.drivers.models import DriverCandidate
from src.infra.push_client import PushClient, PushMessage


@dataclass(frozen=True)
class BookingSummary:
    """Данные брони, которые видит водитель в уведомлении."""
    booking_id: UUID
    pickup_address: str
    dropoff_address: str
    total_price: int
    distance_km: float
    booking_type: str = "ride"
    currency: str = "INR"


@dataclass(frozen=True)
class DispatchSummary:
    drivers_notified: int
    total_drivers: int


class NotificationDispatcher:
    """
    Отправляет одно сообщение каждому водителю с push-токеном одним пакетом.

    Сбои провайдера не пробрасываются: бронь уже создана,
    уведомление считается best-effort.
    """

    NEW_BOOKING_TITLE = "New booking request"

    def __init__(self, push_client: PushClient | None) -> None:
        self._push = push_client

    @property
    def is_configured(self) -> bool:
        return self._push is not None and self._push.is_configured

    def build_messages(
        self,
        booking: BookingSummary,
        drivers: Sequence[DriverCandidate],
    ) -> list[PushMessage]:
        body = (
            f"{booking.pickup_address} → {booking.dropoff_address} · "
            f"{booking.distance_km:g} km · {booking.currency} {booking.total_price}"
        )
        data = {
            "type": "new_booking",
            "booking_id": str(booking.booking_id),
            "booking_type": booking.booking_type,
            "pickup": booking.pickup_address,
            "dropoff": booking.dropoff_address,
            "fare": booking.total_price,
            "distance_km": booking.distance_km,
        }
        return [
            PushMessage(to=driver.push_token, title=self.NEW_BOOKING_TITLE, body=body, data=data)
            for driver in drivers
            if driver.push_token
        ]

    async def notify_drivers(
        self,
        booking: BookingSummary,
        drivers: Sequence[DriverCandidate],
    ) -> DispatchSummary:
        """
        Рассылает уведомление о брони найденным водителям.

        Returns:
            DispatchSummary(сколько доставлено, скольким отправляли)
        """
        if not self.is_configured:
            await log_info(
                f"Push-провайдер не настроен, уведомления по брони {booking.booking_id} пропущены",
                type_msg=TypeMsg.DEBUG,
            )
            return DispatchSummary(drivers_notified=0, total_drivers=0)

        messages = self.build_messages(booking, drivers)
        if not messages:
            return DispatchSummary(drivers_notified=0, total_drivers=0)

        try:
            result = await self._push.send_batch(messages)
        except Exception as e:
            await log_error(f"Ошибка рассылки уведомлений по брони {booking.booking_id}: {e}")
            return DispatchSummary(drivers_notified=0, total_drivers=len(messages))

        await log_info(
            f"Бронь {booking.booking_id}: уведомлено {result.success_count} из {len(messages)} водителей",
            type_msg=TypeMsg.INFO,
        )
        return DispatchSummary(drivers_notified=result.success_count, total_drivers=len(messages))
