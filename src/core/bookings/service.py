# src/core/bookings/service.py
"""
Жизненный цикл брони.

pending -> accepted -> (confirmed) -> started -> completed
любой нетерминальный -> cancelled; accepted/confirmed -> pending (отказ водителя).

Статус, журнал заработка и счётчики водителя меняются в одной транзакции.
"""

from __future__ import annotations

import math
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence
from uuid import UUID

import asyncpg

from src.common.constants import (
    BookingStatus,
    CancelledBy,
    EarningType,
    PaymentMethod,
    PaymentStatus,
    TypeMsg,
)
from src.common.exceptions import (
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from src.common.logger import log_error, log_info
from src.config.loader import BookingSettings, SearchSettings
from src.core.bookings.models import (
    AdditionalCharges,
    Booking,
    BookingCreate,
    BookingScheduleUpdate,
    BookingStatusPatch,
    BookingStopsUpdate,
    NearbyBooking,
    PaymentInfo,
    validate_round_trip,
)
from src.core.bookings.repository import BookingRepository
from src.core.bookings.state_machine import BookingStateMachine
from src.core.drivers.repository import DriverRepository
from src.core.earnings.models import DriverEarningCreate, EarningTripDetails
from src.core.earnings.repository import EarningsRepository
from src.core.geo.service import DirectionsService, Location
from src.core.geo.utils import calculate_distance
from src.core.matching.service import GeoMatcher
from src.core.notifications.service import BookingSummary, DispatchSummary, NotificationDispatcher
from src.core.pricing.calculator import FareCalculator, round_half_up
from src.infra.database import DatabaseManager
from src.infra.event_bus import EventBus, EventTypes

DRIVER_BUSY_MESSAGE = "Driver already has an active booking. Please complete your active booking first"

# Брони, которые водитель видит в поиске "рядом со мной"
_NEARBY_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

_KM_PER_DEGREE = 111.32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingService:
    """
    Сервис бронирований.

    Все переходы выполняются условным UPDATE по ожидаемому статусу:
    проигравший в гонке получает PreconditionFailedError.
    """

    def __init__(
        self,
        db: DatabaseManager,
        bookings: BookingRepository,
        drivers: DriverRepository,
        earnings: EarningsRepository,
        calculator: FareCalculator,
        matcher: GeoMatcher,
        dispatcher: NotificationDispatcher,
        event_bus: EventBus,
        directions: DirectionsService | None = None,
        booking_settings: BookingSettings | None = None,
        search_settings: SearchSettings | None = None,
    ) -> None:
        if booking_settings is None or search_settings is None:
            from src.config import settings
            booking_settings = booking_settings or settings.booking
            search_settings = search_settings or settings.search

        self._db = db
        self._bookings = bookings
        self._drivers = drivers
        self._earnings = earnings
        self._calculator = calculator
        self._matcher = matcher
        self._dispatcher = dispatcher
        self._event_bus = event_bus
        self._directions = directions
        self._booking_settings = booking_settings
        self._search_settings = search_settings

    # =========================================================================
    # СОЗДАНИЕ
    # =========================================================================

    async def _resolve_route(self, request: BookingCreate) -> tuple[float, Optional[int]]:
        """Расстояние и время из запроса или от провайдера маршрутов."""
        if request.distance_km is not None:
            return request.distance_km, request.duration_minutes

        route = None
        if self._directions is not None:
            route = await self._directions.route(
                Location(request.source.latitude, request.source.longitude),
                Location(request.destination.latitude, request.destination.longitude),
                [Location(stop.latitude, stop.longitude) for stop in request.stops],
            )
        if route is None:
            raise ValidationError("distance_km is required", field="distance_km")
        return route.distance_km, request.duration_minutes or route.duration_minutes

    async def create_booking(self, request: BookingCreate) -> tuple[Booking, DispatchSummary]:
        """
        Создаёт бронь и рассылает уведомления ближайшим водителям.

        Returns:
            (бронь, итог рассылки)

        Raises:
            ValidationError: некорректное расстояние или расписание
        """
        distance_km, duration_minutes = await self._resolve_route(request)
        distance_km = self._calculator.validate_distance(distance_km)

        fare = self._calculator.compute_fare(distance_km, request.vehicle_class, request.is_round_trip)
        service_charge = self._calculator.service_charge(distance_km)
        driver_amount = self._calculator.driver_amount(fare.total, service_charge)
        trip_class = request.trip_class or self._calculator.default_trip_class(distance_km)

        booking = await self._bookings.create({
            "user_id": request.user_id,
            "user_name": request.user_name,
            "user_phone": request.user_phone,
            "vehicle_id": request.vehicle_id,
            "source": request.source,
            "destination": request.destination,
            "stops": request.stops,
            "trip_class": trip_class,
            "booking_type": request.details.booking_type,
            "details": request.details,
            "vehicle_class": fare.vehicle_class,
            "pickup_date": request.pickup_date,
            "pickup_time": request.pickup_time,
            "return_date": request.return_date,
            "is_round_trip": request.is_round_trip,
            "distance_km": distance_km,
            "duration_minutes": duration_minutes,
            "base_price": fare.base_fare,
            "service_charge": service_charge,
            "driver_amount": driver_amount,
            "additional_charges": AdditionalCharges(driver_allowance=fare.driver_allowance),
            "total_price": fare.total,
            "fare_breakdown": fare,
            "payment": PaymentInfo(method=request.payment_method, remaining_amount=fare.total),
        })

        await log_info(
            f"Бронь {booking.id} создана: {distance_km:g} км, {fare.vehicle_class.value}, итого {fare.total}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(EventTypes.BOOKING_CREATED, booking)

        dispatch = await self._match_and_notify(booking)
        return booking, dispatch

    async def _match_and_notify(
        self,
        booking: Booking,
        exclude: Sequence[UUID] = (),
    ) -> DispatchSummary:
        """Поиск водителей и рассылка; ошибки не влияют на уже сохранённую бронь."""
        try:
            candidates = await self._matcher.find_nearby_drivers(
                booking.source.latitude,
                booking.source.longitude,
                exclude=exclude,
            )
        except Exception as e:
            await log_error(f"Поиск водителей для брони {booking.id} не удался: {e}")
            return DispatchSummary(drivers_notified=0, total_drivers=0)

        summary = BookingSummary(
            booking_id=booking.id,
            pickup_address=booking.source.label,
            dropoff_address=booking.destination.label,
            total_price=booking.total_price,
            distance_km=booking.distance_km,
            booking_type=booking.booking_type.value,
        )
        return await self._dispatcher.notify_drivers(summary, candidates)

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_booking(self, booking_id: UUID) -> Booking:
        booking = await self._bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def list_bookings(
        self,
        status: BookingStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Booking], int]:
        return await self._bookings.list_paginated(status=status, limit=limit, offset=offset)

    async def list_user_bookings(self, user_id: UUID) -> list[Booking]:
        return await self._bookings.list_by_user(user_id)

    async def list_driver_bookings(self, driver_id: UUID) -> list[Booking]:
        return await self._bookings.list_by_driver(driver_id)

    async def find_nearby_bookings(
        self,
        driver_id: UUID,
        latitude: float | None = None,
        longitude: float | None = None,
        radius_km: float | None = None,
    ) -> list[NearbyBooking]:
        """
        Открытые брони рядом с водителем, ближайшие первыми.
        Без координат в запросе используется последнее сохранённое местоположение.
        """
        driver = await self._drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFoundError("Driver", driver_id)

        if latitude is None or longitude is None:
            if not driver.has_location:
                raise ValidationError("Driver location is unknown; provide lat and lng", field="lat")
            latitude, longitude = driver.latitude, driver.longitude

        radius = radius_km if radius_km is not None else self._booking_settings.NEARBY_BOOKINGS_RADIUS_KM
        lat_delta = radius / _KM_PER_DEGREE
        lng_delta = radius / max(_KM_PER_DEGREE * abs(_cos_deg(latitude)), 1e-6)

        candidates = await self._bookings.list_open_in_box(
            _NEARBY_STATUSES,
            latitude - lat_delta,
            latitude + lat_delta,
            longitude - lng_delta,
            longitude + lng_delta,
        )

        nearby = []
        for booking in candidates:
            distance = calculate_distance(latitude, longitude, booking.source.latitude, booking.source.longitude)
            if distance <= radius:
                nearby.append(NearbyBooking(booking=booking, distance_from_driver_km=round(distance, 2)))
        nearby.sort(key=lambda item: item.distance_from_driver_km)
        return nearby

    # =========================================================================
    # ВОДИТЕЛЬ: ПРИНЯТИЕ / ОТКАЗ / ОТМЕНА
    # =========================================================================

    def _advance_percent(self, booking: Booking) -> float:
        return self._booking_settings.ADVANCE_PERCENT_BY_TYPE.get(
            booking.booking_type.value,
            self._booking_settings.ADVANCE_PERCENT_DEFAULT,
        )

    async def accept_booking(self, booking_id: UUID, driver_id: UUID) -> Booking:
        """
        Назначает водителя на бронь.

        Raises:
            NotFoundError: бронь или водитель не найдены
            PreconditionFailedError: бронь не в pending или водитель не допущен
            ConflictError: у водителя уже есть активная поездка
        """
        booking = await self.get_booking(booking_id)
        driver = await self._drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFoundError("Driver", driver_id)
        if driver.is_blocked:
            raise PreconditionFailedError(
                f"Driver with status '{driver.status.value}' cannot accept bookings",
                details={"driver_status": driver.status.value},
            )
        expected = BookingStateMachine.require("accept", booking.status)

        if booking.payment.advance_paid:
            # Аванс внесён при прошлом водителе и переходит к новому
            advance = booking.payment.amount
        else:
            advance = round_half_up(booking.total_price * self._advance_percent(booking) / 100)
        payment = booking.payment.model_copy(update={
            "advance_amount": advance,
            "remaining_amount": max(0, booking.total_price - advance),
        })

        try:
            async with self._db.transaction() as conn:
                await self._bookings.lock_driver(driver_id, conn)
                if await self._bookings.has_active_booking(driver_id, conn):
                    raise ConflictError(DRIVER_BUSY_MESSAGE, details={"driver_id": str(driver_id)})

                updated = await self._bookings.update_if_status(
                    booking_id,
                    expected,
                    {
                        "status": BookingStatus.ACCEPTED,
                        "driver_id": driver.id,
                        "driver_name": driver.name,
                        "vehicle_name": driver.vehicle_type,
                        "vehicle_number": driver.vehicle_number,
                        "accepted_at": _utcnow(),
                        "payment": payment,
                    },
                    conn=conn,
                )
                if updated is None:
                    raise PreconditionFailedError("Booking is no longer available for acceptance")
        except asyncpg.UniqueViolationError as e:
            raise ConflictError(DRIVER_BUSY_MESSAGE, details={"driver_id": str(driver_id)}) from e

        await log_info(
            f"Бронь {booking_id} принята водителем {driver_id}, аванс {advance}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(EventTypes.BOOKING_ACCEPTED, updated)
        return updated

    async def reject_booking(self, booking_id: UUID, driver_id: UUID) -> Booking:
        """Фиксирует отказ водителя; статус брони не меняется."""
        booking = await self.get_booking(booking_id)
        if await self._drivers.get_by_id(driver_id) is None:
            raise NotFoundError("Driver", driver_id)
        expected = BookingStateMachine.require("reject", booking.status)

        updated = await self._bookings.add_rejected_driver(booking_id, driver_id, expected)
        if updated is None:
            raise PreconditionFailedError("Booking can no longer be rejected")

        await self._publish(EventTypes.BOOKING_REJECTED, updated, rejected_by=str(driver_id))
        return updated

    async def driver_cancel_booking(
        self,
        booking_id: UUID,
        driver_id: UUID,
        reason: str | None = None,
    ) -> tuple[Booking, DispatchSummary]:
        """
        Водитель отказывается от принятой брони: бронь возвращается в pending
        и снова рассылается водителям поблизости.
        """
        booking = await self.get_booking(booking_id)
        expected = BookingStateMachine.require("driver_cancel", booking.status)
        if booking.driver_id != driver_id:
            raise PreconditionFailedError(
                "Only the assigned driver can cancel this booking",
                details={"driver_id": str(driver_id)},
            )

        payment = booking.payment
        if not payment.advance_paid:
            payment = PaymentInfo(method=payment.method, remaining_amount=booking.total_price)
        updated = await self._bookings.update_if_status(
            booking_id,
            expected,
            {
                "status": BookingStatus.PENDING,
                "driver_id": None,
                "driver_name": None,
                "vehicle_name": None,
                "vehicle_number": None,
                "accepted_at": None,
                "payment": payment,
                "cancellation_reason": reason,
                "cancelled_by": CancelledBy.DRIVER,
            },
            expected_driver_id=driver_id,
        )
        if updated is None:
            raise PreconditionFailedError("Booking was changed by another request; reload and retry")

        await log_info(f"Водитель {driver_id} отказался от брони {booking_id}", type_msg=TypeMsg.INFO)
        await self._publish(EventTypes.BOOKING_DRIVER_CANCELLED, updated, cancelled_driver_id=str(driver_id))

        exclude: list[UUID] = []
        if self._search_settings.EXCLUDE_REJECTED_ON_REMATCH:
            exclude = [*updated.rejected_drivers, driver_id]
        dispatch = await self._match_and_notify(updated, exclude=exclude)
        return updated, dispatch

    # =========================================================================
    # ОПЛАТА / СТАРТ / ЗАВЕРШЕНИЕ
    # =========================================================================

    async def confirm_advance_payment(
        self,
        booking_id: UUID,
        method: PaymentMethod,
        amount: int,
        transaction_id: str | None = None,
    ) -> Booking:
        """Подтверждает оплату аванса: accepted -> confirmed."""
        booking = await self.get_booking(booking_id)
        expected = BookingStateMachine.require("confirm_payment", booking.status)
        if booking.payment.advance_paid:
            raise PreconditionFailedError("Advance payment has already been received")
        if amount != booking.payment.advance_amount:
            raise PreconditionFailedError(
                f"Payment amount must equal the advance amount ({booking.payment.advance_amount})",
                details={"expected": booking.payment.advance_amount, "received": amount},
            )

        payment = booking.payment.model_copy(update={
            "method": method,
            "status": PaymentStatus.PARTIAL,
            "transaction_id": transaction_id,
            "amount": amount,
            "remaining_amount": max(0, booking.total_price - amount),
            "paid_at": _utcnow(),
        })
        updated = await self._bookings.update_if_status(
            booking_id,
            expected,
            {"status": BookingStatus.CONFIRMED, "payment": payment},
        )
        if updated is None:
            raise PreconditionFailedError("Booking was changed by another request; reload and retry")

        await self._publish(EventTypes.BOOKING_CONFIRMED, updated, amount=amount)
        return updated

    def _trip_details(self, booking: Booking) -> EarningTripDetails:
        return EarningTripDetails(
            source=booking.source.label,
            destination=booking.destination.label,
            distance_km=booking.distance_km,
            customer_name=booking.user_name,
            vehicle_type=booking.vehicle_class,
            booking_type=booking.booking_type.value,
        )

    async def start_trip(self, booking_id: UUID) -> Booking:
        """
        Начинает поездку. Аванс (если есть) записывается в журнал
        и зачисляется водителю в той же транзакции.
        """
        booking = await self.get_booking(booking_id)
        expected = BookingStateMachine.require("start", booking.status)

        async with self._db.transaction() as conn:
            updated = await self._bookings.update_if_status(
                booking_id,
                expected,
                {"status": BookingStatus.STARTED, "started_at": _utcnow()},
                conn=conn,
            )
            if updated is None:
                raise PreconditionFailedError("Booking was changed by another request; reload and retry")

            advance = updated.payment.advance_amount
            if advance > 0 and updated.driver_id is not None:
                entry = await self._earnings.append(
                    DriverEarningCreate(
                        driver_id=updated.driver_id,
                        booking_id=updated.id,
                        amount=advance,
                        earning_type=EarningType.ADVANCE_PAYMENT,
                        trip_details=self._trip_details(updated),
                    ),
                    conn=conn,
                )
                if entry is not None:
                    await self._drivers.credit(updated.driver_id, advance, conn=conn)

        await log_info(f"Поездка по брони {booking_id} начата", type_msg=TypeMsg.INFO)
        await self._publish(EventTypes.BOOKING_STARTED, updated)
        return updated

    def _new_otp(self) -> str:
        return "".join(secrets.choice(string.digits) for _ in range(self._booking_settings.OTP_LENGTH))

    async def generate_completion_otp(self, booking_id: UUID) -> tuple[Booking, str]:
        """Генерирует код завершения; предыдущий код перестаёт действовать."""
        booking = await self.get_booking(booking_id)
        expected = BookingStateMachine.require("generate_otp", booking.status)

        otp = self._new_otp()
        updated = await self._bookings.update_if_status(
            booking_id,
            expected,
            {"completion_otp": otp, "otp_generated_at": _utcnow()},
        )
        if updated is None:
            raise PreconditionFailedError("Booking was changed by another request; reload and retry")

        await log_info(f"Сгенерирован код завершения для брони {booking_id}", type_msg=TypeMsg.DEBUG)
        return updated, otp

    def _otp_expired(self, booking: Booking) -> bool:
        if booking.otp_generated_at is None:
            return True
        ttl = timedelta(seconds=self._booking_settings.OTP_TTL_SECONDS)
        return _utcnow() > booking.otp_generated_at + ttl

    async def complete_trip(self, booking_id: UUID, otp: str) -> Booking:
        """
        Завершает поездку по коду клиента.

        Остаток водителю: max(0, driver_amount - advance); запись trip_completion
        создаётся только для положительного остатка.
        """
        booking = await self.get_booking(booking_id)
        if not booking.completion_otp:
            raise PreconditionFailedError("No active completion OTP for this booking; generate a new one")
        expected = BookingStateMachine.require("complete", booking.status)
        if self._otp_expired(booking):
            raise PreconditionFailedError("Completion OTP has expired; generate a new one")
        if not secrets.compare_digest(booking.completion_otp.encode(), otp.strip().encode()):
            raise PreconditionFailedError("Invalid completion OTP")

        advance = booking.payment.advance_amount
        remaining = max(0, booking.driver_amount - advance)
        payment = booking.payment.model_copy(update={
            "status": PaymentStatus.COMPLETED,
            "amount": booking.total_price,
            "remaining_amount": 0,
            "paid_at": _utcnow(),
        })

        async with self._db.transaction() as conn:
            updated = await self._bookings.update_if_status(
                booking_id,
                expected,
                {
                    "status": BookingStatus.COMPLETED,
                    "completed_at": _utcnow(),
                    "completion_otp": None,
                    "otp_generated_at": None,
                    "payment": payment,
                },
                conn=conn,
                expected_otp=booking.completion_otp,
            )
            if updated is None:
                raise PreconditionFailedError("Invalid completion OTP")

            if updated.driver_id is not None:
                credited = 0
                if remaining > 0:
                    entry = await self._earnings.append(
                        DriverEarningCreate(
                            driver_id=updated.driver_id,
                            booking_id=updated.id,
                            amount=remaining,
                            earning_type=EarningType.TRIP_COMPLETION,
                            trip_details=self._trip_details(updated),
                        ),
                        conn=conn,
                    )
                    credited = remaining if entry is not None else 0
                await self._drivers.credit(updated.driver_id, credited, trips=1, conn=conn)

        await log_info(
            f"Поездка по брони {booking_id} завершена, остаток водителю {remaining}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(EventTypes.BOOKING_COMPLETED, updated, remaining_amount=remaining)
        return updated

    # =========================================================================
    # ОТМЕНА / УДАЛЕНИЕ / ИЗМЕНЕНИЕ
    # =========================================================================

    async def cancel_booking(
        self,
        booking_id: UUID,
        reason: str | None = None,
        cancelled_by: CancelledBy = CancelledBy.USER,
    ) -> Booking:
        booking = await self.get_booking(booking_id)
        expected = BookingStateMachine.require("cancel", booking.status)

        updated = await self._bookings.update_if_status(
            booking_id,
            expected,
            {
                "status": BookingStatus.CANCELLED,
                "cancelled_at": _utcnow(),
                "cancellation_reason": reason,
                "cancelled_by": cancelled_by,
                "completion_otp": None,
                "otp_generated_at": None,
            },
        )
        if updated is None:
            raise PreconditionFailedError("Booking was changed by another request; reload and retry")

        await log_info(f"Бронь {booking_id} отменена ({cancelled_by.value})", type_msg=TypeMsg.INFO)
        await self._publish(EventTypes.BOOKING_CANCELLED, updated, cancelled_by=cancelled_by.value)
        return updated

    async def delete_booking(self, booking_id: UUID) -> None:
        """Удаляет бронь, которую ещё никто не принял."""
        booking = await self.get_booking(booking_id)
        BookingStateMachine.require("delete", booking.status)

        if not await self._bookings.delete_if_pending(booking_id):
            raise PreconditionFailedError("Only pending bookings can be deleted")

        await self._event_bus.emit(EventTypes.BOOKING_DELETED, booking_id=str(booking_id))

    async def update_stops(self, booking_id: UUID, patch: BookingStopsUpdate) -> Booking:
        booking = await self.get_booking(booking_id)
        expected = BookingStateMachine.require("update", booking.status)

        updated = await self._bookings.update_if_status(booking_id, expected, {"stops": patch.stops})
        if updated is None:
            raise PreconditionFailedError("Booking was changed by another request; reload and retry")
        return updated

    async def update_schedule(self, booking_id: UUID, patch: BookingScheduleUpdate) -> Booking:
        """Меняет расписание; правило туда-обратно проверяется на итоговых значениях."""
        booking = await self.get_booking(booking_id)
        expected = BookingStateMachine.require("update", booking.status)

        changes = patch.model_dump(exclude_unset=True)
        merged = booking.model_copy(update=changes)
        try:
            validate_round_trip(merged.is_round_trip, merged.pickup_date, merged.return_date)
        except ValueError as e:
            raise ValidationError(str(e), field="return_date") from e

        updated = await self._bookings.update_if_status(booking_id, expected, changes)
        if updated is None:
            raise PreconditionFailedError("Booking was changed by another request; reload and retry")
        return updated

    async def apply_status_change(self, booking_id: UUID, patch: BookingStatusPatch) -> Booking:
        """Выполняет переход, соответствующий целевому статусу из PATCH-запроса."""
        target = patch.status

        if target == BookingStatus.ACCEPTED:
            return await self.accept_booking(booking_id, _required(patch.driver_id, "driver_id"))
        if target == BookingStatus.CONFIRMED:
            return await self.confirm_advance_payment(
                booking_id,
                _required(patch.payment_method, "payment_method"),
                _required(patch.amount, "amount"),
                patch.transaction_id,
            )
        if target in (BookingStatus.STARTED, BookingStatus.IN_PROGRESS):
            return await self.start_trip(booking_id)
        if target == BookingStatus.COMPLETED:
            return await self.complete_trip(booking_id, _required(patch.otp, "otp"))
        if target == BookingStatus.CANCELLED:
            return await self.cancel_booking(booking_id, patch.reason, patch.cancelled_by or CancelledBy.USER)

        # pending: отказ назначенного водителя
        booking, _ = await self.driver_cancel_booking(
            booking_id,
            _required(patch.driver_id, "driver_id"),
            patch.reason,
        )
        return booking

    async def _publish(self, event_type: str, booking: Booking, **extra: Any) -> None:
        await self._event_bus.emit(
            event_type,
            booking_id=str(booking.id),
            status=booking.status.value,
            user_id=str(booking.user_id),
            driver_id=str(booking.driver_id) if booking.driver_id else None,
            **extra,
        )


def _required(value: Any, field: str) -> Any:
    if value is None:
        raise ValidationError(f"{field} is required for this status change", field=field)
    return value


def _cos_deg(degrees: float) -> float:
    return math.cos(math.radians(degrees))
