"""
Booking commit protocol.

A client proposes a slot it saw in an availability query; the commit
re-runs the staff/day pipeline on a fresh occupancy read and then inserts
the reservation together with its slot claims. The unique slot claim is the
final arbiter between concurrent commits, so the engine never holds a lock
and never retries.
"""

import secrets
import string
from datetime import date, datetime, timedelta
from typing import Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    BookingConflict,
    NotFoundError,
    PolicyViolation,
    SchedulingError,
)
from app.models.appointment import Appointment, AppointmentStatus
from app.models.service import Service
from app.models.staff import Staff
from app.schemas.booking import (
    AppointmentResponse,
    BlockCreate,
    BlockResponse,
    BookingCommitRequest,
)
from app.services.availability import AvailabilityService
from app.services.business_rules import PolicyRule, violated_rule, within_horizon
from app.services.config_cache import ShopConfig, ShopConfigCache
from app.services.notification_service import AvailabilityNotifier
from app.services.store import SchedulingStore
from app.utils.calendar import local_now

logger = structlog.get_logger(__name__)

CONFIRMATION_CODE_LENGTH = 6
CONFIRMATION_CODE_ATTEMPTS = 10
_CODE_ALPHABET = string.ascii_uppercase + string.digits


class BookingService:
    def __init__(
        self,
        db: AsyncSession,
        config_cache: ShopConfigCache,
        notifier: AvailabilityNotifier,
    ):
        self.db = db
        self.store = SchedulingStore(db)
        self.config_cache = config_cache
        self.notifier = notifier
        self.availability = AvailabilityService(db, config_cache, store=self.store)

    async def commit_booking(
        self, request: BookingCommitRequest, now: Optional[datetime] = None
    ) -> AppointmentResponse:
        """Re-validate the proposed slot and reserve it.

        Raises BookingConflict when the interval is not (or no longer)
        bookable and PolicyViolation when a booking rule rejects it.
        """
        availability = self.availability
        shop = await availability.resolve_shop(request.shop_uuid)
        services = await availability.resolve_services(shop, request.service_uuids)
        staff = (await availability.resolve_staff(shop, [request.staff_uuid]))[0]

        duration = sum(service.duration_minutes for service in services)
        if request.end_at != request.start_at + timedelta(minutes=duration):
            raise BookingConflict(
                f"Interval {request.start_at}-{request.end_at} does not match "
                f"the {duration} minute service duration"
            )

        config = await self.config_cache.get(shop, self.store)
        now = now or local_now(config.timezone)
        day = request.start_at.date()

        if not within_horizon(day, config.policy, now.date()):
            raise PolicyViolation(
                f"{day} is beyond the {config.policy.max_advance_days} day booking horizon"
            )

        evaluation = await availability.evaluate_staff_day(config, staff, day, duration, now)
        if not evaluation.can_start(request.start_at):
            logger.info(
                "Rejected booking for unavailable slot",
                staff_id=staff.id,
                start_at=str(request.start_at),
            )
            raise BookingConflict(f"Slot {request.start_at} is no longer available")

        if not evaluation.offers(request.start_at):
            rule = violated_rule(request.start_at, config.policy, now) or PolicyRule.MINIMUM_NOTICE
            raise PolicyViolation(f"Slot {request.start_at} violates the {rule.value} rule")

        code = await self._generate_confirmation_code()
        appointment = await self.store.insert_appointment(
            shop_id=shop.id,
            staff_id=staff.id,
            services=services,
            start_at=request.start_at,
            end_at=request.end_at,
            customer_ref=request.customer_ref,
            confirmation_code=code,
            customer_notes=request.customer_notes,
        )

        logger.info(
            "Booking committed",
            appointment_id=appointment.id,
            staff_id=staff.id,
            start_at=str(appointment.start_at),
            confirmation_code=code,
        )
        await self._announce(config, staff, day, now, cancelled=False)
        return self._to_response(appointment, staff, services)

    async def cancel_booking(
        self,
        appointment_uuid: UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AppointmentResponse:
        appointment = await self.store.get_appointment_by_uuid(appointment_uuid)
        if appointment is None:
            raise NotFoundError(f"Appointment not found: {appointment_uuid}")
        if not appointment.can_transition_to(AppointmentStatus.CANCELLED):
            raise PolicyViolation(
                f"Appointment in status '{appointment.status}' cannot be cancelled"
            )

        shop = await self.store.get_shop(appointment.business_id)
        config = await self.config_cache.get(shop, self.store)
        now = now or local_now(config.timezone)

        appointment = await self.store.cancel_appointment(appointment, reason, now)
        logger.info(
            "Booking cancelled",
            appointment_id=appointment.id,
            staff_id=appointment.staff_id,
            reason=reason,
        )

        await self._announce(config, appointment.staff, appointment.start_at.date(), now, cancelled=True)
        services = [line.service for line in appointment.service_lines]
        return self._to_response(appointment, appointment.staff, services)

    async def commit_block(
        self, staff_uuid: UUID, block: BlockCreate, now: Optional[datetime] = None
    ) -> BlockResponse:
        """Place a manual hold through the same claim-guarded insert as bookings."""
        staff = await self.store.get_staff_by_uuid(staff_uuid)
        if staff is None or not staff.is_active:
            raise NotFoundError(f"Staff not found: {staff_uuid}")

        shop = await self.store.get_shop(staff.business_id)
        config = await self.config_cache.get(shop, self.store)
        now = now or local_now(config.timezone)

        reserved = await self.store.get_occupancy(staff.id, block.start_at, block.end_at)
        if reserved:
            raise BookingConflict(
                f"Block {block.start_at}-{block.end_at} overlaps {len(reserved)} reservation(s)"
            )

        created = await self.store.insert_block(
            staff_id=staff.id,
            start_at=block.start_at,
            end_at=block.end_at,
            block_type=block.block_type.value,
            reason=block.reason,
        )

        await self._announce(config, staff, block.start_at.date(), now, cancelled=False)
        return BlockResponse(
            id=created.id,
            staff_uuid=staff.uuid,
            start_at=created.start_at,
            end_at=created.end_at,
            block_type=created.block_type,
            reason=created.reason,
        )

    async def _generate_confirmation_code(self) -> str:
        for _ in range(CONFIRMATION_CODE_ATTEMPTS):
            code = "".join(
                secrets.choice(_CODE_ALPHABET) for _ in range(CONFIRMATION_CODE_LENGTH)
            )
            if not await self.store.confirmation_code_exists(code):
                return code
        raise SchedulingError("Could not generate a unique confirmation code")

    async def _announce(
        self, config: ShopConfig, staff: Staff, day: date, now: datetime, cancelled: bool
    ) -> None:
        """Tell the broadcast layer about the new availability count.

        Runs after the reservation is committed; nothing here may fail it.
        """
        try:
            count = await self.availability.count_available(config, staff, day, now)
            if cancelled:
                await self.notifier.on_booking_cancelled(staff.uuid, day, count)
            else:
                await self.notifier.on_booking_committed(staff.uuid, day, count)
        except Exception as e:
            logger.warning(
                "Availability notification failed",
                staff_id=staff.id,
                day=str(day),
                error=str(e),
            )

    @staticmethod
    def _to_response(
        appointment: Appointment, staff: Staff, services: Sequence[Service]
    ) -> AppointmentResponse:
        return AppointmentResponse(
            uuid=appointment.uuid,
            staff_uuid=staff.uuid,
            service_uuids=[service.uuid for service in services],
            customer_ref=appointment.customer_ref,
            start_at=appointment.start_at,
            end_at=appointment.end_at,
            duration_minutes=appointment.duration_minutes,
            total_price=appointment.total_price,
            status=appointment.status,
            confirmation_code=appointment.confirmation_code,
            cancelled_at=appointment.cancelled_at,
            cancellation_reason=appointment.cancellation_reason,
        )
