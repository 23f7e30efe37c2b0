"""
Persistence access for the availability engine.

Driver-level failures (lost connection, timeouts) surface as
UpstreamUnavailable; a rejected slot claim surfaces as BookingConflict.
"""

import functools
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import BookingConflict, UpstreamUnavailable
from app.models.appointment import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentServiceLine,
    AppointmentStatus,
)
from app.models.business import Business
from app.models.calendar_block import CalendarBlock
from app.models.capacity_config import CapacityConfig
from app.models.date_exception import DateException
from app.models.service import Service
from app.models.slot_claim import CLAIM_GRID_MINUTES, SlotClaim
from app.models.staff import Staff
from app.models.temporary_break import TemporaryBreak
from app.models.working_hours import WorkingHours
from app.schemas.business import BookingPolicySettings
from app.schemas.scheduling import OccupancyReason
from app.services.occupancy import OccupiedInterval
from app.utils.calendar import TimeRange, grid_starts

logger = structlog.get_logger(__name__)


def upstream_guard(method):
    """Translate driver errors of a store call into UpstreamUnavailable."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except (OperationalError, InterfaceError) as e:
            logger.error("Persistence call failed", call=method.__name__, error=str(e))
            raise UpstreamUnavailable(f"Storage unavailable during {method.__name__}") from e

    return wrapper


def _claims_for(staff_id: int, start_at: datetime, end_at: datetime) -> list[SlotClaim]:
    return [
        SlotClaim(staff_id=staff_id, slot_start=cell)
        for cell in grid_starts(start_at, end_at, CLAIM_GRID_MINUTES)
    ]

class SchedulingStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # Shops, staff and services

    @upstream_guard
    async def get_shop_by_uuid(self, shop_uuid: UUID) -> Optional[Business]:
        result = await self.db.execute(select(Business).where(Business.uuid == shop_uuid))
        return result.scalar_one_or_none()

    @upstream_guard
    async def get_shop(self, shop_id: int) -> Optional[Business]:
        result = await self.db.execute(select(Business).where(Business.id == shop_id))
        return result.scalar_one_or_none()

    @upstream_guard
    async def get_services(self, shop_id: int, service_uuids: Sequence[UUID]) -> list[Service]:
        """Active services of the shop among the given uuids."""
        result = await self.db.execute(
            select(Service).where(
                and_(
                    Service.business_id == shop_id,
                    Service.uuid.in_(list(service_uuids)),
                    Service.is_active.is_(True),
                )
            )
        )
        return list(result.scalars().all())

    @upstream_guard
    async def get_active_staff(
        self, shop_id: int, staff_uuids: Optional[Sequence[UUID]] = None
    ) -> list[Staff]:
        query = select(Staff).where(
            and_(Staff.business_id == shop_id, Staff.is_active.is_(True))
        )
        if staff_uuids is not None:
            query = query.where(Staff.uuid.in_(list(staff_uuids)))
        result = await self.db.execute(query.order_by(Staff.display_order, Staff.id))
        return list(result.scalars().all())

    @upstream_guard
    async def get_staff_by_uuid(self, staff_uuid: UUID) -> Optional[Staff]:
        result = await self.db.execute(select(Staff).where(Staff.uuid == staff_uuid))
        return result.scalar_one_or_none()

    # Schedule inputs

    @upstream_guard
    async def get_weekly_rules(self, staff_id: int) -> dict[int, WorkingHours]:
        result = await self.db.execute(
            select(WorkingHours).where(WorkingHours.staff_id == staff_id)
        )
        return {rule.weekday: rule for rule in result.scalars().all()}

    @upstream_guard
    async def get_date_exceptions(
        self, shop_id: int, staff_id: Optional[int], start: date, end: date
    ) -> list[DateException]:
        """Shop-wide exceptions plus the staff member's own, for start..end inclusive."""
        scope = DateException.staff_id.is_(None)
        if staff_id is not None:
            scope = or_(scope, DateException.staff_id == staff_id)

        result = await self.db.execute(
            select(DateException)
            .where(
                and_(
                    DateException.business_id == shop_id,
                    DateException.date >= start,
                    DateException.date <= end,
                    scope,
                )
            )
            .order_by(DateException.date, DateException.id)
        )
        return list(result.scalars().all())

    @upstream_guard
    async def get_temporary_breaks(self, staff_id: int, day: date) -> list[TemporaryBreak]:
        result = await self.db.execute(
            select(TemporaryBreak)
            .where(and_(TemporaryBreak.staff_id == staff_id, TemporaryBreak.date == day))
            .order_by(TemporaryBreak.start_time)
        )
        return list(result.scalars().all())

    @upstream_guard
    async def get_occupancy(
        self, staff_id: int, start: datetime, end: datetime
    ) -> list[OccupiedInterval]:
        """Active appointments and calendar blocks of a staff member overlapping start..end."""
        appointments = await self.db.execute(
            select(Appointment).where(
                and_(
                    Appointment.staff_id == staff_id,
                    Appointment.status.in_(ACTIVE_STATUSES),
                    Appointment.start_at < end,
                    Appointment.end_at > start,
                )
            )
        )
        blocks = await self.db.execute(
            select(CalendarBlock).where(
                and_(
                    CalendarBlock.staff_id == staff_id,
                    CalendarBlock.start_at < end,
                    CalendarBlock.end_at > start,
                )
            )
        )

        occupied = [
            OccupiedInterval(
                start=appointment.start_at,
                end=appointment.end_at,
                reason=OccupancyReason.APPOINTMENT,
                detail=appointment.confirmation_code,
            )
            for appointment in appointments.scalars().all()
        ]
        occupied.extend(
            OccupiedInterval(
                start=block.start_at,
                end=block.end_at,
                reason=OccupancyReason.BLOCK,
                detail=block.block_type,
            )
            for block in blocks.scalars().all()
        )
        return sorted(occupied, key=lambda item: (item.start, item.end))

    @upstream_guard
    async def get_shop_bookings(
        self, shop_id: int, start: datetime, end: datetime
    ) -> list[TimeRange]:
        """Every active reservation in the shop overlapping start..end, any staff."""
        appointments = await self.db.execute(
            select(Appointment.start_at, Appointment.end_at).where(
                and_(
                    Appointment.business_id == shop_id,
                    Appointment.status.in_(ACTIVE_STATUSES),
                    Appointment.start_at < end,
                    Appointment.end_at > start,
                )
            )
        )
        blocks = await self.db.execute(
            select(CalendarBlock.start_at, CalendarBlock.end_at)
            .join(Staff, Staff.id == CalendarBlock.staff_id)
            .where(
                and_(
                    Staff.business_id == shop_id,
                    CalendarBlock.start_at < end,
                    CalendarBlock.end_at > start,
                )
            )
        )
        return [TimeRange(row.start_at, row.end_at) for row in appointments.all()] + [
            TimeRange(row.start_at, row.end_at) for row in blocks.all()
        ]

    @upstream_guard
    async def get_capacity_config(self, shop_id: int) -> list[CapacityConfig]:
        result = await self.db.execute(
            select(CapacityConfig)
            .where(
                and_(
                    CapacityConfig.business_id == shop_id,
                    CapacityConfig.is_active.is_(True),
                )
            )
            .order_by(CapacityConfig.time_slot)
        )
        return list(result.scalars().all())

    async def get_booking_policy(self, shop: Business) -> BookingPolicySettings:
        return BookingPolicySettings.model_validate(shop.policy or {})

    # Reservations

    @upstream_guard
    async def confirmation_code_exists(self, code: str) -> bool:
        result = await self.db.execute(
            select(Appointment.id).where(Appointment.confirmation_code == code)
        )
        return result.first() is not None

    @upstream_guard
    async def get_appointment_by_uuid(self, appointment_uuid: UUID) -> Optional[Appointment]:
        result = await self.db.execute(
            select(Appointment)
            .options(
                selectinload(Appointment.staff),
                selectinload(Appointment.service_lines).selectinload(
                    AppointmentServiceLine.service
                ),
            )
            .where(Appointment.uuid == appointment_uuid)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _commit_with_claims(self, owner, claims: list[SlotClaim]) -> None:
        try:
            self.db.add(owner)
            await self.db.flush()
            for claim in claims:
                if isinstance(owner, Appointment):
                    claim.appointment_id = owner.id
                else:
                    claim.block_id = owner.id
            self.db.add_all(claims)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise BookingConflict("The requested interval was just taken") from e
        except (OperationalError, InterfaceError) as e:
            await self.db.rollback()
            raise UpstreamUnavailable("Storage unavailable while reserving") from e

    async def insert_appointment(
        self,
        shop_id: int,
        staff_id: int,
        services: Sequence[Service],
        start_at: datetime,
        end_at: datetime,
        customer_ref: str,
        confirmation_code: str,
        customer_notes: Optional[str] = None,
    ) -> Appointment:
        """Insert the appointment, its service lines and its slot claims atomically.

        The unique (staff_id, slot_start) claim is the final arbiter between
        concurrent commits: the loser gets BookingConflict.
        """
        appointment = Appointment(
            business_id=shop_id,
            staff_id=staff_id,
            customer_ref=customer_ref,
            start_at=start_at,
            end_at=end_at,
            duration_minutes=sum(service.duration_minutes for service in services),
            total_price=sum((Decimal(str(service.price)) for service in services), Decimal("0")),
            status=AppointmentStatus.PENDING.value,
            confirmation_code=confirmation_code,
            customer_notes=customer_notes,
        )

        offset = 0
        for index, service in enumerate(services):
            appointment.service_lines.append(
                AppointmentServiceLine(
                    service_id=service.id,
                    order_index=index,
                    start_offset_minutes=offset,
                    duration_minutes=service.duration_minutes,
                    unit_price=service.price,
                )
            )
            offset += service.duration_minutes

        claims = _claims_for(staff_id, start_at, end_at)
        await self._commit_with_claims(appointment, claims)
        logger.info(
            "Appointment inserted",
            appointment_id=appointment.id,
            staff_id=staff_id,
            start_at=str(start_at),
            claims=len(claims),
        )
        return appointment

    async def insert_block(
        self,
        staff_id: int,
        start_at: datetime,
        end_at: datetime,
        block_type: str,
        reason: Optional[str],
    ) -> CalendarBlock:
        block = CalendarBlock(
            staff_id=staff_id,
            start_at=start_at,
            end_at=end_at,
            block_type=block_type,
            reason=reason,
        )
        claims = _claims_for(staff_id, start_at, end_at)
        await self._commit_with_claims(block, claims)
        logger.info("Calendar block inserted", block_id=block.id, staff_id=staff_id)
        return block

    @upstream_guard
    async def cancel_appointment(
        self, appointment: Appointment, reason: Optional[str], at: datetime
    ) -> Appointment:
        """Cancel and release the appointment's slot claims in one transaction."""
        appointment.transition_to(AppointmentStatus.CANCELLED, reason=reason, at=at)
        await self.db.execute(delete(SlotClaim).where(SlotClaim.appointment_id == appointment.id))
        await self.db.commit()
        return appointment

    # Holidays

    @upstream_guard
    async def get_shop_exception_dates(self, shop_id: int, start: date, end: date) -> set[date]:
        result = await self.db.execute(
            select(DateException.date).where(
                and_(
                    DateException.business_id == shop_id,
                    DateException.staff_id.is_(None),
                    DateException.date >= start,
                    DateException.date <= end,
                )
            )
        )
        return set(result.scalars().all())

    @upstream_guard
    async def add_date_exceptions(self, exceptions: Sequence[DateException]) -> None:
        self.db.add_all(list(exceptions))
        await self.db.commit()
