"""
Availability aggregator.

Runs the per staff/day pipeline (resolve schedule, collect occupancy, apply
capacity, compile slots, filter by booking rules) across the requested staff
and days, and scans forward for the next bookable slot when the requested
window is empty. The same pipeline re-validates bookings at commit time.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConfigurationError, NotFoundError, UpstreamUnavailable
from app.models.business import Business
from app.models.service import Service
from app.models.staff import Staff
from app.schemas.scheduling import (
    AvailabilityRequest,
    AvailabilityResult,
    DayAvailability,
    EffectiveScheduleResponse,
    NextAvailableSlot,
    OccupancyEntry,
    ScheduleSource,
    StaffAvailability,
    StaffDayError,
    TimeSlot,
    WorkingWindow,
)
from app.services.business_rules import apply_business_rules, within_horizon
from app.services.config_cache import ShopConfig, ShopConfigCache
from app.services.occupancy import OccupancyCollector, OccupiedInterval, merge_occupancy
from app.services.schedule_resolver import ResolvedDay, pick_exceptions, resolve_day
from app.services.slot_compiler import Slot, bookable_starts, compile_slots, tile_windows
from app.services.store import SchedulingStore
from app.utils.calendar import day_bounds, format_hhmm, is_weekend, iter_days, local_now, weekday_of

logger = structlog.get_logger(__name__)


@dataclass
class StaffDayEvaluation:
    staff: Staff
    day: date
    resolved: ResolvedDay
    occupancy: list = field(default_factory=list)  # list[OccupiedInterval]
    slots: list = field(default_factory=list)  # every tile, marked
    bookable: list = field(default_factory=list)  # free contiguous starts
    offered: list = field(default_factory=list)  # bookable starts passing booking rules

    def offers(self, start: datetime) -> bool:
        return any(slot.start == start for slot in self.offered)

    def can_start(self, start: datetime) -> bool:
        return any(slot.start == start for slot in self.bookable)


class AvailabilityService:
    """Availability queries for a shop."""

    def __init__(
        self,
        db: AsyncSession,
        config_cache: ShopConfigCache,
        store: Optional[SchedulingStore] = None,
    ):
        self.db = db
        self.store = store or SchedulingStore(db)
        self.config_cache = config_cache
        self.occupancy = OccupancyCollector(self.store)

    # Query parameters

    async def resolve_shop(self, shop_uuid: UUID) -> Business:
        shop = await self.store.get_shop_by_uuid(shop_uuid)
        if shop is None or not shop.is_active:
            raise NotFoundError(f"Shop not found: {shop_uuid}")
        return shop

    async def resolve_services(self, shop: Business, service_uuids: Sequence[UUID]) -> list[Service]:
        """Requested services in request order; any unknown or inactive id fails the query."""
        found = {service.uuid: service for service in await self.store.get_services(shop.id, service_uuids)}
        missing = [str(uuid) for uuid in service_uuids if uuid not in found]
        if missing:
            raise NotFoundError(f"Unknown or inactive services: {', '.join(missing)}")
        return [found[uuid] for uuid in service_uuids]

    async def resolve_staff(
        self, shop: Business, staff_uuids: Optional[Sequence[UUID]] = None
    ) -> list[Staff]:
        if staff_uuids is not None and not staff_uuids:
            raise NotFoundError("Staff filter is empty")

        staff = await self.store.get_active_staff(shop.id, staff_uuids)
        if staff_uuids is not None:
            found = {member.uuid for member in staff}
            missing = [str(uuid) for uuid in staff_uuids if uuid not in found]
            if missing:
                raise NotFoundError(f"Unknown or inactive staff: {', '.join(missing)}")
        if not staff:
            raise NotFoundError(f"No eligible staff in shop {shop.uuid}")
        return staff

    # Pipeline

    async def resolve_staff_day(self, config: ShopConfig, staff: Staff, day: date) -> ResolvedDay:
        weekly_rules = await self.store.get_weekly_rules(staff.id)
        exceptions = await self.store.get_date_exceptions(config.shop_id, staff.id, day, day)
        shop_exception, staff_exception = pick_exceptions(day, exceptions)
        return resolve_day(day, weekly_rules.get(weekday_of(day)), shop_exception, staff_exception)

    async def collect_staff_day(
        self, config: ShopConfig, staff: Staff, resolved: ResolvedDay
    ) -> list[OccupiedInterval]:
        """Staff occupancy followed by shop capacity saturation."""
        occupied = await self.occupancy.collect(staff.id, resolved.day)
        if config.capacity and resolved.windows:
            bounds = day_bounds(resolved.day)
            bookings = await self.store.get_shop_bookings(config.shop_id, bounds.start, bounds.end)
            tiles = tile_windows(resolved.windows, config.granularity)
            occupied = occupied + config.capacity.saturated(tiles, bookings)
        return occupied

    async def evaluate_staff_day(
        self,
        config: ShopConfig,
        staff: Staff,
        day: date,
        duration_minutes: int,
        now: datetime,
    ) -> StaffDayEvaluation:
        resolved = await self.resolve_staff_day(config, staff, day)
        evaluation = StaffDayEvaluation(staff=staff, day=day, resolved=resolved)
        if not resolved.windows:
            return evaluation

        evaluation.occupancy = await self.collect_staff_day(config, staff, resolved)
        evaluation.slots = compile_slots(resolved.windows, evaluation.occupancy, config.granularity)
        evaluation.bookable = bookable_starts(evaluation.slots, duration_minutes, config.granularity)
        evaluation.offered = apply_business_rules(evaluation.bookable, config.policy, now)
        return evaluation

    async def count_available(
        self, config: ShopConfig, staff: Staff, day: date, now: Optional[datetime] = None
    ) -> int:
        """Number of single tiles still bookable for a staff member on a day."""
        now = now or local_now(config.timezone)
        evaluation = await self.evaluate_staff_day(config, staff, day, config.granularity, now)
        return len(evaluation.offered)

    async def _evaluate_or_record(
        self,
        config: ShopConfig,
        staff: Staff,
        day: date,
        duration_minutes: int,
        now: datetime,
        errors: list,
    ) -> Optional[StaffDayEvaluation]:
        try:
            return await self.evaluate_staff_day(config, staff, day, duration_minutes, now)
        except (ConfigurationError, UpstreamUnavailable) as e:
            logger.warning(
                "Skipping staff day",
                staff_id=staff.id,
                day=str(day),
                error_type=type(e).__name__,
                error=str(e),
            )
            errors.append(
                StaffDayError(
                    staff_uuid=staff.uuid,
                    date=day,
                    error_type=type(e).__name__,
                    message=str(e),
                )
            )
            return None

    # Public operations

    async def query_availability(
        self, request: AvailabilityRequest, now: Optional[datetime] = None
    ) -> AvailabilityResult:
        days = min(request.days or settings.DEFAULT_SEARCH_DAYS, settings.MAX_SEARCH_DAYS)

        shop = await self.resolve_shop(request.shop_uuid)
        services = await self.resolve_services(shop, request.service_uuids)
        staff = await self.resolve_staff(shop, request.staff_uuids)
        config = await self.config_cache.get(shop, self.store)

        now = now or local_now(config.timezone)
        today = now.date()
        duration = sum(service.duration_minutes for service in services)
        price = sum((Decimal(str(service.price)) for service in services), Decimal("0"))

        logger.info(
            "Querying availability",
            shop_id=shop.id,
            services=len(services),
            staff=len(staff),
            start_date=str(request.start_date),
            days=days,
            duration=duration,
        )

        errors: list = []
        result_days = []
        for day in iter_days(request.start_date, days):
            if day < today or not within_horizon(day, config.policy, today):
                continue

            staff_entries = []
            for member in staff:
                evaluation = await self._evaluate_or_record(
                    config, member, day, duration, now, errors
                )
                if evaluation is None or not evaluation.offered:
                    continue
                staff_entries.append(
                    StaffAvailability(
                        staff_uuid=member.uuid,
                        name=member.name,
                        avatar_url=member.avatar_url,
                        slots=[self._time_slot(slot, duration) for slot in evaluation.offered],
                    )
                )

            if staff_entries:
                result_days.append(
                    DayAvailability(
                        date=day,
                        day_name=day.strftime("%A"),
                        is_today=day == today,
                        is_weekend=is_weekend(day),
                        staff=staff_entries,
                    )
                )

        next_available = None
        if not result_days:
            next_available = await self.find_next_available(
                config,
                staff,
                request.start_date + timedelta(days=days),
                duration,
                now,
                errors,
            )

        logger.info(
            "Availability computed",
            shop_id=shop.id,
            days_with_slots=len(result_days),
            errors=len(errors),
            next_available=str(next_available.start_at) if next_available else None,
        )

        return AvailabilityResult(
            shop_uuid=shop.uuid,
            service_uuids=[service.uuid for service in services],
            start_date=request.start_date,
            days_scanned=days,
            total_duration_minutes=duration,
            total_price=price,
            days=result_days,
            next_available_slot=next_available,
            errors=errors,
        )

    async def find_next_available(
        self,
        config: ShopConfig,
        staff: Sequence[Staff],
        start: date,
        duration_minutes: int,
        now: datetime,
        errors: Optional[list] = None,
    ) -> Optional[NextAvailableSlot]:
        """Earliest offered slot on the first day, from ``start``, where any staff has one."""
        errors = errors if errors is not None else []
        today = now.date()

        for day in iter_days(start, settings.FORWARD_SEARCH_DAYS):
            if day < today:
                continue
            if not within_horizon(day, config.policy, today):
                break

            best = None
            for member in staff:
                evaluation = await self._evaluate_or_record(
                    config, member, day, duration_minutes, now, errors
                )
                if evaluation is None or not evaluation.offered:
                    continue
                first = evaluation.offered[0]
                if best is None or first.start < best[1].start:
                    best = (member, first)

            if best is not None:
                member, slot = best
                return NextAvailableSlot(
                    date=day,
                    staff_uuid=member.uuid,
                    staff_name=member.name,
                    start_at=slot.start,
                    end_at=slot.start + timedelta(minutes=duration_minutes),
                    start_time=format_hhmm(slot.start),
                )

        return None

    async def get_effective_schedule(
        self, staff_uuid: UUID, day: date
    ) -> EffectiveScheduleResponse:
        """Resolved windows and tagged occupancy of one staff day, for owner tooling.

        Configuration errors propagate so the owner sees what is wrong.
        """
        staff = await self.store.get_staff_by_uuid(staff_uuid)
        if staff is None:
            raise NotFoundError(f"Staff not found: {staff_uuid}")
        shop = await self.store.get_shop(staff.business_id)
        if shop is None:
            raise NotFoundError(f"Shop not found for staff {staff_uuid}")

        config = await self.config_cache.get(shop, self.store)
        resolved = await self.resolve_staff_day(config, staff, day)
        occupied = await self.collect_staff_day(config, staff, resolved)
        slots = compile_slots(resolved.windows, occupied, config.granularity)

        return EffectiveScheduleResponse(
            staff_uuid=staff.uuid,
            date=day,
            source=ScheduleSource(resolved.source),
            windows=[
                WorkingWindow(start_at=window.start, end_at=window.end)
                for window in resolved.windows
            ],
            occupancy=[
                OccupancyEntry(
                    start_at=item.start,
                    end_at=item.end,
                    reason=item.reason,
                    detail=item.detail,
                )
                for item in occupied
            ],
            merged_occupancy=[
                WorkingWindow(start_at=window.start, end_at=window.end)
                for window in merge_occupancy(occupied)
            ],
            free_slot_count=sum(1 for slot in slots if slot.available),
        )

    @staticmethod
    def _time_slot(slot: Slot, duration_minutes: int) -> TimeSlot:
        end = slot.start + timedelta(minutes=duration_minutes)
        return TimeSlot(
            start_at=slot.start,
            end_at=end,
            start_time=format_hhmm(slot.start),
            end_time=format_hhmm(end),
        )
