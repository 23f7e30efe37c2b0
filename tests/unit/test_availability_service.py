"""Availability aggregator tests against a real database."""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConfigurationError, NotFoundError
from app.models.appointment import AppointmentStatus
from app.models.capacity_config import CapacityConfig
from app.models.date_exception import DateException, ExceptionType
from app.models.staff import Staff
from app.models.temporary_break import TemporaryBreak
from app.models.working_hours import WeekDay, WorkingHours
from app.schemas.scheduling import AvailabilityRequest, OccupancyReason, ScheduleSource
from app.services.availability import AvailabilityService
from app.services.config_cache import ShopConfigCache
from tests.fixtures.scheduling_fixtures import MONDAY, TUESDAY, create_appointment

NOW = datetime(2030, 1, 7, 8, 0)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))


def staff_slots(result, day: date, staff) -> list:
    for entry in result.days:
        if entry.date != day:
            continue
        for member in entry.staff:
            if member.staff_uuid == staff.uuid:
                return [slot.start_at for slot in member.slots]
    return []


@pytest.fixture
def service(db: AsyncSession) -> AvailabilityService:
    return AvailabilityService(db, ShopConfigCache())


@pytest.mark.unit
class TestQueryAvailability:
    @pytest.mark.asyncio
    async def test_week_of_slots(self, service, sample_business, sample_staff, haircut):
        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=MONDAY,
            ),
            now=NOW,
        )

        # Monday to Saturday, Sunday off
        assert [day.date for day in result.days] == [MONDAY + timedelta(days=i) for i in range(6)]
        assert result.days_scanned == 7
        assert result.total_duration_minutes == 30
        assert result.total_price == Decimal("25.00")
        assert result.next_available_slot is None
        assert result.errors == []

        monday = result.days[0]
        assert monday.is_today
        assert monday.day_name == "Monday"
        assert not monday.is_weekend
        assert result.days[5].is_weekend

        # minimum notice: nothing before 10:00 today
        assert staff_slots(result, MONDAY, sample_staff)[0] == at(MONDAY, 10)

        tuesday = result.days[1].staff[0]
        assert tuesday.name == "John Barber"
        first = tuesday.slots[0]
        assert first.start_at == at(TUESDAY, 9)
        assert first.end_at == at(TUESDAY, 9, 30)
        assert first.start_time == "09:00"
        assert first.end_time == "09:30"
        assert tuesday.slots[-1].start_time == "16:30"
        assert len(tuesday.slots) == 26

    @pytest.mark.asyncio
    async def test_multiple_services_sum_duration_and_price(
        self, service, sample_business, sample_staff, haircut, beard_trim
    ):
        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid, beard_trim.uuid],
                start_date=TUESDAY,
                days=1,
            ),
            now=NOW,
        )

        assert result.total_duration_minutes == 45
        assert result.total_price == Decimal("35.50")
        slots = staff_slots(result, TUESDAY, sample_staff)
        assert at(TUESDAY, 12, 15) in slots
        assert at(TUESDAY, 12, 30) not in slots

    @pytest.mark.asyncio
    async def test_slots_follow_off_grid_shop_hours(self, db, service, sample_business, sample_staff, haircut):
        db.add(
            DateException(
                business_id=sample_business.id,
                date=TUESDAY,
                exception_type=ExceptionType.CUSTOM_HOURS.value,
                start_time=time(9, 10),
                end_time=time(16, 0),
                breaks=[{"start": "12:00", "end": "13:10"}],
            )
        )
        await db.commit()

        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=TUESDAY,
                days=1,
            ),
            now=NOW,
        )

        slots = staff_slots(result, TUESDAY, sample_staff)
        assert slots[0] == at(TUESDAY, 9, 10)
        assert at(TUESDAY, 11, 25) in slots
        assert at(TUESDAY, 13, 10) not in slots
        assert at(TUESDAY, 14, 0) in slots
        assert at(TUESDAY, 15, 30) in slots

    @pytest.mark.asyncio
    async def test_existing_appointment(self, db, service, sample_business, sample_staff, haircut):
        await create_appointment(db, sample_business, sample_staff, at(TUESDAY, 10))

        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=TUESDAY,
                days=1,
            ),
            now=NOW,
        )

        slots = staff_slots(result, TUESDAY, sample_staff)
        assert at(TUESDAY, 9, 30) in slots
        assert at(TUESDAY, 9, 45) not in slots
        assert at(TUESDAY, 10) not in slots
        assert at(TUESDAY, 10, 30) in slots

    @pytest.mark.asyncio
    async def test_cancelled_appointments_free_their_time(
        self, db, service, sample_business, sample_staff, haircut
    ):
        await create_appointment(
            db, sample_business, sample_staff, at(TUESDAY, 10), status=AppointmentStatus.CANCELLED
        )

        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=TUESDAY,
                days=1,
            ),
            now=NOW,
        )

        assert at(TUESDAY, 10) in staff_slots(result, TUESDAY, sample_staff)

    @pytest.mark.asyncio
    async def test_idempotent(self, db, service, sample_business, sample_staff, second_staff, haircut):
        await create_appointment(db, sample_business, second_staff, at(TUESDAY, 11))
        request = AvailabilityRequest(
            shop_uuid=sample_business.uuid,
            service_uuids=[haircut.uuid],
            start_date=MONDAY,
        )

        first = await service.query_availability(request, now=NOW)
        second = await service.query_availability(request, now=NOW)

        assert first.model_dump() == second.model_dump()

    @pytest.mark.asyncio
    async def test_staff_filter(self, service, sample_business, sample_staff, second_staff, haircut):
        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                staff_uuids=[second_staff.uuid],
                start_date=TUESDAY,
                days=1,
            ),
            now=NOW,
        )

        assert [member.staff_uuid for member in result.days[0].staff] == [second_staff.uuid]

    @pytest.mark.asyncio
    async def test_days_beyond_horizon_are_skipped(self, db, service, sample_business, sample_staff, haircut):
        sample_business.policy = {"max_advance_days": 2}
        await db.commit()

        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=MONDAY,
            ),
            now=NOW,
        )

        assert [day.date for day in result.days] == [MONDAY, TUESDAY, date(2030, 1, 9)]


@pytest.mark.unit
class TestQueryFailures:
    @pytest.mark.asyncio
    async def test_unknown_service_fails_fast(self, service, sample_business, sample_staff, haircut):
        with pytest.raises(NotFoundError):
            await service.query_availability(
                AvailabilityRequest(
                    shop_uuid=sample_business.uuid,
                    service_uuids=[haircut.uuid, uuid4()],
                    start_date=MONDAY,
                ),
                now=NOW,
            )

    @pytest.mark.asyncio
    async def test_inactive_service_fails_fast(self, db, service, sample_business, sample_staff, haircut):
        haircut.is_active = False
        await db.commit()

        with pytest.raises(NotFoundError):
            await service.query_availability(
                AvailabilityRequest(
                    shop_uuid=sample_business.uuid,
                    service_uuids=[haircut.uuid],
                    start_date=MONDAY,
                ),
                now=NOW,
            )

    @pytest.mark.asyncio
    async def test_unknown_staff_fails_fast(self, service, sample_business, sample_staff, haircut):
        with pytest.raises(NotFoundError):
            await service.query_availability(
                AvailabilityRequest(
                    shop_uuid=sample_business.uuid,
                    service_uuids=[haircut.uuid],
                    staff_uuids=[uuid4()],
                    start_date=MONDAY,
                ),
                now=NOW,
            )

    @pytest.mark.asyncio
    async def test_no_active_staff_fails_fast(self, db, service, sample_business, sample_staff, haircut):
        sample_staff.is_active = False
        await db.commit()

        with pytest.raises(NotFoundError):
            await service.query_availability(
                AvailabilityRequest(
                    shop_uuid=sample_business.uuid,
                    service_uuids=[haircut.uuid],
                    start_date=MONDAY,
                ),
                now=NOW,
            )

    @pytest.mark.asyncio
    async def test_unknown_shop(self, service, haircut):
        with pytest.raises(NotFoundError):
            await service.query_availability(
                AvailabilityRequest(
                    shop_uuid=uuid4(),
                    service_uuids=[haircut.uuid],
                    start_date=MONDAY,
                ),
                now=NOW,
            )

    @pytest.mark.asyncio
    async def test_misconfigured_staff_day_is_isolated(
        self, db, service, sample_business, sample_staff, haircut
    ):
        broken = Staff(business_id=sample_business.id, name="Broken Hours", display_order=3)
        db.add(broken)
        await db.flush()
        db.add(
            WorkingHours(
                staff_id=broken.id,
                weekday=WeekDay.TUESDAY.value,
                is_working=True,
                start_time=time(17, 0),
                end_time=time(9, 0),
            )
        )
        await db.commit()

        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=TUESDAY,
                days=1,
            ),
            now=NOW,
        )

        assert len(result.errors) == 1
        assert result.errors[0].staff_uuid == broken.uuid
        assert result.errors[0].error_type == "ConfigurationError"
        assert staff_slots(result, TUESDAY, sample_staff)

    @pytest.mark.asyncio
    async def test_overlapping_temporary_breaks_are_reported(
        self, db, service, sample_business, sample_staff, haircut
    ):
        db.add_all(
            [
                TemporaryBreak(staff_id=sample_staff.id, date=TUESDAY, start_time=time(10, 0), end_time=time(11, 0)),
                TemporaryBreak(staff_id=sample_staff.id, date=TUESDAY, start_time=time(10, 30), end_time=time(11, 30)),
            ]
        )
        await db.commit()

        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=TUESDAY,
                days=1,
            ),
            now=NOW,
        )

        assert result.days == []
        assert result.errors[0].date == TUESDAY


@pytest.mark.unit
class TestForwardSearch:
    @pytest.mark.asyncio
    async def test_next_available_after_closed_week(
        self, db, service, sample_business, sample_staff, haircut
    ):
        for offset in range(7):
            db.add(
                DateException(
                    business_id=sample_business.id,
                    date=MONDAY + timedelta(days=offset),
                    exception_type=ExceptionType.CLOSED.value,
                    reason="Renovation",
                )
            )
        await db.commit()

        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=MONDAY,
            ),
            now=NOW,
        )

        assert result.days == []
        suggestion = result.next_available_slot
        assert suggestion is not None
        assert suggestion.date == date(2030, 1, 14)
        assert suggestion.start_at == at(date(2030, 1, 14), 9)
        assert suggestion.end_at == at(date(2030, 1, 14), 9, 30)
        assert suggestion.staff_uuid == sample_staff.uuid

        # the suggestion passes the same pipeline on its own
        config = await service.config_cache.get(sample_business, service.store)
        evaluation = await service.evaluate_staff_day(config, sample_staff, suggestion.date, 30, NOW)
        assert evaluation.offers(suggestion.start_at)

    @pytest.mark.asyncio
    async def test_forward_search_picks_earliest_staff(
        self, db, service, sample_business, sample_staff, second_staff, haircut
    ):
        db.add(
            DateException(
                business_id=sample_business.id,
                staff_id=second_staff.id,
                date=date(2030, 1, 21),
                exception_type=ExceptionType.CUSTOM_HOURS.value,
                start_time=time(7, 0),
                end_time=time(12, 0),
            )
        )
        for offset in range(14):
            db.add(
                DateException(
                    business_id=sample_business.id,
                    staff_id=sample_staff.id,
                    date=MONDAY + timedelta(days=offset),
                    exception_type=ExceptionType.CLOSED.value,
                )
            )
            db.add(
                DateException(
                    business_id=sample_business.id,
                    staff_id=second_staff.id,
                    date=MONDAY + timedelta(days=offset),
                    exception_type=ExceptionType.CLOSED.value,
                )
            )
        await db.commit()

        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=MONDAY,
            ),
            now=NOW,
        )

        suggestion = result.next_available_slot
        assert suggestion.date == date(2030, 1, 21)
        assert suggestion.staff_uuid == second_staff.uuid
        assert suggestion.start_time == "07:00"

    @pytest.mark.asyncio
    async def test_forward_search_gives_up(self, db, service, sample_business, haircut):
        idle = Staff(business_id=sample_business.id, name="Never Works")
        db.add(idle)
        await db.commit()

        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=MONDAY,
            ),
            now=NOW,
        )

        assert result.days == []
        assert result.next_available_slot is None


@pytest.mark.unit
class TestCapacity:
    @pytest.mark.asyncio
    async def test_saturated_shop_blocks_free_staff(
        self, db, service, sample_business, sample_staff, second_staff, haircut
    ):
        db.add(
            CapacityConfig(
                business_id=sample_business.id,
                time_slot=time(0, 0),
                max_capacity=1,
                peak_hour_multiplier=Decimal("1.0"),
                overbooking_allowance=0,
            )
        )
        await db.commit()
        await create_appointment(db, sample_business, sample_staff, at(TUESDAY, 10))

        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=TUESDAY,
                days=1,
            ),
            now=NOW,
        )

        slots = staff_slots(result, TUESDAY, second_staff)
        assert at(TUESDAY, 9, 30) in slots
        assert at(TUESDAY, 9, 45) not in slots
        assert at(TUESDAY, 10) not in slots
        assert at(TUESDAY, 10, 30) in slots

    @pytest.mark.asyncio
    async def test_overbooking_allowance_admits_extra_booking(
        self, db, service, sample_business, sample_staff, second_staff, haircut
    ):
        db.add(
            CapacityConfig(
                business_id=sample_business.id,
                time_slot=time(0, 0),
                max_capacity=1,
                peak_hour_multiplier=Decimal("1.0"),
                overbooking_allowance=1,
            )
        )
        await db.commit()
        await create_appointment(db, sample_business, sample_staff, at(TUESDAY, 10))

        result = await service.query_availability(
            AvailabilityRequest(
                shop_uuid=sample_business.uuid,
                service_uuids=[haircut.uuid],
                start_date=TUESDAY,
                days=1,
            ),
            now=NOW,
        )

        assert at(TUESDAY, 10) in staff_slots(result, TUESDAY, second_staff)


@pytest.mark.unit
class TestEffectiveSchedule:
    @pytest.mark.asyncio
    async def test_windows_and_tagged_occupancy(self, db, service, sample_business, sample_staff):
        await create_appointment(db, sample_business, sample_staff, at(TUESDAY, 10))
        db.add(
            TemporaryBreak(
                staff_id=sample_staff.id,
                date=TUESDAY,
                start_time=time(10, 15),
                end_time=time(11, 0),
                reason="Supplier call",
            )
        )
        await db.commit()

        schedule = await service.get_effective_schedule(sample_staff.uuid, TUESDAY)

        assert schedule.source == ScheduleSource.WEEKLY_RULE
        assert [(w.start_at, w.end_at) for w in schedule.windows] == [
            (at(TUESDAY, 9), at(TUESDAY, 13)),
            (at(TUESDAY, 14), at(TUESDAY, 17)),
        ]
        assert [entry.reason for entry in schedule.occupancy] == [
            OccupancyReason.APPOINTMENT,
            OccupancyReason.TIME_OFF,
        ]
        assert [(w.start_at, w.end_at) for w in schedule.merged_occupancy] == [
            (at(TUESDAY, 10), at(TUESDAY, 11)),
        ]
        assert schedule.free_slot_count == 28 - 4

    @pytest.mark.asyncio
    async def test_closed_day(self, db, service, sample_business, sample_staff):
        db.add(
            DateException(
                business_id=sample_business.id,
                date=TUESDAY,
                exception_type=ExceptionType.CLOSED.value,
            )
        )
        await db.commit()

        schedule = await service.get_effective_schedule(sample_staff.uuid, TUESDAY)

        assert schedule.source == ScheduleSource.CLOSED_ALL_DAY
        assert schedule.windows == []

    @pytest.mark.asyncio
    async def test_configuration_errors_propagate(self, db, service, sample_business, sample_staff):
        db.add(
            DateException(
                business_id=sample_business.id,
                staff_id=sample_staff.id,
                date=TUESDAY,
                exception_type=ExceptionType.CUSTOM_HOURS.value,
                start_time=time(15, 0),
                end_time=time(10, 0),
            )
        )
        await db.commit()

        with pytest.raises(ConfigurationError):
            await service.get_effective_schedule(sample_staff.uuid, TUESDAY)

    @pytest.mark.asyncio
    async def test_unknown_staff(self, service):
        with pytest.raises(NotFoundError):
            await service.get_effective_schedule(uuid4(), TUESDAY)
