from datetime import date as date_type, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class OccupancyReason(str, Enum):
    APPOINTMENT = "appointment"
    BLOCK = "block"
    TIME_OFF = "time_off"
    CAPACITY = "capacity"


class ScheduleSource(str, Enum):
    CLOSED_ALL_DAY = "closed_all_day"
    CUSTOM_HOURS = "custom_hours"
    WEEKLY_RULE = "weekly_rule"


class AvailabilityRequest(BaseModel):
    shop_uuid: UUID
    service_uuids: List[UUID] = Field(..., min_length=1)
    staff_uuids: Optional[List[UUID]] = None
    start_date: date_type
    days: Optional[int] = Field(None, ge=1, description="Days to scan, defaults to 7")

    @field_validator("service_uuids")
    @classmethod
    def validate_unique_services(cls, v):
        if len(set(v)) != len(v):
            raise ValueError("Duplicate service ids")
        return v


class TimeSlot(BaseModel):
    start_at: datetime
    end_at: datetime
    start_time: str
    end_time: str


class StaffAvailability(BaseModel):
    staff_uuid: UUID
    name: str
    avatar_url: Optional[str] = None
    slots: List[TimeSlot] = Field(default_factory=list)


class DayAvailability(BaseModel):
    date: date_type
    day_name: str
    is_today: bool
    is_weekend: bool
    staff: List[StaffAvailability] = Field(default_factory=list)


class NextAvailableSlot(BaseModel):
    date: date_type
    staff_uuid: UUID
    staff_name: str
    start_at: datetime
    end_at: datetime
    start_time: str


class StaffDayError(BaseModel):
    """A staff member/day excluded from the result because it failed."""

    staff_uuid: UUID
    date: date_type
    error_type: str
    message: str


class AvailabilityResult(BaseModel):
    shop_uuid: UUID
    service_uuids: List[UUID]
    start_date: date_type
    days_scanned: int
    total_duration_minutes: int
    total_price: Decimal
    days: List[DayAvailability] = Field(default_factory=list)
    next_available_slot: Optional[NextAvailableSlot] = None
    errors: List[StaffDayError] = Field(default_factory=list)


class WorkingWindow(BaseModel):
    start_at: datetime
    end_at: datetime


class OccupancyEntry(BaseModel):
    start_at: datetime
    end_at: datetime
    reason: OccupancyReason
    detail: Optional[str] = None


class EffectiveScheduleResponse(BaseModel):
    """Owner tooling view of how one staff day was resolved."""

    staff_uuid: UUID
    date: date_type
    source: ScheduleSource
    windows: List[WorkingWindow] = Field(default_factory=list)
    occupancy: List[OccupancyEntry] = Field(default_factory=list)
    merged_occupancy: List[WorkingWindow] = Field(default_factory=list)
    free_slot_count: int = 0
