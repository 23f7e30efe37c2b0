from datetime import time
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


def validate_timezone(timezone: str) -> str:
    """Validate timezone string."""
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Invalid timezone: {timezone}")
    return timezone


class BookingPolicySettings(BaseModel):
    """Shop booking policy, stored as JSON on the business row."""

    slot_granularity_minutes: int = Field(
        15, ge=5, le=240, description="Size of one bookable slot tile"
    )
    minimum_notice_hours: int = Field(
        2, ge=0, description="Minimum hours between booking time and slot start"
    )
    same_day_cutoff: Optional[time] = Field(
        time(18, 0),
        description="Time of day after which same-day booking is refused (null disables)",
    )
    max_advance_days: int = Field(
        60, ge=0, description="Maximum days in advance a slot can be booked"
    )

    @field_validator("slot_granularity_minutes")
    @classmethod
    def validate_granularity(cls, v):
        if (24 * 60) % v != 0:
            raise ValueError("Slot granularity must divide a day evenly")
        return v

