"""
Occupancy collector: every interval that consumes a staff member's time.

The tagged list keeps one entry per source row so the slot compiler can
report why a tile is blocked. ``merge_occupancy`` is for display only.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Sequence

import structlog

from app.core.exceptions import ConfigurationError
from app.models.temporary_break import TemporaryBreak
from app.schemas.scheduling import OccupancyReason
from app.utils.calendar import TimeRange, at_time, day_bounds, merge_ranges

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OccupiedInterval:
    start: datetime
    end: datetime
    reason: OccupancyReason
    detail: Optional[str] = None

    @property
    def range(self) -> TimeRange:
        return TimeRange(self.start, self.end)


def break_intervals(day: date, breaks: Sequence[TemporaryBreak]) -> list[OccupiedInterval]:
    """Temporary breaks of one day as time-off occupancy.

    Overlapping breaks are a configuration conflict and are reported with
    every conflicting pair rather than merged.
    """
    intervals = []
    for item in breaks:
        if item.start_time >= item.end_time:
            raise ConfigurationError(
                f"Temporary break {item.id} on {day}: end {item.end_time} "
                f"is not after start {item.start_time}"
            )
        intervals.append(
            (item, TimeRange(at_time(day, item.start_time), at_time(day, item.end_time)))
        )

    intervals.sort(key=lambda pair: pair[1])
    conflicts = []
    for i, (first, first_range) in enumerate(intervals):
        for second, second_range in intervals[i + 1:]:
            if second_range.start >= first_range.end:
                break
            conflicts.append(
                f"{first.start_time}-{first.end_time} / {second.start_time}-{second.end_time}"
            )
    if conflicts:
        raise ConfigurationError(
            f"Overlapping temporary breaks on {day}: {'; '.join(conflicts)}"
        )

    return [
        OccupiedInterval(
            start=window.start,
            end=window.end,
            reason=OccupancyReason.TIME_OFF,
            detail=item.reason,
        )
        for item, window in intervals
    ]


def collect_occupancy(
    day: date,
    reservations: Sequence[OccupiedInterval],
    temporary_breaks: Sequence[TemporaryBreak] = (),
) -> list[OccupiedInterval]:
    """Combine reservations and breaks overlapping ``day``, sorted by start."""
    bounds = day_bounds(day)
    occupied = [
        item for item in reservations if bounds.overlaps(item.range)
    ] + break_intervals(day, temporary_breaks)
    return sorted(occupied, key=lambda item: (item.start, item.end))


def merge_occupancy(occupied: Sequence[OccupiedInterval]) -> list[TimeRange]:
    return merge_ranges(item.range for item in occupied)


class OccupancyCollector:
    """Fetches and normalizes the occupancy of one staff member per day."""

    def __init__(self, store):
        self.store = store

    async def collect(self, staff_id: int, day: date) -> list[OccupiedInterval]:
        bounds = day_bounds(day)
        reservations = await self.store.get_occupancy(staff_id, bounds.start, bounds.end)
        breaks = await self.store.get_temporary_breaks(staff_id, day)
        occupied = collect_occupancy(day, reservations, breaks)

        logger.debug(
            "Collected occupancy",
            staff_id=staff_id,
            day=str(day),
            reservations=len(reservations),
            breaks=len(breaks),
        )
        return occupied
