"""
Calendar arithmetic for the availability engine.

All datetimes handled here are naive shop-local wall-clock values. Slot
tiles start at the beginning of their working window; slot claims use a
fixed grid counted from midnight (``grid_starts``).
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo


@dataclass(frozen=True, order=True)
class TimeRange:
    """Half-open ``[start, end)`` interval."""

    start: datetime
    end: datetime

    def overlaps(self, other: "TimeRange") -> bool:
        return periods_overlap(self.start, self.end, other.start, other.end)

    def contains(self, other: "TimeRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def periods_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Half-open overlap test; touching intervals do not overlap."""
    return a_start < b_end and a_end > b_start


def at_time(day: date, t: time) -> datetime:
    return datetime.combine(day, t)


def day_bounds(day: date) -> TimeRange:
    start = datetime.combine(day, time.min)
    return TimeRange(start, start + timedelta(days=1))


def weekday_of(day: date) -> int:
    """Weekday number with Monday = 0 and Sunday = 6."""
    return day.weekday()


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def iter_days(start: date, count: int) -> Iterator[date]:
    for offset in range(max(count, 0)):
        yield start + timedelta(days=offset)


def align_down(moment: datetime, granularity: int) -> datetime:
    midnight = datetime.combine(moment.date(), time.min)
    minutes = int((moment - midnight).total_seconds() // 60)
    return midnight + timedelta(minutes=(minutes // granularity) * granularity)


def tile(window: TimeRange, granularity: int) -> list[TimeRange]:
    """Split a window into consecutive tiles from its start.

    A trailing remainder shorter than a tile is discarded.
    """
    if granularity <= 0:
        raise ValueError("granularity must be positive")

    step = timedelta(minutes=granularity)
    tiles = []
    current = window.start
    while current + step <= window.end:
        tiles.append(TimeRange(current, current + step))
        current += step
    return tiles


def grid_starts(start: datetime, end: datetime, granularity: int) -> list[datetime]:
    """Start of every grid tile touched by ``[start, end)``."""
    step = timedelta(minutes=granularity)
    starts = []
    current = align_down(start, granularity)
    while current < end:
        starts.append(current)
        current += step
    return starts


def slots_needed(duration_minutes: int, granularity: int) -> int:
    if duration_minutes <= 0:
        raise ValueError("duration must be positive")
    return math.ceil(duration_minutes / granularity)


def merge_ranges(ranges: Iterable[TimeRange]) -> list[TimeRange]:
    """Union of ranges as a sorted list of disjoint ranges.

    Touching ranges are joined.
    """
    merged: list[TimeRange] = []
    for current in sorted(ranges):
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = TimeRange(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def subtract(window: TimeRange, cut: TimeRange) -> list[TimeRange]:
    """Parts of ``window`` not covered by ``cut`` (zero, one or two ranges)."""
    if not window.overlaps(cut):
        return [window]

    parts = []
    if cut.start > window.start:
        parts.append(TimeRange(window.start, cut.start))
    if cut.end < window.end:
        parts.append(TimeRange(cut.end, window.end))
    return parts


def intersect(a: TimeRange, b: TimeRange) -> Optional[TimeRange]:
    start = max(a.start, b.start)
    end = min(a.end, b.end)
    if start >= end:
        return None
    return TimeRange(start, end)


def format_hhmm(moment: datetime) -> str:
    return moment.strftime("%H:%M")


def local_now(timezone_name: str) -> datetime:
    """Current wall-clock time in the shop's timezone, as a naive datetime."""
    return datetime.now(ZoneInfo(timezone_name)).replace(tzinfo=None)
