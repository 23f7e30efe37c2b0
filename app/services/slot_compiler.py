"""
Slot compiler: tiles working windows and finds bookable starts.

A start is bookable when it and the following ``slots_needed - 1`` tiles
are free and contiguous in time, so a service never straddles a break or
the end of a window.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from app.schemas.scheduling import OccupancyReason
from app.services.occupancy import OccupiedInterval
from app.utils.calendar import TimeRange, slots_needed, tile


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    available: bool = True
    reason: Optional[OccupancyReason] = None


def tile_windows(windows: Sequence[TimeRange], granularity: int) -> list[TimeRange]:
    return [piece for window in windows for piece in tile(window, granularity)]


def compile_slots(
    windows: Sequence[TimeRange],
    occupancy: Sequence[OccupiedInterval],
    granularity: int,
) -> list[Slot]:
    """Every tile of the windows, marked with the first occupancy it overlaps."""
    slots = []
    for piece in tile_windows(windows, granularity):
        reason = None
        for item in occupancy:
            if item.start < piece.end and item.end > piece.start:
                reason = item.reason
                break
        slots.append(
            Slot(start=piece.start, end=piece.end, available=reason is None, reason=reason)
        )
    return slots


def bookable_starts(
    slots: Sequence[Slot], duration_minutes: int, granularity: int
) -> list[Slot]:
    """Tiles that begin a free, contiguous run long enough for the duration."""
    needed = slots_needed(duration_minutes, granularity)
    bookable = []
    for index, first in enumerate(slots):
        run = slots[index:index + needed]
        if len(run) < needed:
            break
        if not all(slot.available for slot in run):
            continue
        if any(run[i].end != run[i + 1].start for i in range(len(run) - 1)):
            continue
        bookable.append(first)
    return bookable
