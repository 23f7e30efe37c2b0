"""
Shop-wide capacity: how many bookings may run concurrently at a time of day.

Capacity is orthogonal to staff occupancy. A saturated tile is reported as
``capacity`` occupancy, listed after the staff's own occupancy so a staff
reason always wins when both apply.
"""

import math
from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
from typing import Optional, Sequence

from app.models.capacity_config import CapacityConfig
from app.schemas.scheduling import OccupancyReason
from app.services.occupancy import OccupiedInterval
from app.utils.calendar import TimeRange, weekday_of


@dataclass(frozen=True)
class CapacityRule:
    time_slot: time
    max_capacity: int
    peak_hour_multiplier: Decimal = Decimal("1")
    overbooking_allowance: int = 0
    day_of_week: Optional[int] = None

    @classmethod
    def from_model(cls, row: CapacityConfig) -> "CapacityRule":
        return cls(
            time_slot=row.time_slot,
            max_capacity=row.max_capacity,
            peak_hour_multiplier=Decimal(str(row.peak_hour_multiplier)),
            overbooking_allowance=row.overbooking_allowance or 0,
            day_of_week=row.day_of_week,
        )


@dataclass(frozen=True)
class CapacityLimit:
    effective_max: int
    ceiling: int


def effective_limit(rule: CapacityRule) -> CapacityLimit:
    """max(1, floor(max * multiplier)), plus the overbooking allowance."""
    effective_max = max(1, math.floor(Decimal(rule.max_capacity) * rule.peak_hour_multiplier))
    return CapacityLimit(
        effective_max=effective_max,
        ceiling=effective_max + rule.overbooking_allowance,
    )


class CapacityModel:
    def __init__(self, rules: Sequence[CapacityRule]):
        self.rules = tuple(rules)

    def __bool__(self):
        return bool(self.rules)

    def rule_at(self, day: date, at: time) -> Optional[CapacityRule]:
        """The rule in force at ``at``: the latest row starting at or before it.

        Rows for the day's weekday win over rows that apply every day.
        """
        weekday = weekday_of(day)
        started = [rule for rule in self.rules if rule.time_slot <= at]
        specific = [rule for rule in started if rule.day_of_week == weekday]
        candidates = specific or [rule for rule in started if rule.day_of_week is None]
        if not candidates:
            return None
        return max(candidates, key=lambda rule: rule.time_slot)

    def limit_at(self, day: date, at: time) -> Optional[CapacityLimit]:
        rule = self.rule_at(day, at)
        if rule is None:
            return None
        return effective_limit(rule)

    def saturated(
        self, tiles: Sequence[TimeRange], bookings: Sequence[TimeRange]
    ) -> list[OccupiedInterval]:
        """Tiles where the shop-wide booking count has reached the ceiling.

        The allowance is evaluated independently for every tile.
        """
        saturated = []
        for tile in tiles:
            limit = self.limit_at(tile.start.date(), tile.start.time())
            if limit is None:
                continue
            concurrent = sum(1 for booking in bookings if booking.overlaps(tile))
            if concurrent >= limit.ceiling:
                saturated.append(
                    OccupiedInterval(
                        start=tile.start,
                        end=tile.end,
                        reason=OccupancyReason.CAPACITY,
                        detail=f"{concurrent}/{limit.ceiling} concurrent bookings",
                    )
                )
        return saturated
