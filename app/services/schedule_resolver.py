"""
Schedule resolver: effective working windows for one staff member and date.

Date overrides are evaluated as an ordered pipeline of providers. The first
provider with an opinion decides the day:

1. a shop-wide closure closes the day for everybody;
2. a staff-specific exception replaces the weekly rule;
3. shop-wide custom hours clip the staff's weekly window;
4. otherwise the weekly rule applies as is.

Everything here is pure so it can be tested with plain fixtures.
"""

from dataclasses import dataclass, field
from datetime import date, time
from typing import Callable, Optional, Sequence, Union

from app.core.exceptions import ConfigurationError
from app.models.date_exception import DateException, ExceptionType
from app.models.working_hours import WorkingHours
from app.schemas.scheduling import ScheduleSource
from app.utils.calendar import TimeRange, at_time, intersect, subtract


@dataclass(frozen=True)
class ClosedAllDay:
    reason: Optional[str] = None


@dataclass(frozen=True)
class CustomHours:
    start: time
    end: time
    breaks: tuple = ()  # ((start, end), ...)


@dataclass(frozen=True)
class UseWeeklyRule:
    clip: Optional[CustomHours] = None


DayOverride = Union[ClosedAllDay, CustomHours, UseWeeklyRule]


@dataclass(frozen=True)
class OverrideContext:
    day: date
    shop_exception: Optional[DateException]
    staff_exception: Optional[DateException]


@dataclass
class ResolvedDay:
    day: date
    source: ScheduleSource
    windows: list = field(default_factory=list)  # list[TimeRange]


def _parse_time(value) -> time:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid break time: {value!r}")


def custom_hours_from_exception(exception: DateException) -> CustomHours:
    if exception.start_time is None or exception.end_time is None:
        raise ConfigurationError(
            f"Custom hours on {exception.date} have no start or end time"
        )

    breaks = []
    for entry in exception.breaks or []:
        try:
            breaks.append((_parse_time(entry["start"]), _parse_time(entry["end"])))
        except (KeyError, TypeError):
            raise ConfigurationError(f"Malformed break on {exception.date}: {entry!r}")

    return CustomHours(
        start=exception.start_time, end=exception.end_time, breaks=tuple(breaks)
    )


def _to_override(exception: DateException) -> DayOverride:
    if exception.exception_type == ExceptionType.CLOSED.value:
        return ClosedAllDay(reason=exception.reason)
    if exception.exception_type == ExceptionType.CUSTOM_HOURS.value:
        return custom_hours_from_exception(exception)
    raise ConfigurationError(f"Unknown exception type: {exception.exception_type}")


def shop_closure(ctx: OverrideContext) -> Optional[DayOverride]:
    exception = ctx.shop_exception
    if exception is not None and exception.exception_type == ExceptionType.CLOSED.value:
        return ClosedAllDay(reason=exception.reason)
    return None


def staff_exception(ctx: OverrideContext) -> Optional[DayOverride]:
    if ctx.staff_exception is not None:
        return _to_override(ctx.staff_exception)
    return None


def shop_custom_hours(ctx: OverrideContext) -> Optional[DayOverride]:
    exception = ctx.shop_exception
    if exception is not None and exception.exception_type == ExceptionType.CUSTOM_HOURS.value:
        return UseWeeklyRule(clip=custom_hours_from_exception(exception))
    return None


OverrideProvider = Callable[[OverrideContext], Optional[DayOverride]]

OVERRIDE_PIPELINE: tuple = (shop_closure, staff_exception, shop_custom_hours)


def resolve_override(
    ctx: OverrideContext, providers: Sequence[OverrideProvider] = OVERRIDE_PIPELINE
) -> DayOverride:
    for provider in providers:
        override = provider(ctx)
        if override is not None:
            return override
    return UseWeeklyRule()


def _window(day: date, start: time, end: time, label: str) -> TimeRange:
    if start >= end:
        raise ConfigurationError(f"{label} on {day}: end {end} is not after start {start}")
    return TimeRange(at_time(day, start), at_time(day, end))


def _cut_breaks(
    day: date, windows: list, breaks: Sequence, bounds: TimeRange, label: str
) -> list:
    for break_start, break_end in breaks:
        cut = _window(day, break_start, break_end, f"{label} break")
        if not bounds.contains(cut):
            raise ConfigurationError(
                f"{label} break {break_start}-{break_end} on {day} lies outside "
                f"the working window {bounds.start.time()}-{bounds.end.time()}"
            )
        windows = [part for window in windows for part in subtract(window, cut)]
    return windows


def validate_weekly_rule(rule: WorkingHours) -> None:
    if not rule.is_working:
        return
    if rule.start_time is None or rule.end_time is None:
        raise ConfigurationError(
            f"Working day {rule.weekday} of staff {rule.staff_id} has no hours"
        )
    if rule.start_time >= rule.end_time:
        raise ConfigurationError(
            f"Working day {rule.weekday} of staff {rule.staff_id}: "
            f"end {rule.end_time} is not after start {rule.start_time}"
        )
    if (rule.break_start_time is None) != (rule.break_end_time is None):
        raise ConfigurationError(
            f"Working day {rule.weekday} of staff {rule.staff_id} has a half-defined break"
        )
    if rule.has_break and not (
        rule.start_time <= rule.break_start_time < rule.break_end_time <= rule.end_time
    ):
        raise ConfigurationError(
            f"Working day {rule.weekday} of staff {rule.staff_id}: break "
            f"{rule.break_start_time}-{rule.break_end_time} lies outside "
            f"{rule.start_time}-{rule.end_time}"
        )


def _weekly_windows(day: date, rule: Optional[WorkingHours], clip: Optional[CustomHours]) -> list:
    if rule is None or not rule.is_working:
        return []

    validate_weekly_rule(rule)
    bounds = TimeRange(at_time(day, rule.start_time), at_time(day, rule.end_time))
    windows = [bounds]
    if rule.has_break:
        cut = TimeRange(at_time(day, rule.break_start_time), at_time(day, rule.break_end_time))
        windows = [part for window in windows for part in subtract(window, cut)]

    if clip is None:
        return windows

    shop_bounds = _window(day, clip.start, clip.end, "Shop hours")
    clipped = []
    for window in windows:
        part = intersect(window, shop_bounds)
        if part is not None:
            clipped.append(part)
    return _cut_breaks(day, clipped, clip.breaks, shop_bounds, "Shop hours")


def resolve_day(
    day: date,
    weekly_rule: Optional[WorkingHours],
    shop_exception: Optional[DateException] = None,
    staff_exception: Optional[DateException] = None,
) -> ResolvedDay:
    """Resolve the ordered, non-overlapping working windows of a day.

    Raises ConfigurationError for inverted hours or breaks outside the
    working window instead of guessing what the owner meant.
    """
    override = resolve_override(OverrideContext(day, shop_exception, staff_exception))

    if isinstance(override, ClosedAllDay):
        return ResolvedDay(day=day, source=ScheduleSource.CLOSED_ALL_DAY)

    if isinstance(override, CustomHours):
        bounds = _window(day, override.start, override.end, "Custom hours")
        windows = _cut_breaks(day, [bounds], override.breaks, bounds, "Custom hours")
        return ResolvedDay(day=day, source=ScheduleSource.CUSTOM_HOURS, windows=windows)

    return ResolvedDay(
        day=day,
        source=ScheduleSource.WEEKLY_RULE,
        windows=_weekly_windows(day, weekly_rule, override.clip),
    )


def pick_exceptions(day: date, exceptions: Sequence[DateException]) -> tuple:
    """Split a staff's fetched exceptions into (shop-wide, staff-specific) for a day.

    When several rows exist for the same scope, a closure wins.
    """
    shop, staff = None, None
    for exception in exceptions:
        if exception.date != day:
            continue
        if exception.staff_id is None:
            if shop is None or exception.is_closed:
                shop = exception
        elif staff is None or exception.is_closed:
            staff = exception
    return shop, staff
