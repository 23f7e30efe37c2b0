"""
Booking rules applied after slot compilation.

A compiled slot is only offered when it respects the minimum notice and the
advance horizon, and when same-day booking is still open. The commit path uses
`violated_rule` to report which rule rejected a proposed start.
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Sequence

from app.schemas.business import BookingPolicySettings
from app.services.slot_compiler import Slot


class PolicyRule(str, Enum):
    MINIMUM_NOTICE = "minimum_notice"
    SAME_DAY_CUTOFF = "same_day_cutoff"
    ADVANCE_HORIZON = "advance_horizon"


def within_horizon(day: date, policy: BookingPolicySettings, today: date) -> bool:
    return day <= today + timedelta(days=policy.max_advance_days)


def violated_rule(
    start: datetime, policy: BookingPolicySettings, now: datetime
) -> Optional[PolicyRule]:
    """First booking rule disqualifying a slot start, or None."""
    if start < now + timedelta(hours=policy.minimum_notice_hours):
        return PolicyRule.MINIMUM_NOTICE

    if (
        policy.same_day_cutoff is not None
        and start.date() == now.date()
        and now.time() > policy.same_day_cutoff
    ):
        return PolicyRule.SAME_DAY_CUTOFF

    if not within_horizon(start.date(), policy, now.date()):
        return PolicyRule.ADVANCE_HORIZON

    return None


def apply_business_rules(
    slots: Sequence[Slot], policy: BookingPolicySettings, now: datetime
) -> list[Slot]:
    return [slot for slot in slots if violated_rule(slot.start, policy, now) is None]
