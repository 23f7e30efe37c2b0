# Import all models to ensure they are registered with SQLAlchemy
from . import (
    appointment,
    business,
    calendar_block,
    capacity_config,
    date_exception,
    service,
    slot_claim,
    staff,
    temporary_break,
    working_hours,
)

__all__ = [
    "appointment",
    "business",
    "calendar_block",
    "capacity_config",
    "date_exception",
    "service",
    "slot_claim",
    "staff",
    "temporary_break",
    "working_hours",
]
