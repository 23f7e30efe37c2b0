import enum

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.sql import func

from app.core.database import Base


class ExceptionType(enum.Enum):
    CLOSED = "closed"  # Not working at all on this date
    CUSTOM_HOURS = "custom_hours"  # Working with special hours (and breaks)


class ExceptionSource(enum.Enum):
    MANUAL = "manual"
    NATIONAL_HOLIDAY = "national_holiday"


class DateException(Base):
    """Single-date override of the weekly rule.

    A row with ``staff_id`` set applies to that staff member only; a row
    without it is shop-wide (holidays, closures, special opening hours).
    """

    __tablename__ = "date_exceptions"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=True)

    date = Column(Date, nullable=False)
    exception_type = Column(String(20), nullable=False, default=ExceptionType.CLOSED.value)

    # Custom hours (only for CUSTOM_HOURS)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    breaks = Column(JSON, nullable=True)  # [{"start": "13:00", "end": "14:00"}]

    reason = Column(Text, nullable=True)
    source = Column(String(20), nullable=False, default=ExceptionSource.MANUAL.value)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_date_exception_business_date", "business_id", "date"),
        Index("ix_date_exception_staff_date", "staff_id", "date"),
    )

    @property
    def is_shop_wide(self) -> bool:
        return self.staff_id is None

    @property
    def is_closed(self) -> bool:
        return self.exception_type == ExceptionType.CLOSED.value

    def __repr__(self):
        scope = "shop" if self.is_shop_wide else f"staff_id={self.staff_id}"
        return (
            f"<DateException(id={self.id}, {scope}, date={self.date}, "
            f"type={self.exception_type})>"
        )
