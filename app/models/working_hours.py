import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base


class WeekDay(enum.Enum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class WorkingHours(Base):
    """Weekly working rule for one staff member and weekday, with an optional
    recurring break."""

    __tablename__ = "working_hours"

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False)

    # Schedule details
    weekday = Column(Integer, nullable=False)  # WeekDay value, Monday = 0
    is_working = Column(Boolean, default=True, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)

    # Break configuration (optional)
    break_start_time = Column(Time, nullable=True)
    break_end_time = Column(Time, nullable=True)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("staff_id", "weekday", name="uq_working_hours_staff_weekday"),
    )

    staff = relationship("Staff", back_populates="working_hours")

    @property
    def has_break(self) -> bool:
        return self.break_start_time is not None and self.break_end_time is not None

    def __repr__(self):
        break_info = ""
        if self.has_break:
            break_info = f", break={self.break_start_time}-{self.break_end_time}"

        return (
            f"<WorkingHours(staff_id={self.staff_id}, "
            f"{WeekDay(self.weekday).name}: "
            f"{self.start_time}-{self.end_time}{break_info}, "
            f"working={self.is_working})>"
        )
