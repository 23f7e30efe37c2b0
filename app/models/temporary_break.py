from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, Text, Time
from sqlalchemy.sql import func

from app.core.database import Base


class TemporaryBreak(Base):
    """One-off unavailable interval for a staff member on a single date."""

    __tablename__ = "temporary_breaks"

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False)

    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("ix_temporary_break_staff_date", "staff_id", "date"),)

    def __repr__(self):
        return (
            f"<TemporaryBreak(id={self.id}, staff_id={self.staff_id}, "
            f"{self.date} {self.start_time}-{self.end_time})>"
        )
