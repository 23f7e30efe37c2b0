import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.sql import func

from app.core.database import Base


class BlockType(enum.Enum):
    MANUAL_HOLD = "manual_hold"
    PERSONAL = "personal"
    MAINTENANCE = "maintenance"
    OTHER = "other"


class CalendarBlock(Base):
    """Manual hold on a staff calendar. Consumes time like an appointment but
    carries no customer."""

    __tablename__ = "calendar_blocks"

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False)

    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    block_type = Column(String(20), nullable=False, default=BlockType.MANUAL_HOLD.value)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="check_block_end_after_start"),
        Index("ix_calendar_block_staff_start", "staff_id", "start_at"),
    )

    def __repr__(self):
        return (
            f"<CalendarBlock(id={self.id}, staff_id={self.staff_id}, "
            f"{self.start_at} - {self.end_at}, type={self.block_type})>"
        )
