from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base


class CapacityConfig(Base):
    """Shop-wide concurrent booking limit starting at a time of day.

    A row applies from ``time_slot`` until the next configured ``time_slot``
    of the same day. Rows with ``day_of_week`` set win over generic rows.
    """

    __tablename__ = "capacity_configs"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)

    time_slot = Column(Time, nullable=False)
    day_of_week = Column(Integer, nullable=True)  # WeekDay value, None = every day

    max_capacity = Column(Integer, nullable=False)
    peak_hour_multiplier = Column(Numeric(4, 2), nullable=False, default=1)
    overbooking_allowance = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("max_capacity > 0", name="check_capacity_positive_max"),
        CheckConstraint("peak_hour_multiplier > 0", name="check_capacity_positive_multiplier"),
        CheckConstraint("overbooking_allowance >= 0", name="check_capacity_non_negative_allowance"),
    )

    business = relationship("Business", back_populates="capacity_configs")

    def __repr__(self):
        return (
            f"<CapacityConfig(business_id={self.business_id}, at={self.time_slot}, "
            f"day={self.day_of_week}, max={self.max_capacity}, "
            f"x{self.peak_hour_multiplier}, +{self.overbooking_allowance})>"
        )
