import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base


class AppointmentStatus(enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that occupy the staff calendar
ACTIVE_STATUSES = (
    AppointmentStatus.PENDING.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.IN_PROGRESS.value,
)


class Appointment(Base):
    """Customer reservation of one staff member for a contiguous interval.

    ``start_at``/``end_at`` are naive shop-local wall-clock values.
    """

    __tablename__ = "appointments"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False)

    # Opaque reference to the customer record of the presentation layer
    customer_ref = Column(String(255), nullable=False)

    # Scheduling details
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    total_price = Column(Numeric(10, 2), nullable=False)

    # Status management
    status = Column(String(20), nullable=False, default=AppointmentStatus.PENDING.value, index=True)
    confirmation_code = Column(String(6), unique=True, nullable=False)

    customer_notes = Column(Text, nullable=True)

    # Cancellation
    cancelled_at = Column(DateTime, nullable=True)  # shop-local
    cancellation_reason = Column(Text, nullable=True)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="check_end_after_start"),
        CheckConstraint("duration_minutes > 0", name="check_positive_duration"),
        CheckConstraint("total_price >= 0", name="check_non_negative_price"),
        Index("ix_appointment_staff_start", "staff_id", "start_at"),
    )

    # Relationships
    business = relationship("Business")
    staff = relationship("Staff")
    service_lines = relationship(
        "AppointmentServiceLine",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentServiceLine.order_index",
    )

    def can_transition_to(self, new_status: AppointmentStatus) -> bool:
        """Check if appointment can transition to the new status."""
        current = AppointmentStatus(self.status)

        allowed_transitions = {
            AppointmentStatus.PENDING: [
                AppointmentStatus.CONFIRMED,
                AppointmentStatus.CANCELLED,
            ],
            AppointmentStatus.CONFIRMED: [
                AppointmentStatus.IN_PROGRESS,
                AppointmentStatus.CANCELLED,
                AppointmentStatus.NO_SHOW,
            ],
            AppointmentStatus.IN_PROGRESS: [
                AppointmentStatus.COMPLETED,
                AppointmentStatus.CANCELLED,
            ],
            AppointmentStatus.COMPLETED: [],
            AppointmentStatus.CANCELLED: [],
            AppointmentStatus.NO_SHOW: [],
        }

        return new_status in allowed_transitions.get(current, [])

    def transition_to(
        self,
        new_status: AppointmentStatus,
        reason: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> bool:
        if not self.can_transition_to(new_status):
            return False

        self.status = new_status.value
        if new_status == AppointmentStatus.CANCELLED:
            self.cancelled_at = at or datetime.now()
            if reason:
                self.cancellation_reason = reason

        return True

    @property
    def is_active(self) -> bool:
        """Active appointments consume staff time."""
        return self.status in ACTIVE_STATUSES

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, status='{self.status}', "
            f"start='{self.start_at}', staff_id={self.staff_id})>"
        )


class AppointmentServiceLine(Base):
    """One service performed within an appointment, in booking order."""

    __tablename__ = "appointment_services"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(
        Integer, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False
    )
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)

    order_index = Column(Integer, nullable=False, default=0)
    start_offset_minutes = Column(Integer, nullable=False, default=0)
    duration_minutes = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_line_positive_duration"),
        CheckConstraint("start_offset_minutes >= 0", name="check_line_non_negative_offset"),
    )

    appointment = relationship("Appointment", back_populates="service_lines")
    service = relationship("Service")

    def __repr__(self):
        return (
            f"<AppointmentServiceLine(appointment_id={self.appointment_id}, "
            f"service_id={self.service_id}, order={self.order_index})>"
        )
